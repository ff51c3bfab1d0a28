"""Sign-in through Supabase (GoTrue REST) plus a purely local guest mode.

The guest identity never touches the network. While a guest session is
stored, notifications about the remote session are suppressed so the
guest stays signed in.
"""
from __future__ import annotations
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import httpx
from jose import JWTError, jwt

from .errors import AuthFailure, ConfigurationMissing
from .schemas import AuthProvider, User
from .settings import Settings, settings as default_settings
from .storage import LocalStorage

logger = logging.getLogger(__name__)

STORAGE_KEY_GUEST = "scholr_guest_session"
STORAGE_KEY_SESSION = "scholr_auth_session"

AuthListener = Callable[[Optional[User]], None]

_ERROR_CODES: Dict[str, str] = {
	"invalid_credentials": "invalid-credential",
	"invalid_grant": "invalid-credential",
	"user_already_exists": "already-registered",
	"email_exists": "already-registered",
	"weak_password": "weak-password",
	"access_denied": "cancelled",
}


def _avatar_for(seed: str) -> str:
	return f"https://api.dicebear.com/7.x/avataaars/svg?seed={seed}"


def map_user(sb_user: Dict[str, Any], provider: Optional[AuthProvider] = None) -> User:
	metadata = sb_user.get("user_metadata") or {}
	if provider is None:
		app_provider = (sb_user.get("app_metadata") or {}).get("provider")
		provider = AuthProvider.EMAIL if app_provider == "email" else AuthProvider.GOOGLE
	return User(
		id=sb_user["id"],
		name=metadata.get("full_name") or metadata.get("name") or "Student",
		email=sb_user.get("email") or "",
		avatar=metadata.get("avatar_url") or metadata.get("picture") or _avatar_for(sb_user["id"]),
		provider=provider,
	)


def _auth_error(r: httpx.Response) -> AuthFailure:
	try:
		body = r.json()
	except ValueError:
		body = {}
	if not isinstance(body, dict):
		body = {}
	code = body.get("error_code") or body.get("error") or ""
	text = str(body.get("msg") or body.get("error_description") or body.get("message") or "")
	mapped = _ERROR_CODES.get(code)
	if mapped is None and "already registered" in text.lower():
		mapped = "already-registered"
	logger.warning("Supabase auth rejected request (%s): %s %s", r.status_code, code, text)
	return AuthFailure.from_code(mapped)


def token_expired(access_token: str, *, now: Optional[float] = None) -> bool:
	"""True when the token's ``exp`` claim has passed or cannot be read."""
	try:
		claims = jwt.get_unverified_claims(access_token)
	except JWTError:
		return True
	exp = claims.get("exp")
	if not isinstance(exp, (int, float)):
		return True
	return exp <= (now if now is not None else time.time())


class AuthService:
	def __init__(
		self,
		storage: LocalStorage,
		config: Optional[Settings] = None,
		*,
		http_client: Optional[httpx.AsyncClient] = None,
	) -> None:
		self.storage = storage
		self.config = config or default_settings
		self._http = http_client
		self._listeners: List[AuthListener] = []
		self._session: Optional[Dict[str, Any]] = None
		self._user: Optional[User] = None
		self._restore_session()

	@property
	def is_configured(self) -> bool:
		return self.config.supabase_configured

	# -- local state ----------------------------------------------------------

	def _guest(self) -> Optional[User]:
		raw = self.storage.get_json(STORAGE_KEY_GUEST)
		if raw is None:
			return None
		try:
			return User.model_validate(raw)
		except ValueError:
			self.storage.remove_item(STORAGE_KEY_GUEST)
			return None

	def _restore_session(self) -> None:
		stored = self.storage.get_json(STORAGE_KEY_SESSION)
		if not stored:
			return
		token = stored.get("access_token") if isinstance(stored, dict) else None
		if not token or token_expired(token):
			self.storage.remove_item(STORAGE_KEY_SESSION)
			return
		try:
			self._user = User.model_validate(stored["user"])
		except (KeyError, ValueError):
			self.storage.remove_item(STORAGE_KEY_SESSION)
			return
		self._session = stored

	def _set_session(self, session: Dict[str, Any], user: User) -> None:
		self._session = session
		self._user = user
		self.storage.set_json(STORAGE_KEY_SESSION, {**session, "user": user.model_dump(mode="json", by_alias=True)})
		self._emit_remote(user)

	def current_user(self) -> Optional[User]:
		return self._guest() or self._user

	# -- change notifications -------------------------------------------------

	def _emit_local(self, user: Optional[User]) -> None:
		for listener in list(self._listeners):
			listener(user)

	def _emit_remote(self, user: Optional[User]) -> None:
		if self.storage.get_item(STORAGE_KEY_GUEST) is not None:
			return
		self._emit_local(user)

	def subscribe(self, callback: AuthListener) -> Callable[[], None]:
		"""Report the current user now and on every later change."""
		guest = self._guest()
		if guest is not None:
			callback(guest)
		elif not self.is_configured:
			callback(None)
		else:
			callback(self._user)
		self._listeners.append(callback)

		def unsubscribe() -> None:
			if callback in self._listeners:
				self._listeners.remove(callback)

		return unsubscribe

	# -- remote calls ---------------------------------------------------------

	def _require_configured(self) -> None:
		if not self.is_configured:
			raise ConfigurationMissing()

	def _client(self) -> httpx.AsyncClient:
		if self._http is None:
			self._http = httpx.AsyncClient(timeout=30)
		return self._http

	def _url(self, path: str) -> str:
		return f"{self.config.supabase_url.rstrip('/')}/auth/v1/{path}"

	def _headers(self, access_token: Optional[str] = None) -> Dict[str, str]:
		headers = {"apikey": self.config.supabase_anon_key or "", "Content-Type": "application/json"}
		if access_token:
			headers["Authorization"] = f"Bearer {access_token}"
		return headers

	async def _post(self, path: str, payload: Dict[str, Any], *, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
		try:
			r = await self._client().post(self._url(path), params=params, headers=self._headers(), json=payload)
		except httpx.RequestError as err:
			logger.error("Supabase unreachable: %s", err)
			raise AuthFailure() from err
		if r.status_code >= 400:
			raise _auth_error(r)
		return r.json()

	def _accept_session(self, data: Dict[str, Any], provider: Optional[AuthProvider]) -> User:
		user = map_user(data["user"], provider)
		session = {k: data.get(k) for k in ("access_token", "refresh_token", "expires_at")}
		self._set_session(session, user)
		return user

	def google_sign_in_url(self) -> str:
		self._require_configured()
		query = httpx.QueryParams({"provider": "google", "redirect_to": self.config.supabase_redirect_url})
		return f"{self._url('authorize')}?{query}"

	async def login(self, provider: AuthProvider, email: Optional[str] = None, password: Optional[str] = None) -> User:
		if provider == AuthProvider.ANONYMOUS:
			guest = User(
				id="guest-" + str(int(time.time() * 1000))[-6:],
				name="Guest Student",
				email="",
				avatar=_avatar_for("guest"),
				provider=AuthProvider.ANONYMOUS,
			)
			self.storage.set_json(STORAGE_KEY_GUEST, guest.model_dump(mode="json", by_alias=True))
			self._emit_local(guest)
			return guest

		self._require_configured()

		if provider == AuthProvider.GOOGLE:
			# Completed later by complete_oauth once the browser comes back
			self.google_sign_in_url()
			return User(id="pending", name="Redirecting...", email="", provider=AuthProvider.GOOGLE)

		if not email or not password:
			raise AuthFailure("Email and password required")
		data = await self._post("token", {"email": email, "password": password}, params={"grant_type": "password"})
		if not data.get("user"):
			raise AuthFailure("No user returned")
		return self._accept_session(data, AuthProvider.EMAIL)

	async def complete_oauth(self, access_token: str, refresh_token: Optional[str] = None) -> User:
		self._require_configured()
		if token_expired(access_token):
			raise AuthFailure.from_code("invalid-credential")
		try:
			r = await self._client().get(self._url("user"), headers=self._headers(access_token))
		except httpx.RequestError as err:
			raise AuthFailure() from err
		if r.status_code >= 400:
			raise _auth_error(r)
		data = {"user": r.json(), "access_token": access_token, "refresh_token": refresh_token}
		return self._accept_session(data, None)

	async def register(self, email: str, password: str, name: str) -> User:
		self._require_configured()
		data = await self._post("signup", {"email": email, "password": password, "data": {"full_name": name}})
		if data.get("access_token") and data.get("user"):
			return self._accept_session(data, AuthProvider.EMAIL)
		# Email confirmation pending: GoTrue answers with the bare user
		sb_user = data.get("user") or (data if data.get("id") else None)
		if not sb_user:
			raise AuthFailure("Registration succeeded but no user returned")
		return map_user(sb_user, AuthProvider.EMAIL)

	async def logout(self) -> None:
		self.storage.remove_item(STORAGE_KEY_GUEST)
		token = (self._session or {}).get("access_token")
		if self.is_configured and token:
			try:
				await self._client().post(self._url("logout"), headers=self._headers(token))
			except httpx.RequestError as err:
				logger.warning("Supabase sign-out failed: %s", err)
		self._session = None
		self._user = None
		self.storage.remove_item(STORAGE_KEY_SESSION)
		self._emit_local(None)

	async def aclose(self) -> None:
		if self._http is not None:
			await self._http.aclose()
