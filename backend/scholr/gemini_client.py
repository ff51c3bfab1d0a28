from __future__ import annotations
import json
import logging
import httpx
from typing import Any, AsyncIterator, Dict, List, Optional
from .errors import ConfigurationMissing
from .settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class GeminiAPIError(Exception):
	"""Non-2xx answer from the Generative Language API.

	``status`` is the HTTP status; the message keeps Google's own error text
	(e.g. ``RESOURCE_EXHAUSTED``) so callers can classify the failure.
	"""

	def __init__(self, status: int, message: str) -> None:
		self.status = status
		super().__init__(f"{status} {message}")


def response_text(data: Dict[str, Any]) -> Optional[str]:
	"""Concatenate the text parts of the first candidate, None when absent."""
	try:
		parts = data["candidates"][0]["content"]["parts"]
	except (KeyError, IndexError, TypeError):
		return None
	texts = [p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)]
	if not texts:
		return None
	return "".join(texts)


def response_inline_data(data: Dict[str, Any]) -> Optional[Dict[str, str]]:
	for candidate in data.get("candidates") or []:
		for part in (candidate.get("content") or {}).get("parts") or []:
			inline = part.get("inlineData") if isinstance(part, dict) else None
			if inline and inline.get("data"):
				return inline
		break
	return None


def _error_from_response(r: httpx.Response) -> GeminiAPIError:
	message = r.text
	try:
		err = r.json().get("error") or {}
		message = " ".join(str(v) for v in (err.get("status"), err.get("message")) if v) or message
	except Exception:
		pass
	return GeminiAPIError(r.status_code, message)


class GeminiClient:
	def __init__(
		self,
		config: Optional[Settings] = None,
		*,
		http_client: Optional[httpx.AsyncClient] = None,
		model: Optional[str] = None,
	) -> None:
		config = config or default_settings
		if not config.gemini_api_key:
			raise ConfigurationMissing("GEMINI_API_KEY is not configured")
		self.api_key = config.gemini_api_key
		self.model = model or config.gemini_model
		self.image_model = config.gemini_image_model
		self.base_url = config.gemini_base_url.rstrip("/")
		self._client = http_client or httpx.AsyncClient(timeout=config.gemini_timeout_seconds)

	def _url(self, model: str, method: str) -> str:
		return f"{self.base_url}/{model}:{method}"

	def _headers(self) -> Dict[str, str]:
		return {"x-goog-api-key": self.api_key}

	@staticmethod
	def _payload(
		contents: List[Dict[str, Any]],
		system_instruction: Optional[str],
		generation_config: Optional[Dict[str, Any]],
	) -> Dict[str, Any]:
		payload: Dict[str, Any] = {"contents": contents}
		if system_instruction:
			payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}
		if generation_config:
			payload["generationConfig"] = generation_config
		return payload

	async def generate_content(
		self,
		contents: List[Dict[str, Any]],
		*,
		model: Optional[str] = None,
		system_instruction: Optional[str] = None,
		generation_config: Optional[Dict[str, Any]] = None,
	) -> Dict[str, Any]:
		payload = self._payload(contents, system_instruction, generation_config)
		try:
			r = await self._client.post(self._url(model or self.model, "generateContent"), headers=self._headers(), json=payload)
		except httpx.RequestError as net_err:
			raise GeminiAPIError(503, f"UNAVAILABLE {net_err}") from net_err
		if r.status_code >= 400:
			raise _error_from_response(r)
		return r.json()

	async def generate(
		self,
		prompt: str,
		*,
		system_instruction: Optional[str] = None,
		response_schema: Optional[Dict[str, Any]] = None,
	) -> Optional[str]:
		generation_config: Optional[Dict[str, Any]] = None
		if response_schema is not None:
			generation_config = {"responseMimeType": "application/json", "responseSchema": response_schema}
		data = await self.generate_content(
			[{"role": "user", "parts": [{"text": prompt}]}],
			system_instruction=system_instruction,
			generation_config=generation_config,
		)
		return response_text(data)

	async def generate_multimodal(self, parts: List[Dict[str, Any]], *, role: str = "user") -> Optional[str]:
		data = await self.generate_content([{"role": role, "parts": parts}])
		return response_text(data)

	async def stream_generate(
		self,
		contents: List[Dict[str, Any]],
		*,
		system_instruction: Optional[str] = None,
	) -> AsyncIterator[str]:
		"""Yield text fragments from ``streamGenerateContent`` in arrival order."""
		payload = self._payload(contents, system_instruction, None)
		url = self._url(self.model, "streamGenerateContent")
		try:
			async with self._client.stream("POST", url, params={"alt": "sse"}, headers=self._headers(), json=payload) as r:
				if r.status_code >= 400:
					await r.aread()
					raise _error_from_response(r)
				async for line in r.aiter_lines():
					if not line.startswith("data:"):
						continue
					chunk = json.loads(line[len("data:"):].strip())
					text = response_text(chunk)
					if text:
						yield text
		except httpx.RequestError as net_err:
			raise GeminiAPIError(503, f"UNAVAILABLE {net_err}") from net_err

	def start_chat(self, *, system_instruction: Optional[str] = None) -> "ChatSession":
		return ChatSession(self, system_instruction=system_instruction)

	async def aclose(self) -> None:
		await self._client.aclose()


class ChatSession:
	"""Remote conversation context: the history is replayed on every turn."""

	def __init__(self, client: GeminiClient, *, system_instruction: Optional[str] = None) -> None:
		self._client = client
		self.system_instruction = system_instruction
		self.history: List[Dict[str, Any]] = []

	async def send_message_stream(self, message: str) -> AsyncIterator[str]:
		contents = self.history + [{"role": "user", "parts": [{"text": message}]}]
		reply = ""
		async for fragment in self._client.stream_generate(contents, system_instruction=self.system_instruction):
			reply += fragment
			yield fragment
		# Only completed turns become part of the context
		self.history = contents + [{"role": "model", "parts": [{"text": reply}]}]
