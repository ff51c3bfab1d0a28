from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from ..auth_service import AuthService
from ..schemas import AuthProvider, User

router = APIRouter(prefix="/auth", tags=["auth"])


class LoginRequest(BaseModel):
	provider: AuthProvider
	email: Optional[str] = None
	password: Optional[str] = None


class RegisterRequest(BaseModel):
	email: str
	password: str
	name: Optional[str] = None


class OAuthSessionRequest(BaseModel):
	access_token: str
	refresh_token: Optional[str] = None


def get_auth(request: Request) -> AuthService:
	return request.app.state.auth


def get_optional_user(auth: AuthService = Depends(get_auth)) -> Optional[User]:
	return auth.current_user()


def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
	if user is None:
		raise HTTPException(status_code=401, detail="Please sign in to use this feature.")
	return user


@router.post("/login", response_model=User)
async def login(req: LoginRequest, auth: AuthService = Depends(get_auth)):
	email = (req.email or "").strip() or None
	return await auth.login(req.provider, email, req.password)


@router.post("/register", response_model=User, status_code=201)
async def register(req: RegisterRequest, auth: AuthService = Depends(get_auth)):
	email = (req.email or "").strip()
	if not email or not req.password:
		raise HTTPException(status_code=400, detail="email and password are required")
	name = (req.name or "").strip() or "Student"
	return await auth.register(email, req.password, name)


@router.get("/google")
def google_sign_in(auth: AuthService = Depends(get_auth)):
	return {"url": auth.google_sign_in_url()}


@router.post("/session", response_model=User)
async def complete_oauth(req: OAuthSessionRequest, auth: AuthService = Depends(get_auth)):
	return await auth.complete_oauth(req.access_token, req.refresh_token)


@router.post("/logout")
async def logout(request: Request, auth: AuthService = Depends(get_auth)):
	await auth.logout()
	request.app.state.navigation.reset_home()
	return {"ok": True}


@router.get("/me")
def me(request: Request, user: Optional[User] = Depends(get_optional_user)):
	return {"user": user, "auth_configured": request.app.state.auth.is_configured}
