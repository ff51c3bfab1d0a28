from __future__ import annotations
import logging
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from .auth_service import AuthService
from .bookmarks import BookmarkStore
from .content import ContentService, UnconfiguredContent
from .db import SessionLocal, engine, init_db
from .errors import ScholrError
from .gemini_client import GeminiAPIError, GeminiClient
from .navigation import NavigationStateMachine
from .schemas import SUBJECTS_BY_CLASS
from .settings import Settings, settings
from .storage import LocalStorage
from .routers import auth, bookmarks, notes, syllabus, tutor, view

logger = logging.getLogger(__name__)


def create_app(
	config: Optional[Settings] = None,
	*,
	session_factory: Optional[Callable[[], Session]] = None,
	content: Optional[ContentService] = None,
	auth_service: Optional[AuthService] = None,
) -> FastAPI:
	"""Wire the services once and mount the routers.

	Collaborators can be passed in ready-made; otherwise they are built
	from ``config``. Without a Gemini key the content routes answer 503.
	"""
	config = config or settings
	logging.basicConfig(level=config.log_level.upper())

	if session_factory is None:
		init_db(engine)
		session_factory = SessionLocal
	storage = LocalStorage(session_factory)

	gemini_client: Optional[GeminiClient] = None
	if content is None and config.gemini_configured:
		gemini_client = GeminiClient(config)
		content = ContentService(gemini_client, config)
	if content is None:
		logger.warning("GEMINI_API_KEY is not set; note generation and the tutor are disabled")

	app = FastAPI(title="Scholr API")
	app.state.config = config
	app.state.content = content
	app.state.auth = auth_service or AuthService(storage, config)
	app.state.bookmarks = BookmarkStore(storage)
	app.state.navigation = NavigationStateMachine(content or UnconfiguredContent())
	app.state.tutor_sessions = {}

	app.include_router(auth.router)
	app.include_router(notes.router)
	app.include_router(tutor.router)
	app.include_router(syllabus.router)
	app.include_router(bookmarks.router)
	app.include_router(view.router)

	@app.exception_handler(ScholrError)
	async def scholr_error_handler(request: Request, exc: ScholrError):
		return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "kind": type(exc).__name__})

	@app.exception_handler(GeminiAPIError)
	async def gemini_error_handler(request: Request, exc: GeminiAPIError):
		logger.error("Gemini call failed: %s", exc)
		return JSONResponse(
			status_code=502,
			content={"detail": "The AI service returned an error. Please try again.", "kind": "GeminiAPIError"},
		)

	@app.get("/info")
	def info():
		return {
			"status": "ok",
			"gemini_configured": app.state.content is not None,
			"auth_configured": app.state.auth.is_configured,
		}

	@app.get("/catalog")
	def catalog():
		return {level.value: [s.value for s in subjects] for level, subjects in SUBJECTS_BY_CLASS.items()}

	@app.on_event("shutdown")
	async def shutdown_event():
		if gemini_client is not None:
			await gemini_client.aclose()
		await app.state.auth.aclose()

	return app


app = create_app()
