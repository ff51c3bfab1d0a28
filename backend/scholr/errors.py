"""Failure kinds surfaced by the content, tutor and auth layers.

Every error carries the HTTP status the API answers with and a message
that is safe to show to a student as-is.
"""
from __future__ import annotations

from typing import Dict, Optional


class ScholrError(Exception):
	status_code: int = 500
	default_message: str = "Something went wrong. Please try again."

	def __init__(self, message: Optional[str] = None) -> None:
		self.message = message or self.default_message
		super().__init__(self.message)


class TransientRateLimit(ScholrError):
	status_code = 429
	default_message = "The AI service is busy right now. Please try again shortly."


class EmptyResponse(ScholrError):
	status_code = 502
	default_message = "Empty response from AI"


class EmptyAnalysis(ScholrError):
	status_code = 502
	default_message = "No analysis generated"


class MalformedResponse(ScholrError):
	status_code = 502
	default_message = "The AI returned content in an unexpected format."


class HighTraffic(ScholrError):
	status_code = 503
	default_message = (
		"High traffic. We are automatically retrying, but if this persists, "
		"please try again in a few minutes."
	)


class ConfigurationMissing(ScholrError):
	status_code = 503
	default_message = "Setup Needed: add your Supabase URL and anon key to the environment."


class TurnInProgress(ScholrError):
	status_code = 409
	default_message = "Please wait for the tutor to finish answering."


_AUTH_MESSAGES: Dict[str, str] = {
	"cancelled": "Login cancelled.",
	"already-registered": "This email is already registered.",
	"invalid-credential": "Invalid email or password.",
	"weak-password": "Password should be at least 6 characters.",
}


class AuthFailure(ScholrError):
	status_code = 401
	default_message = "Authentication failed."

	def __init__(self, message: Optional[str] = None, *, code: Optional[str] = None) -> None:
		self.code = code
		super().__init__(message)

	@classmethod
	def from_code(cls, code: Optional[str]) -> "AuthFailure":
		return cls(_AUTH_MESSAGES.get(code or ""), code=code)
