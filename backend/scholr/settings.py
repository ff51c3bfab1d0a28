from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

SUPABASE_URL_PLACEHOLDER = "YOUR_SUPABASE_URL_HERE"


class Settings(BaseSettings):
	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	# Text model used for notes, chapters, tutor chat and syllabus analysis
	gemini_model: str = Field(default="gemini-3-flash-preview", validation_alias="GEMINI_MODEL")
	gemini_image_model: str = Field(default="gemini-2.5-flash-image", validation_alias="GEMINI_IMAGE_MODEL")
	gemini_base_url: str = Field(
		default="https://generativelanguage.googleapis.com/v1beta/models",
		validation_alias="GEMINI_BASE_URL",
	)
	gemini_timeout_seconds: float = Field(default=60.0, validation_alias="GEMINI_TIMEOUT_SECONDS")

	# Backoff policy for rate-limited Gemini calls (2s, 4s, 8s by default)
	retry_max_retries: int = Field(default=3, validation_alias="RETRY_MAX_RETRIES")
	retry_initial_delay_seconds: float = Field(default=2.0, validation_alias="RETRY_INITIAL_DELAY_SECONDS")
	# Unset means uncapped exponential growth
	retry_max_delay_seconds: float | None = Field(default=None, validation_alias="RETRY_MAX_DELAY_SECONDS")

	# Tutor conversations kept in memory; the least recently used idle ones go first
	tutor_max_sessions: int = Field(default=200, ge=1, validation_alias="TUTOR_MAX_SESSIONS")

	# Supabase auth (optional; guest mode works without it)
	supabase_url: str | None = Field(default=None, validation_alias="SUPABASE_URL")
	supabase_anon_key: str | None = Field(default=None, validation_alias="SUPABASE_ANON_KEY")
	supabase_redirect_url: str = Field(default="http://localhost:8000/app", validation_alias="SUPABASE_REDIRECT_URL")

	# Local key/value store standing in for browser localStorage
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

	@property
	def gemini_configured(self) -> bool:
		return bool(self.gemini_api_key)

	@property
	def supabase_configured(self) -> bool:
		url = (self.supabase_url or "").strip()
		return bool(url) and url != SUPABASE_URL_PLACEHOLDER and bool(self.supabase_anon_key)


settings = Settings()
