from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	# Preferred model; tried first by the model resolution policy
	gemini_model: str = Field(default="gemini-1.5-flash", validation_alias="GEMINI_MODEL")
	# Comma-separated models tried after gemini_model, in order
	gemini_fallback_models: str = Field(
		default="gemini-1.5-flash-latest,gemini-1.5-pro-latest,gemini-1.5-pro,gemini-pro",
		validation_alias="GEMINI_FALLBACK_MODELS",
	)
	# Comma-separated API versions; every model is tried under each version in order
	gemini_api_versions: str = Field(default="v1,v1beta", validation_alias="GEMINI_API_VERSIONS")
	gemini_base_url: str = Field(default="https://generativelanguage.googleapis.com", validation_alias="GEMINI_BASE_URL")
	gemini_timeout: float = Field(default=30.0, validation_alias="GEMINI_TIMEOUT")

	# Auth configuration
	jwt_secret_key: str = Field(default="devsecret", validation_alias="JWT_SECRET")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	# 7 days
	access_token_expire_minutes: int = Field(default=7 * 24 * 60, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")
	reset_token_ttl_minutes: int = Field(default=60, validation_alias="RESET_TOKEN_TTL_MINUTES")

	# Where the browser app and this API are reachable (OAuth redirects)
	app_base_url: str = Field(default="http://localhost:3000", validation_alias="APP_BASE_URL")
	api_base_url: str = Field(default="http://localhost:4000", validation_alias="API_BASE_URL")

	# OAuth providers (each one is enabled only when fully configured)
	google_client_id: str | None = Field(default=None, validation_alias="GOOGLE_CLIENT_ID")
	google_client_secret: str | None = Field(default=None, validation_alias="GOOGLE_CLIENT_SECRET")
	github_client_id: str | None = Field(default=None, validation_alias="GITHUB_CLIENT_ID")
	github_client_secret: str | None = Field(default=None, validation_alias="GITHUB_CLIENT_SECRET")
	apple_client_id: str | None = Field(default=None, validation_alias="APPLE_CLIENT_ID")
	apple_team_id: str | None = Field(default=None, validation_alias="APPLE_TEAM_ID")
	apple_key_id: str | None = Field(default=None, validation_alias="APPLE_KEY_ID")
	apple_private_key: str | None = Field(default=None, validation_alias="APPLE_PRIVATE_KEY")

	# Tutoring session behaviour
	session_limit_seconds: int = Field(default=30 * 60, validation_alias="SESSION_LIMIT_SECONDS")
	silence_timeout_seconds: float = Field(default=10.0, validation_alias="SILENCE_TIMEOUT_SECONDS")
	checkin_after_seconds: float = Field(default=30.0, validation_alias="CHECKIN_AFTER_SECONDS")
	checkin_poll_seconds: float = Field(default=15.0, validation_alias="CHECKIN_POLL_SECONDS")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

	@property
	def google_enabled(self) -> bool:
		return bool(self.google_client_id and self.google_client_secret)

	@property
	def github_enabled(self) -> bool:
		return bool(self.github_client_id and self.github_client_secret)

	@property
	def apple_enabled(self) -> bool:
		return bool(self.apple_client_id and self.apple_team_id and self.apple_key_id and self.apple_private_key)

settings = Settings()
