from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	# Provider can be "vertex" (Vertex AI Express) or "ai_studio" (Generative Language API)
	gemini_provider: str = Field(default="ai_studio", validation_alias="GEMINI_PROVIDER")
	# Model used for parsing, explanations and definitions
	gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
	# Vertex configuration
	vertex_region: str = Field(default="us-central1", validation_alias="GEMINI_VERTEX_REGION")
	vertex_project: str | None = Field(default=None, validation_alias="GEMINI_VERTEX_PROJECT")

	# DeepSeek (OpenAI-compatible) configuration; user settings may override key and base url
	deepseek_api_key: str | None = Field(default=None, validation_alias="DEEPSEEK_API_KEY")
	deepseek_base_url: str = Field(default="https://api.deepseek.com", validation_alias="DEEPSEEK_BASE_URL")
	deepseek_model: str = Field(default="deepseek-chat", validation_alias="DEEPSEEK_MODEL")

	# Document parsing can take a while for long PDFs
	ai_timeout_seconds: float = Field(default=120.0, validation_alias="AI_TIMEOUT_SECONDS")

	dictionary_api_url: str = Field(
		default="https://api.dictionaryapi.dev/api/v2/entries/en/",
		validation_alias="DICTIONARY_API_URL",
	)

	# Exam JSON files loaded on "reload defaults"
	default_exam_files: List[str] = Field(default_factory=list, validation_alias="DEFAULT_EXAM_FILES")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
