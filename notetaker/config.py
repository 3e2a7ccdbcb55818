from pydantic_settings import BaseSettings
from pydantic import AliasChoices, Field


class Settings(BaseSettings):
    # External generative-text service (OpenAI-compatible chat completions)
    synthesis_api_key: str = Field(
        default="EMPTY",
        validation_alias=AliasChoices(
            "NOTETAKER_SYNTHESIS_API_KEY",
            "GOOGLE_API_KEY",
            "GEMINI_API_KEY",
        ),
    )
    synthesis_base_url: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    synthesis_model: str = "gemini-2.0-flash"
    synthesis_max_tokens: int = 1024
    synthesis_temperature: float = 0.2
    synthesis_timeout_seconds: float = 30.0
    synthesis_json_mode: bool = True
    synthesis_max_concurrent_calls: int = 4
    synthesis_log_enabled: bool = False
    synthesis_log_path: str = "logs/synthesis_calls.jsonl"

    # Transcripts shorter than this (after trimming) never reach the service
    min_transcript_chars: int = 10

    # Visit / vitals storage
    store_backend: str = "mongo"
    mongo_uri: str = "mongodb://127.0.0.1:27017"
    mongo_db: str = "medical_hackathon_db"
    mongo_visits_collection: str = "visits"
    mongo_bp_collection: str = "bp_readings"
    mongo_server_selection_timeout_ms: int = 5000

    # Read views
    trend_default_limit: int = 30

    # Server
    host: str = "0.0.0.0"
    port: int = 4000
    api_prefix: str = "/api"
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]
    log_level: str = "INFO"

    model_config = {"env_prefix": "NOTETAKER_", "env_file": ".env", "extra": "ignore"}


settings = Settings()
