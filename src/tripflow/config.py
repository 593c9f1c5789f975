"""Configuration settings for the application."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # Define the settings with default values and types
    # These will be loaded from environment variables or a .env file if not provided
    API_PORT: int = 8000
    DEBUG: bool = True
    DATA_DIR: str = "./data"
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical

    # LLM Configuration
    LLM_BACKEND: str = "openai"  # Options: openai, anthropic, http
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_BASE_URL: str | None = None
    ANTHROPIC_API_KEY: str | None = None
    ANTHROPIC_MODEL: str = "claude-3-5-haiku-latest"
    LLM_ENDPOINT: str = "http://tgi:8080/v1/chat/completions"  # OpenAI-compatible endpoint
    LLM_TIMEOUT: float = 120.0
    LLM_TEMPERATURE: float = 0.7

    # Agent Configuration
    MAX_MESSAGES: int = 100
    MAX_STEPS: int = 10
    TERMINATE_TOOL: str = "terminate"
    MAX_FINISHED_FLOWS: int = 50  # finished flows kept for progress queries

    # Tool API Keys
    SERPER_API_KEY: str | None = None
    AMADEUS_API_KEY: str | None = None
    AMADEUS_API_SECRET: str | None = None
    AMADEUS_ENV: str = "test"  # Options: test, production
    AMAP_API_KEY: str | None = None

    # Appended to every agent system prompt, e.g. "vegetarian, no red-eye flights"
    TRAVEL_PREFERENCES: str | None = None

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"


SECRET_FIELDS = {
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "SERPER_API_KEY",
    "AMADEUS_API_KEY",
    "AMADEUS_API_SECRET",
    "AMAP_API_KEY",
}

settings = Settings()
