from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    SERVICE_NAME: str = "travel_agent"

    # Completion service
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4o-mini"
    LLM_TEMPERATURE: float = 0.7
    LLM_MAX_TOKENS: int = 5000
    EXTRACTION_TEMPERATURE: float = 0.3
    CLASSIFICATION_TEMPERATURE: float = 0.1
    CLASSIFICATION_MAX_TOKENS: int = 50
    LLM_TIMEOUT_SECONDS: float = 30.0

    # Conversation history (optional - uses in-memory if MONGO_URI is not set)
    MONGO_URI: str = ""
    MONGO_DB: str = "travel_agent"
    CONTEXT_WINDOW_SIZE: int = 20
    MAX_CONTEXT_TOKENS: int = 10000

    # Search providers
    PROVIDER_TIMEOUT_SECONDS: float = 20.0
    FLIGHT_PROVIDER_MARKER: str = "SerpAPI"
    MAX_FLIGHT_CARDS: int = 3
    MAX_HOTEL_CARDS: int = 5

    # Time context
    DEFAULT_TIMEZONE: str = "UTC"

settings = Settings()
