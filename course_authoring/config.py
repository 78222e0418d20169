from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./authoring.db"
    REDIS_URL: str = "redis://localhost:6379/1"
    SECRET_KEY: str = "dev-secret-authoring"
    JWT_ALGORITHM: str = "HS256"
    LOG_LEVEL: str = "INFO"
    CACHE_TTL: int = 300  # 5 minutes

    # Автосохранение
    AUTOSAVE_DEBOUNCE_SECONDS: float = 1.0
    SAVED_DISPLAY_SECONDS: float = 2.0
    ERROR_DISPLAY_SECONDS: float = 3.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
