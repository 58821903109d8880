from pydantic_settings import BaseSettings
from pathlib import Path


class Settings(BaseSettings):
    ENVIRONMENT: str = "development"  # development | test | staging | production
    APP_NAME: str = "DOPE Logbook API"
    API_VERSION: str = "1.0.0"
    SECRET_KEY: str = "change-me-in-production"
    DATABASE_URL: str = "sqlite:///data/dope.db"
    DATA_DIR: Path = Path("data")
    CORS_ORIGINS: list[str] = [
        "http://localhost:3001",
        "http://localhost:8081",
    ]
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRY_HOURS: int = 24
    LOG_LEVEL: str = "INFO"
    SECURITY_HEADERS_ENABLED: bool = True
    SECURITY_CSP: str = (
        "default-src 'none'; "
        "frame-ancestors 'none'; "
        "base-uri 'none';"
    )
    RATE_LIMIT_AUTH_LOGIN_ATTEMPTS: int = 10
    RATE_LIMIT_AUTH_LOGIN_WINDOW_SECONDS: int = 300
    RATE_LIMIT_AUTH_REGISTER_ATTEMPTS: int = 5
    RATE_LIMIT_AUTH_REGISTER_WINDOW_SECONDS: int = 600
    RATE_LIMIT_API_REQUESTS: int = 300
    RATE_LIMIT_API_WINDOW_SECONDS: int = 60
    PAGINATION_DEFAULT_LIMIT: int = 10
    PAGINATION_MAX_LIMIT: int = 100

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def is_production_like(self) -> bool:
        return (self.ENVIRONMENT or "").strip().lower() in {"production", "prod", "staging"}

    def validate_security_configuration(self) -> None:
        if not self.is_production_like:
            return

        errors: list[str] = []
        if self.SECRET_KEY == "change-me-in-production":
            errors.append("SECRET_KEY must be changed from the default value")
        if len((self.SECRET_KEY or "").strip()) < 32:
            errors.append("SECRET_KEY must be at least 32 characters")
        if any(origin.strip() == "*" for origin in self.CORS_ORIGINS):
            errors.append("CORS_ORIGINS must not contain a wildcard in production-like environments")
        if errors:
            joined = "; ".join(errors)
            raise RuntimeError(f"Insecure production configuration: {joined}")


settings = Settings()
settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
