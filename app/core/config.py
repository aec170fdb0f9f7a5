from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings

load_dotenv(override=True)

DEFAULT_JWT_SECRET = "dev"


class Settings(BaseSettings):
    PROJECT_NAME: str = "Freelance Wallet Auth"
    # Application settings
    PORT: int = 5000
    HOST: str = "127.0.0.1"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    # "production" disables every verification bypass
    ENVIRONMENT: str = "development"
    FRONTEND_URL: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"

    # SQLAlchemy database URL
    DATABASE_URL: str = "sqlite:///./wallet_auth.db"

    # Session token configuration
    JWT_SECRET: str = DEFAULT_JWT_SECRET
    ENCODE_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_SECONDS: int = 3600  # 1 hour
    SESSION_COOKIE_MAX_AGE_SECONDS: int = 7 * 24 * 3600  # 7 days
    COOKIE_NAME: str = "jid"

    # Wallet login configuration
    CHALLENGE_EXPIRY_SECONDS: int = 300  # 5 minutes
    SKIP_SIGNATURE_VERIFICATION: bool = False
    ALLOW_UNVERIFIED_WALLET_LOGIN: bool = True

    # Redis settings, challenges are kept in process memory when unset
    REDIS_HOST: str | None = None
    REDIS_PORT: int = 6379
    REDIS_MAX_CONNECTIONS: int | None = 10
    REDIS_SSL: bool = False

    class Config:
        env_file = ".env"
        extra = "ignore"

    @field_validator("ENVIRONMENT")
    @classmethod
    def normalize_environment(cls, v: str) -> str:
        return (v or "development").strip().lower()

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"Invalid LOG_LEVEL. Must be one of: {allowed}")
        return v_upper

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


# Instantiate the settings
settings = Settings()
