import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # API settings
    app_name: str = os.getenv("APP_NAME", "Library Management System API")
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", os.getenv("PORT", "3001")))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Database settings
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./library.db")
    database_echo: bool = _env_flag("DATABASE_ECHO")
    database_lock_timeout: float = float(os.getenv("DATABASE_LOCK_TIMEOUT", "30"))

    # Security settings. No default secret: the app refuses to start without one.
    jwt_secret_key: Optional[str] = os.getenv("JWT_SECRET")
    jwt_algorithm: str = os.getenv("JWT_ALGORITHM", "HS256")
    jwt_expiration_minutes: int = int(os.getenv("JWT_EXPIRATION_MINUTES", "10080"))  # 7 days
    bcrypt_rounds: int = int(os.getenv("BCRYPT_ROUNDS", "12"))
    # Unset means admin signup is disabled
    admin_invite_code: Optional[str] = os.getenv("ADMIN_INVITE_CODE") or None

    # Circulation rules
    max_active_checkouts: int = int(os.getenv("MAX_ACTIVE_CHECKOUTS", "3"))


settings = Settings()
