# civicwatch/core/config.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv, find_dotenv

# root .env first, then civicwatch/.env (do not override values already loaded)
load_dotenv(find_dotenv(usecwd=True))
load_dotenv(Path(__file__).resolve().parent.parent / ".env", override=False)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip().lstrip("-").isdigit():
        return default
    return int(raw)


@dataclass
class Settings:
    """
    Runtime configuration. Values come from the environment (.env supported);
    tests build their own instance instead of touching os.environ.
    """

    database_url: str = "sqlite:///./civicwatch.db"
    secret_key: str = "change-me"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7
    superadmin_email: str = ""
    app_env: str = "production"
    log_level: str = "INFO"
    enable_create_all: bool = True
    enable_scheduler: bool = True
    upload_dir: str = "./uploads"
    upload_base_url: str = "/uploads"
    area_code_max_attempts: int = 10
    cors_origins: list = field(default_factory=list)

    @property
    def is_development(self) -> bool:
        return self.app_env.lower() in {"dev", "development", "local"}

    @classmethod
    def from_env(cls) -> "Settings":
        origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            secret_key=os.getenv("SECRET_KEY", cls.secret_key),
            algorithm=os.getenv("JWT_ALGORITHM", cls.algorithm),
            access_token_expire_minutes=_env_int(
                "ACCESS_TOKEN_EXPIRE_MINUTES", cls.access_token_expire_minutes
            ),
            superadmin_email=os.getenv("SUPERADMIN_EMAIL", "").strip().lower(),
            app_env=os.getenv("APP_ENV", cls.app_env),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
            enable_create_all=_env_bool("ENABLE_CREATE_ALL", "1"),
            enable_scheduler=_env_bool("ENABLE_SCHEDULER", "1"),
            upload_dir=os.getenv("UPLOAD_DIR", cls.upload_dir),
            upload_base_url=os.getenv("UPLOAD_BASE_URL", cls.upload_base_url).rstrip("/"),
            area_code_max_attempts=max(1, _env_int("AREA_CODE_MAX_ATTEMPTS", 10)),
            cors_origins=origins,
        )


settings = Settings.from_env()
