from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    database_path: str = "finance.db"
    jwt_secret: str = "change-me"
    jwt_expire_days: int = 30
    app_env: str = "production"
    client_url: str = "http://localhost:5173"
    max_upload_bytes: int = 10 * 1024 * 1024
    ziina_api_key: str = ""
    ziina_base_url: str = "https://api.ziina.com/v1"
    ziina_webhook_secret: str = ""
    ziina_timeout_seconds: float = 30.0

    @property
    def is_development(self) -> bool:
        return self.app_env.lower() == "development"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_path=os.getenv("DATABASE_PATH", "finance.db"),
            jwt_secret=os.getenv("JWT_SECRET", "change-me"),
            jwt_expire_days=int(os.getenv("JWT_EXPIRE_DAYS", "30")),
            app_env=os.getenv("APP_ENV", "production"),
            client_url=os.getenv("CLIENT_URL", "http://localhost:5173").rstrip("/"),
            max_upload_bytes=int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024))),
            ziina_api_key=os.getenv("ZIINA_API_KEY", ""),
            ziina_base_url=os.getenv("ZIINA_BASE_URL", "https://api.ziina.com/v1").rstrip("/"),
            ziina_webhook_secret=os.getenv("ZIINA_WEBHOOK_SECRET", ""),
            ziina_timeout_seconds=float(os.getenv("ZIINA_TIMEOUT_SECONDS", "30")),
        )
