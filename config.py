import os
from typing import Optional

from dotenv import load_dotenv
from fastapi import Request
from pydantic import BaseModel

from utils.logger_factory import new_logger

ALLOWED_EMAIL_DOMAIN = "@nextest.com.br"
CODE_EXPIRY_MINUTES = 10
SESSION_TTL_HOURS = 24

DEFAULT_DATABASE_URL = "sqlite:///./nextest_portal.db"
DEFAULT_SESSION_SECRET = "nextest-secret"


class Settings(BaseModel):
    database_url: str = DEFAULT_DATABASE_URL
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_pass: Optional[str] = None
    smtp_from: str = "Portal Nextest <noreply@nextest.com.br>"
    session_secret: str = DEFAULT_SESSION_SECRET
    environment: str = "development"
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def email_configured(self) -> bool:
        return bool(self.smtp_user and self.smtp_pass)

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "Settings":
        """
        Build the settings once at startup from the process environment.
        A .env file, when present, is loaded first and never overrides
        variables that are already set.
        """
        load_dotenv(dotenv_path=dotenv_path)
        log = new_logger("settings")

        database_url = os.getenv("DATABASE_URL")
        if not database_url:
            log.warning(f"DATABASE_URL not set, falling back to {DEFAULT_DATABASE_URL}")
            database_url = DEFAULT_DATABASE_URL

        settings = cls(
            database_url=database_url,
            smtp_host=os.getenv("SMTP_HOST", "smtp.gmail.com"),
            smtp_port=int(os.getenv("SMTP_PORT", "587")),
            smtp_user=os.getenv("SMTP_USER") or None,
            smtp_pass=os.getenv("SMTP_PASS") or None,
            smtp_from=os.getenv("SMTP_FROM", "Portal Nextest <noreply@nextest.com.br>"),
            session_secret=os.getenv("SESSION_SECRET", DEFAULT_SESSION_SECRET),
            environment=os.getenv("APP_ENV") or os.getenv("NODE_ENV") or "development",
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
        if settings.is_production and settings.session_secret == DEFAULT_SESSION_SECRET:
            log.warning("SESSION_SECRET is using the built-in default in production")
        if not settings.email_configured:
            log.warning("SMTP_USER/SMTP_PASS not set. Verification codes will not be emailed.")
        return settings


def get_settings(request: Request) -> Settings:
    return request.app.state.settings
