import secrets
from datetime import datetime, timedelta
from typing import Optional

from jose import JWTError, jwt
from sqlalchemy import delete
from sqlalchemy.orm import Session

from config import SESSION_TTL_HOURS, Settings
from models.auth_session import AuthSession
from utils.clock import utcnow
from utils.logger_factory import new_logger

SESSION_COOKIE_NAME = "nextest_session"
ALGORITHM = "HS256"


class SessionStore:
    """
    Server-side sessions kept in `auth_sessions`. The browser only holds a
    signed token naming the session id; the user id never leaves the server.
    """

    def __init__(self, db: Session, settings: Settings, ttl: timedelta = timedelta(hours=SESSION_TTL_HOURS)):
        self.db = db
        self.settings = settings
        self.ttl = ttl

    def sign(self, session_id: str) -> str:
        return jwt.encode({"sid": session_id}, self.settings.session_secret, algorithm=ALGORITHM)

    def unsign(self, token: Optional[str]) -> Optional[str]:
        if not token:
            return None
        log = new_logger("session_unsign")
        try:
            payload = jwt.decode(token, self.settings.session_secret, algorithms=[ALGORITHM])
        except JWTError as e:
            log.warning(f"Rejected session cookie: {e}")
            return None
        sid = payload.get("sid")
        return sid if isinstance(sid, str) else None

    def create(self, user_id: str, now: Optional[datetime] = None) -> AuthSession:
        log = new_logger("session_create")
        now = now or utcnow()
        record = AuthSession(
            id=secrets.token_urlsafe(32),
            user_id=user_id,
            created_at=now,
            expires_at=now + self.ttl,
        )
        try:
            self.db.add(record)
            self.db.commit()
            self.db.refresh(record)
        except Exception:
            self.db.rollback()
            log.exception("Failed to persist session")
            raise
        log.info(f"Session created for user {user_id}")
        return record

    def get(self, session_id: Optional[str], now: Optional[datetime] = None) -> Optional[AuthSession]:
        """Return the live session, or None when unknown or past its expiry."""
        if not session_id:
            return None
        now = now or utcnow()
        record = self.db.query(AuthSession).filter(AuthSession.id == session_id).first()
        if not record or record.expires_at <= now:
            return None
        return record

    def touch(self, record: AuthSession, now: Optional[datetime] = None) -> AuthSession:
        """Slide the expiry window forward from `now`."""
        now = now or utcnow()
        record.expires_at = now + self.ttl
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return record

    def destroy(self, session_id: Optional[str]) -> bool:
        if not session_id:
            return False
        deleted = self.db.execute(delete(AuthSession).where(AuthSession.id == session_id)).rowcount
        self.db.commit()
        return deleted > 0

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        deleted = self.db.execute(delete(AuthSession).where(AuthSession.expires_at <= now)).rowcount
        self.db.commit()
        new_logger("session_purge").info(f"Purged {deleted} expired session(s)")
        return deleted

    def set_cookie(self, response, record: AuthSession) -> None:
        response.set_cookie(
            key=SESSION_COOKIE_NAME,
            value=self.sign(record.id),
            max_age=int(self.ttl.total_seconds()),
            httponly=True,
            secure=self.settings.is_production,
            samesite="lax",
            path="/",
        )

    def clear_cookie(self, response) -> None:
        response.delete_cookie(
            key=SESSION_COOKIE_NAME,
            httponly=True,
            secure=self.settings.is_production,
            samesite="lax",
            path="/",
        )
