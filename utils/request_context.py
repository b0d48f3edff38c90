from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from config import Settings, get_settings
from database import get_db
from models.auth_session import AuthSession
from utils.errors import AuthError
from utils.session_store import SESSION_COOKIE_NAME, SessionStore

UNAUTHORIZED_MESSAGE = "Não autorizado"


@dataclass
class RequestContext:
    """Per-request handles: settings, the DB session and the session store."""
    settings: Settings
    db: Session
    sessions: SessionStore
    session_id: Optional[str] = None

    def current_session(self) -> Optional[AuthSession]:
        return self.sessions.get(self.session_id)

    def require_session(self) -> AuthSession:
        record = self.current_session()
        if not record:
            raise AuthError(UNAUTHORIZED_MESSAGE)
        return record


def get_request_context(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> RequestContext:
    sessions = SessionStore(db, settings)
    session_id = sessions.unsign(request.cookies.get(SESSION_COOKIE_NAME))
    return RequestContext(settings=settings, db=db, sessions=sessions, session_id=session_id)
