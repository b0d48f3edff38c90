"""
One-time code login: issuing, verifying and purging verification codes.
"""
import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import and_, delete, func, or_, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from tenacity import before_sleep_log, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from config import ALLOWED_EMAIL_DOMAIN, CODE_EXPIRY_MINUTES
from models.user import User
from models.verification_code import VerificationCode
from services.email_service import EmailDeliveryError, EmailNotConfigured, EmailService
from utils.clock import utcnow
from utils.errors import NotFoundError, ValidationError
from utils.logger_factory import new_logger

CODE_LENGTH = 6
CODE_PATTERN = re.compile(r"^\d{6}$")

INVALID_DOMAIN_MESSAGE = f"Email deve ser do domínio {ALLOWED_EMAIL_DOMAIN}"
USER_NOT_FOUND_MESSAGE = "Usuário não encontrado. Crie uma conta primeiro."
INVALID_CODE_MESSAGE = "Código inválido ou expirado"
MALFORMED_CODE_MESSAGE = "Código deve conter 6 dígitos"
MISSING_EMAIL_MESSAGE = "Email é obrigatório"

verification_retry_logger = new_logger("verification_code_retry")

db_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type(OperationalError),
    before_sleep=before_sleep_log(verification_retry_logger, logging.WARNING),
    reraise=True,
)


@dataclass
class DeliveryWarning:
    """Non-fatal outcome of an issuance whose email did not go out."""
    reason: str
    detail: str


@dataclass
class IssueResult:
    email: str
    code: str
    expires_at: datetime
    warning: Optional[DeliveryWarning] = None

    @property
    def delivered(self) -> bool:
        return self.warning is None


@dataclass
class VerifyResult:
    code_id: str
    user: Optional[User]


def generate_verification_code() -> str:
    """Uniform six digit code in 000000-999999, leading zeros kept."""
    return f"{secrets.randbelow(10 ** CODE_LENGTH):0{CODE_LENGTH}d}"


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def is_allowed_email(email: str) -> bool:
    return email.endswith(ALLOWED_EMAIL_DOMAIN) and len(email) > len(ALLOWED_EMAIL_DOMAIN)


def find_user_by_email(db: Session, email: str) -> Optional[User]:
    # Rows written out-of-band may carry mixed case
    return db.query(User).filter(func.lower(User.email) == email.lower()).first()


@db_retry
def _store_code(db: Session, email: str, code: str, now: datetime) -> VerificationCode:
    log = new_logger("store_verification_code")
    expires_at = now + timedelta(minutes=CODE_EXPIRY_MINUTES)

    verification_code = VerificationCode(
        email=email,
        code=code,
        created_at=now,
        expires_at=expires_at,
        used=False,
    )
    try:
        # One active code per email: older pending codes are superseded
        superseded = db.execute(
            update(VerificationCode)
            .where(VerificationCode.email == email, VerificationCode.used.is_(False))
            .values(used=True)
        ).rowcount
        if superseded:
            log.info(f"Superseded {superseded} pending code(s) for {email}")
        db.add(verification_code)
        db.commit()
        db.refresh(verification_code)
    except OperationalError:
        db.rollback()
        log.exception("OperationalError while storing verification code, will retry.")
        raise
    except Exception:
        db.rollback()
        log.exception("Database commit failed while storing verification code.")
        raise
    log.info(f"Verification code stored [{verification_code.to_dict()}]")
    return verification_code


def issue_verification_code(
    db: Session,
    email: Optional[str],
    email_service: EmailService,
    now: Optional[datetime] = None,
) -> IssueResult:
    """
    Issue a fresh code for a portal user and try to email it.

    Raises ValidationError for a missing or foreign-domain email and
    NotFoundError when no active user owns the address. Delivery problems
    never fail the issuance; they come back as `IssueResult.warning`.
    """
    log = new_logger("issue_verification_code")
    email = normalize_email(email)
    if not email or not is_allowed_email(email):
        log.info(f"Rejected login for non-corporate email [{email}]")
        raise ValidationError(INVALID_DOMAIN_MESSAGE)

    user = find_user_by_email(db, email)
    if not user or not user.is_active:
        log.info(f"No active user for {email}")
        raise NotFoundError(USER_NOT_FOUND_MESSAGE)

    now = now or utcnow()
    code = generate_verification_code()
    verification_code = _store_code(db, email, code, now)

    warning = None
    try:
        email_service.send_verification_code(email, code)
    except EmailNotConfigured as e:
        log.warning(f"Verification code for {email} not emailed: {e}")
        warning = DeliveryWarning(reason="email_not_configured", detail=str(e))
    except EmailDeliveryError as e:
        log.error(f"Verification code for {email} not emailed: {e}")
        warning = DeliveryWarning(reason="email_delivery_failed", detail=str(e))

    return IssueResult(email=email, code=code, expires_at=verification_code.expires_at, warning=warning)


def claim_code(db: Session, code_id: str) -> bool:
    """
    Flip a pending code to used with a conditional update. Only the caller
    whose update touched exactly one row owns the code.
    """
    log = new_logger("claim_code")
    try:
        claimed = db.execute(
            update(VerificationCode)
            .where(VerificationCode.id == code_id, VerificationCode.used.is_(False))
            .values(used=True)
            .execution_options(synchronize_session=False)
        ).rowcount
        db.commit()
    except OperationalError:
        db.rollback()
        log.exception("OperationalError while consuming verification code.")
        raise
    except Exception:
        db.rollback()
        log.exception("Database commit failed while consuming verification code.")
        raise
    return claimed == 1


@db_retry
def _find_pending_code(db: Session, email: str, code: str, now: datetime) -> Optional[str]:
    """Id of the newest pending, unexpired code matching email and code."""
    candidate = (
        db.query(VerificationCode.id)
        .filter(
            VerificationCode.email == email,
            VerificationCode.code == code,
            VerificationCode.used.is_(False),
            VerificationCode.expires_at > now,
        )
        .order_by(VerificationCode.created_at.desc())
        .first()
    )
    return candidate.id if candidate else None


def verify_code(
    db: Session,
    email: Optional[str],
    code: Optional[str],
    now: Optional[datetime] = None,
) -> VerifyResult:
    """Consume a pending code for the email and resolve its user."""
    log = new_logger("verify_code")
    email = normalize_email(email)
    code = (code or "").strip()
    if not email:
        raise ValidationError(MISSING_EMAIL_MESSAGE)
    if not CODE_PATTERN.match(code):
        log.info(f"Malformed code submitted for {email}")
        raise ValidationError(MALFORMED_CODE_MESSAGE)

    # Only the read is retried; the claim commits and must not be replayed
    code_id = _find_pending_code(db, email, code, now or utcnow())
    if not code_id:
        log.info(f"No pending code matches for {email}")
        raise ValidationError(INVALID_CODE_MESSAGE)
    if not claim_code(db, code_id):
        log.warning(f"Verification code {code_id} was consumed concurrently")
        raise ValidationError(INVALID_CODE_MESSAGE)
    log.info(f"Verification code {code_id} consumed")

    user = find_user_by_email(db, email)
    if not user:
        log.error(f"Code {code_id} verified but no user exists for {email}")
    elif not user.is_active:
        log.warning(f"Code {code_id} verified for deactivated user {user.id}, no session granted")
        user = None
    return VerifyResult(code_id=code_id, user=user)


@db_retry
def purge_verification_codes(db: Session, older_than: datetime, now: Optional[datetime] = None) -> int:
    """Delete used or expired codes created before `older_than`. Returns the row count."""
    log = new_logger("purge_verification_codes")
    now = now or utcnow()
    deleted = db.execute(
        delete(VerificationCode).where(
            and_(
                VerificationCode.created_at < older_than,
                or_(VerificationCode.used.is_(True), VerificationCode.expires_at <= now),
            )
        )
    ).rowcount
    db.commit()
    log.info(f"Purged {deleted} verification code(s) created before {older_than.isoformat()}")
    return deleted
