"""
Out-of-band user management. The login flow itself never creates users.
"""
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.user import User
from services.verification_service import INVALID_DOMAIN_MESSAGE, find_user_by_email, is_allowed_email, normalize_email
from utils.clock import utcnow
from utils.errors import ValidationError
from utils.logger_factory import new_logger

log = new_logger("user_service")


def create_user(db: Session, name: str, email: str, department: str, password: Optional[str] = None) -> User:
    email = normalize_email(email)
    if not is_allowed_email(email):
        raise ValidationError(INVALID_DOMAIN_MESSAGE)
    if not (name or "").strip() or not (department or "").strip():
        raise ValidationError("Nome e departamento são obrigatórios")
    if find_user_by_email(db, email):
        raise ValidationError(f"Já existe um usuário com o email {email}")

    user = User(
        name=name.strip(),
        email=email,
        department=department.strip(),
        password=password,
        is_active=True,
        created_at=utcnow(),
    )
    try:
        db.add(user)
        db.commit()
        db.refresh(user)
    except IntegrityError:
        db.rollback()
        log.exception(f"Duplicate user insert for {email}")
        raise ValidationError(f"Já existe um usuário com o email {email}")
    log.info(f"User created [{user.to_dict()}]")
    return user


def set_user_active(db: Session, email: str, active: bool) -> Optional[User]:
    user = find_user_by_email(db, normalize_email(email))
    if not user:
        return None
    user.is_active = active
    db.commit()
    log.info(f"User {user.id} is_active={active}")
    return user
