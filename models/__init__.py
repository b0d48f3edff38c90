from .user import User
from .verification_code import VerificationCode
from .auth_session import AuthSession

__all__ = ['User', 'VerificationCode', 'AuthSession']
