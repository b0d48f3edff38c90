from fastapi import APIRouter, Depends, Response

from schemas.auth import LoginRequest, LoginResponse, MessageResponse, UserResponse, VerificationRequest
from schemas.user import UserDTO
from services.email_service import EmailService, get_email_service
from services.verification_service import issue_verification_code, verify_code
from models.user import User
from utils.errors import AuthError, NotFoundError
from utils.logger_factory import new_logger
from utils.request_context import UNAUTHORIZED_MESSAGE, RequestContext, get_request_context

router = APIRouter(prefix="/auth")

CODE_SENT_MESSAGE = "Código de verificação enviado"
CODE_NOT_SENT_MESSAGE = "Código gerado (email não enviado)"
LOGGED_OUT_MESSAGE = "Sessão encerrada"


@router.post("/login", response_model=LoginResponse, response_model_exclude_none=True)
def login(
    payload: LoginRequest,
    ctx: RequestContext = Depends(get_request_context),
    email_service: EmailService = Depends(get_email_service),
):
    log = new_logger("login")
    log.info(f"Login requested for {payload.email}")
    result = issue_verification_code(ctx.db, payload.email, email_service)
    if result.delivered:
        return LoginResponse(message=CODE_SENT_MESSAGE)

    response = LoginResponse(message=CODE_NOT_SENT_MESSAGE, warning=result.warning.reason)
    if not ctx.settings.is_production:
        response.debug_code = result.code
    return response


@router.post("/verify", response_model=UserResponse)
def verify(
    payload: VerificationRequest,
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
):
    log = new_logger("verify")
    log.info(f"Verifying code for {payload.email}")
    result = verify_code(ctx.db, payload.email, payload.code)
    if not result.user:
        return UserResponse(user=None)

    record = ctx.sessions.create(result.user.id)
    ctx.sessions.set_cookie(response, record)
    log.info(f"User {result.user.id} signed in")
    return UserResponse(user=UserDTO.model_validate(result.user))


@router.get("/me", response_model=UserResponse)
def me(response: Response, ctx: RequestContext = Depends(get_request_context)):
    log = new_logger("me")
    record = ctx.require_session()
    user = ctx.db.query(User).filter(User.id == record.user_id).first()
    if not user:
        log.warning(f"Session {record.id[:8]}... points at missing user {record.user_id}")
        raise NotFoundError("Usuário não encontrado")
    if not user.is_active:
        log.warning(f"Session {record.id[:8]}... belongs to deactivated user {user.id}, ending it")
        ctx.sessions.destroy(record.id)
        raise AuthError(UNAUTHORIZED_MESSAGE)

    ctx.sessions.touch(record)
    ctx.sessions.set_cookie(response, record)
    return UserResponse(user=UserDTO.model_validate(user))


@router.post("/logout", response_model=MessageResponse)
def logout(response: Response, ctx: RequestContext = Depends(get_request_context)):
    log = new_logger("logout")
    if ctx.sessions.destroy(ctx.session_id):
        log.info("Session destroyed")
    ctx.sessions.clear_cookie(response)
    return MessageResponse(message=LOGGED_OUT_MESSAGE)
