from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from config import Settings
from database import build_engine, build_session_factory
from services.email_service import EmailService
from utils.errors import register_exception_handlers
from utils.logger_factory import configure_logging, new_logger

CORS_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
CORS_HEADERS = ["Content-Type", "Authorization"]


def preflight_headers(request: Request) -> dict:
    origin = request.headers.get("origin")
    headers = {
        "Access-Control-Allow-Methods": ", ".join(CORS_METHODS),
        "Access-Control-Allow-Headers": ", ".join(CORS_HEADERS),
        "Access-Control-Max-Age": "600",
    }
    if origin:
        # Credentialed requests need the concrete origin, not "*"
        headers["Access-Control-Allow-Origin"] = origin
        headers["Access-Control-Allow-Credentials"] = "true"
        headers["Vary"] = "Origin"
    else:
        headers["Access-Control-Allow-Origin"] = "*"
    return headers


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)
    log = new_logger("create_app")

    app = FastAPI(title="Portal Nextest API")
    app.state.settings = settings
    app.state.engine = build_engine(settings.database_url)
    app.state.session_factory = build_session_factory(app.state.engine)
    app.state.email_service = EmailService(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=CORS_METHODS,
        allow_headers=CORS_HEADERS,
    )

    # Registered after CORSMiddleware so it wraps it: every OPTIONS request,
    # preflight or not, is answered 200 here
    @app.middleware("http")
    async def log_request(request: Request, call_next):
        req_log = new_logger("log_request")
        req_log.info(f"INCOMING REQUEST: {request.method} {request.url.path}")
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=preflight_headers(request))
        return await call_next(request)

    register_exception_handlers(app, settings)

    @app.get("/")
    def root():
        return {"message": "Portal Nextest API deployed."}

    from api.healthcheck import router as health_router
    from api.auth import router as auth_router

    app.include_router(health_router, prefix="/api")
    app.include_router(auth_router, prefix="/api")

    log.info(f"Application created (environment={settings.environment})")
    return app


app = create_app()
