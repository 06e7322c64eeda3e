"""
FastAPI application factory and entry point.

create_app() builds and configures the application:
  1. Settings - loaded once (or passed in by tests) and stored on app.state
  2. Logging - standard library logging at the configured level
  3. Security objects - token issuer and the configured auth strategy
  4. Database - async engine + session factory on app.state
  5. Lifespan manager - table creation on startup, engine disposal on shutdown
  6. Middleware - CORS and the signed session cookie
  7. Exception handlers - map domain errors to HTTP responses
  8. Routers - /auth and /users

Running locally:
    uvicorn authapi.main:create_app --factory --reload

Startup fails with a pydantic ValidationError if SECRET_KEY,
SESSION_SECRET or DATABASE_URL is missing. The service never runs with a
default signing secret.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware

from authapi.config import Settings
from authapi.database import Base, build_engine, build_sessionmaker
from authapi.exceptions import register_exception_handlers
from authapi.routers import auth, users
from authapi.security import TokenIssuer
from authapi.strategies import select_authenticator

logger = logging.getLogger("authapi.api")


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
      Creates all database tables if they don't exist. In production you'd
      manage the schema with migrations instead.

    Shutdown:
      Disposes of the database engine, closing all connections cleanly.
    """
    # --- Startup ---
    async with app.state.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(
        "%s %s started (auth strategy: %s)",
        app.state.settings.APP_NAME,
        app.state.settings.APP_VERSION,
        app.state.settings.AUTH_STRATEGY.value,
    )
    yield
    # --- Shutdown ---
    await app.state.engine.dispose()
    logger.info("Shutdown complete")


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Configuration to use. Read from the environment when omitted.
    """
    if settings is None:
        settings = Settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Account registration, login, password reset and role-based access",
        lifespan=lifespan,
    )

    token_issuer = TokenIssuer(settings)
    engine = build_engine(settings)

    app.state.settings = settings
    app.state.token_issuer = token_issuer
    app.state.authenticator = select_authenticator(settings.AUTH_STRATEGY, token_issuer)
    app.state.engine = engine
    app.state.sessionmaker = build_sessionmaker(engine)

    # -----------------------------------------------------------------------
    # Middleware
    # -----------------------------------------------------------------------

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Signed session cookie; used by the SESSION strategy and USE_SESSION
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SESSION_SECRET,
        max_age=settings.SESSION_MAX_AGE_SECONDS,
        https_only=settings.is_production,
        same_site="lax",
    )

    # -----------------------------------------------------------------------
    # Exception handlers and routers
    # -----------------------------------------------------------------------

    register_exception_handlers(app)

    app.include_router(auth.router, prefix="/auth", tags=["Auth"])
    app.include_router(users.router, prefix="/users", tags=["Users"])

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint for load balancers."""
        return {"status": "ok", "version": settings.APP_VERSION}

    return app
