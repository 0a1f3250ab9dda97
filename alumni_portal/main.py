from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from alumni_portal.core.config import settings
from alumni_portal.core.errors import PortalError, portal_error_handler, request_validation_handler
from alumni_portal.core.logging import configure_logging
from alumni_portal.db.session import init_db

# Import routers
from alumni_portal.api.auth import router as auth_router
from alumni_portal.api.cashfree_webhook import router as cashfree_webhook_router
from alumni_portal.api.members import router as members_router
from alumni_portal.api.membership import router as membership_router
from alumni_portal.api.payments import router as payments_router

@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield

def create_app() -> FastAPI:
    configure_logging(settings.log_level)
    app = FastAPI(title=settings.app_name, lifespan=lifespan)

    app.add_exception_handler(PortalError, portal_error_handler)
    # schema failures answer 400 with the same {error} body
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    @app.get("/health")
    def health():
        return {"status" : "ok", "env" : settings.app_env}

    # Include authentication routes
    app.include_router(auth_router)
    # Include membership plan / status routes
    app.include_router(membership_router)
    # Include order creation and verification routes
    app.include_router(payments_router)
    # Include Cashfree webhook routes
    app.include_router(cashfree_webhook_router)
    # Include member-only routes
    app.include_router(members_router)

    return app

app = create_app()
