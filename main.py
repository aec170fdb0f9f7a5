from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from app.api.endpoints import auth, health
from app.core.config import settings
from app.core.jwt_utils import check_security_settings
from app.db.session import init_db
from app.services.wallet_auth import AuthOrchestrator

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("main")

# refuse to start in production with the default signing secret
check_security_settings(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info(
        "%s %s started (environment=%s, verification=%s)",
        settings.PROJECT_NAME,
        settings.VERSION,
        settings.ENVIRONMENT,
        app.state.auth_orchestrator.mode.value,
    )
    yield


# Define the FastAPI application instance
app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    lifespan=lifespan,
)

# one orchestrator (and challenge store) per process
app.state.auth_orchestrator = AuthOrchestrator.from_settings(settings)

# CORS middleware
# any localhost origin is accepted outside production
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL, "http://localhost:3001"],
    allow_origin_regex=None if settings.is_production else r"https?://localhost(:\d+)?",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include your API routers
app.include_router(health.router)
app.include_router(auth.router, prefix="/auth")


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG
    )
