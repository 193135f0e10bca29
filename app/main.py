import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

from app.config import LOG_LEVEL, CREATE_TABLES_ON_STARTUP
from app.db.redis_client import close_redis
from app.db.session import engine, init_models
from app.routers import assignment, reassignment, analytics, skills

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if CREATE_TABLES_ON_STARTUP:
        await init_models()
        logger.info("Database tables ready")
    yield
    await close_redis()
    await engine.dispose()


app = FastAPI(
    title="Consultant Assignment Engine",
    version="1.0.0",
    lifespan=lifespan,
)

# --- Register Routers ---
app.include_router(assignment.router)     # /api/v1/assignments/*
app.include_router(reassignment.router)   # /api/v1/reassignments/*
app.include_router(analytics.router)      # /api/v1/analytics/*
app.include_router(skills.router)         # /api/v1/skills/*


# --- Root health check ---
@app.get("/")
async def root():
    return {"message": "Consultant Assignment Engine is running"}
