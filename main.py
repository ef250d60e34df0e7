import logging
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from app.config import configure_logging
from app.database import create_db_and_tables
from app.exceptions import ConflictError, NotFoundError, UnauthorizedError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup: configure logging and create database tables
    configure_logging()
    create_db_and_tables()
    logger.info("Prediction league service started")
    yield
    # Shutdown: cleanup if needed


# Initialize FastAPI app
app = FastAPI(
    title="Prediction League",
    description="Settle football prediction rounds: results, points, boosts, stats and prizes",
    version="1.0.0",
    lifespan=lifespan
)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": exc.message})


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError):
    logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": exc.message})


@app.exception_handler(UnauthorizedError)
async def unauthorized_handler(request: Request, exc: UnauthorizedError):
    logger.warning("Refused %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": exc.message})


# Include routers
from app.routers import admin, tasks, boosts, leagues

app.include_router(admin.router, tags=["admin"])
app.include_router(tasks.router, tags=["tasks"])
app.include_router(boosts.router, tags=["boosts"])
app.include_router(leagues.router, tags=["leagues"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
