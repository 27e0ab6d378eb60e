from fastapi import FastAPI, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

# Internal imports
from config import config
from data.database import create_tables, engine
from api.experiment_routes import experiment_router
from api.events_routes import events_router
from api.visitor_routes import visitor_router

import contextlib
import logging
import middleware

logger = logging.getLogger(__name__)


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the schema on startup (fatal on failure) and release pooled connections on shutdown."""
    logger.info("Landing experiments starting with %s", config)
    try:
        create_tables()
    except SQLAlchemyError:
        logger.exception("Could not create database tables.")
        raise
    logger.info("Database tables ready.")

    yield

    engine.dispose()
    logger.info("Landing experiments stopped.")


app = FastAPI(
    lifespan=lifespan,
    title="Landing Experiments API",
    version="1.0.0",
    description="Landing page A/B testing: visitor assignment, event tracking, and significance reporting."
)

app.add_middleware(middleware.RequestIDMiddleware)

app.include_router(visitor_router)
app.include_router(events_router)
app.include_router(experiment_router)


@app.get("/health")
def health_check():
    """Liveness plus a round trip to the database."""
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("health check: database unreachable: %s", e)
        return JSONResponse(content={"status": "unhealthy", "database": "unreachable"},
                            status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return {"status": "healthy", "database": "ok"}
