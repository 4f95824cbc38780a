"""FastAPI application entry point.

Serves the Dapr push subscription for the notification consumer and a
health check. Run with: uvicorn tasknotify.main:app
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from tasknotify import __version__
from tasknotify.api.subscriptions import router as subscriptions_router
from tasknotify.db.session import get_engine, init_db
from tasknotify.pipeline import get_pipeline


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create database tables and build the pipeline on startup."""
    init_db(get_engine())
    pipeline = get_pipeline()
    yield
    pipeline.close()


app = FastAPI(
    title="Task Notification Pipeline",
    description="Push endpoint for task notifications delivered by Dapr pub/sub",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(subscriptions_router)


@app.get("/health")
def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}
