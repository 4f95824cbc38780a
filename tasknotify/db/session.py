"""Database engine and session management."""

from collections.abc import Callable

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from tasknotify.config import get_settings

SessionFactory = Callable[[], Session]


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine for the given URL.

    postgresql:// URLs are switched to the psycopg v3 driver; SQLite
    connections are opened for use from the background executors.
    """
    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+psycopg://", 1)

    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )

    return create_engine(database_url, echo=echo, pool_pre_ping=True)


def make_session_factory(engine: Engine) -> SessionFactory:
    """Return a zero-argument callable that opens a new Session on engine."""

    def factory() -> Session:
        return Session(engine, expire_on_commit=False)

    return factory


def init_db(engine: Engine) -> None:
    """Create all tables known to SQLModel."""
    # Import models to register them with SQLModel
    from tasknotify.models import AuditLog, Task, User  # noqa: F401

    SQLModel.metadata.create_all(engine)


_engine: Engine | None = None


def get_engine() -> Engine:
    """Get or create the process-wide engine from settings."""
    global _engine
    if _engine is None:
        _engine = build_engine(get_settings().DATABASE_URL)
    return _engine
