import logging

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

from storefront.config import Settings

logger = logging.getLogger(__name__)

Base = declarative_base()


# ======================================================
# DATABASE CONNECTION
# ======================================================

def create_db_engine(settings: Settings) -> Engine:
    url = settings.database_url

    if url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        # In-memory databases live inside a single connection
        if url in ("sqlite://", "sqlite:///:memory:"):
            options["poolclass"] = StaticPool
        return create_engine(url, **options)

    return create_engine(
        url,
        pool_pre_ping=True,       # drops stale connections
        pool_size=5,
        max_overflow=2,
        pool_timeout=30,
        pool_recycle=300,
        connect_args={"connect_timeout": 10},
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )


def init_database(engine: Engine) -> None:
    """Create every table known to the ORM. Safe to run on every startup."""
    import storefront.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Database verified | url=%s", engine.url.render_as_string(hide_password=True))


# ======================================================
# DEPENDENCY
# ======================================================

def get_db(request: Request):
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
