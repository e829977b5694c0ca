import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base

from threatmonitor.config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()


def create_db_engine(database_url: str) -> Engine:
    """Build the engine for the rate-limit store (MySQL in production)"""
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False})
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20
    )


engine = create_db_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind: Engine = None):
    """Initialize database tables"""
    # Models must be imported so they register with 'Base'
    import threatmonitor.models  # noqa: F401

    bind = bind or engine
    logger.info("🔄 Creating threat-monitor tables on %s", bind.url.render_as_string(hide_password=True))
    Base.metadata.create_all(bind=bind)
    logger.info("✅ Tables ready")
