"""
Database session management
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from sodflow.core.config import settings
from sodflow.logging_config import get_logger

logger = get_logger(__name__)

connection_string = settings.DATABASE_URL

connect_args = {}
if connection_string.startswith("sqlite"):
    # Sessions are used from the threadpool
    connect_args["check_same_thread"] = False

engine = create_engine(
    connection_string,
    echo=False,  # Set to True for SQL query logging
    pool_pre_ping=True,  # Verify connections before using
    connect_args=connect_args,
)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_database():
    """Create tables on startup (idempotent)."""
    from sodflow.db.base import Base
    import sodflow.models  # noqa: F401

    logger.info("Checking database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ready")
