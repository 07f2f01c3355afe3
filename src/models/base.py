"""SQLAlchemy base configuration and session management."""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from config.settings import get_settings

settings = get_settings()

def make_engine(database_url: str):
    """Create an engine; pool sizing only applies to server databases."""
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False}
        )
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20
    )

# Create database engine
engine = make_engine(settings.DATABASE_URL)

# Session factory. Objects stay readable after commit because the
# repository hands detached positions to the monitoring core.
SessionLocal = sessionmaker(
    autocommit=False, autoflush=False, expire_on_commit=False, bind=engine
)

# Base class for all models
Base = declarative_base()
