from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from .config import settings
from .models.store import Base

database_url = settings.resolved_database_url

# check_same_thread=False: the tick sweep uses the store from worker threads
connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}

engine = create_engine(database_url, connect_args=connect_args, pool_pre_ping=True)

# SessionLocal — основной способ работы с БД
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)


def init_db() -> None:
    """Create store tables if missing."""
    Base.metadata.create_all(bind=engine)
