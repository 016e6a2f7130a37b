from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from lessonbook.config import settings
from lessonbook.models import Base

engine = create_engine(settings.DATABASE_URL, echo=False, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False,
                            expire_on_commit=False)


def init_db(bind=None):
    """Create all tables."""
    Base.metadata.create_all(bind=bind or engine)


def get_db():
    """FastAPI dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
