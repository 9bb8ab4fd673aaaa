from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from deadline_alerts.config import settings

engine = create_engine(settings.database_url_fixed, pool_pre_ping=True)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Yield a request-scoped session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
