"""
Database engine, session factory and declarative base.
"""

from typing import Generator
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session

from app.config import settings

db_url = settings.database_url

# SQLite 需要允許跨執行緒使用連線
connect_args = {"check_same_thread": False} if db_url.startswith("sqlite") else {}

engine = create_engine(db_url, connect_args=connect_args, pool_pre_ping=True)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """FastAPI 依賴：每個請求一個資料庫 session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
