# openmarket/database.py
import logging
import os

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base, Session

logger = logging.getLogger(__name__)

# 환경변수에서 DATABASE_URL 읽기, 없으면 SQLite 기본값 사용
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./openmarket.db")

# SQLite 전용 옵션 (다른 DB에서는 불필요)
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    DATABASE_URL,
    connect_args=connect_args,
    pool_pre_ping=not DATABASE_URL.startswith("sqlite"),
)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
Base = declarative_base()


def get_db():
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()


logger.info("Using database: %s", engine.url.render_as_string(hide_password=True))
