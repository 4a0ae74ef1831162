# pasiva/db/session.py
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from pasiva.core.config import settings

# SQLite needs check_same_thread off: store calls run in the threadpool
connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(settings.DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
