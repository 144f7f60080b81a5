from sqlalchemy import create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker

from taskcore.config import SETTINGS

_POOL_OPTIONS = {} if SETTINGS.database_url.startswith("sqlite") else {"pool_size": SETTINGS.db_pool_size}

engine = create_engine(SETTINGS.database_url, pool_pre_ping=True, **_POOL_OPTIONS)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
Base = declarative_base()


def init_db() -> None:
    with engine.connect() as connection:
        connection.execute(text("SELECT 1"))
