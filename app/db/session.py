import logging
import psycopg2
from psycopg2 import sql
from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker
from app.core.config import settings

logger = logging.getLogger(__name__)


def ensure_database(database_url: str):
    """Create the PostgreSQL database named in the URL if it doesn't exist."""
    url = make_url(database_url)
    if not url.drivername.startswith("postgresql"):
        return
    try:
        conn = psycopg2.connect(
            dbname="postgres",
            user=url.username,
            password=url.password,
            host=url.host,
            port=url.port or 5432,
        )
        conn.autocommit = True
        cur = conn.cursor()
        cur.execute(sql.SQL("CREATE DATABASE {}").format(sql.Identifier(url.database)))
        cur.close()
        conn.close()
    except psycopg2.errors.DuplicateDatabase:
        pass
    except psycopg2.Error as e:
        logger.warning("Could not create database %s: %s", url.database, e)


def _engine_kwargs(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        # Request handlers run in a threadpool
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_recycle": 3600}


SQLALCHEMY_DATABASE_URL = settings.DATABASE_URL

engine = create_engine(SQLALCHEMY_DATABASE_URL, **_engine_kwargs(SQLALCHEMY_DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
