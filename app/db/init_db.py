import logging
from sqlalchemy.orm import Session
from app.db.base import Base
from app.db.session import engine, SessionLocal, ensure_database, SQLALCHEMY_DATABASE_URL
from app.db.models.post import Post
from app.db.models.user import User  # noqa: F401

logger = logging.getLogger(__name__)

DEMO_POSTS = [
    {"title": "SPA", "content": "Single Page Application", "image_path": "AlhafiLogo1.jpg"},
    {"title": "HTMX", "content": "Hyper Media Content", "image_path": "AlhafiLogo2.jpg"},
]


def seed_demo_posts(db: Session) -> int:
    """Insert the demo posts into an empty table. Returns how many were added."""
    if db.query(Post).first() is not None:
        return 0
    db.add_all(Post(**data) for data in DEMO_POSTS)
    db.commit()
    return len(DEMO_POSTS)


def init_db(seed: bool = False):
    """Create all tables, and optionally seed the demo posts."""
    ensure_database(SQLALCHEMY_DATABASE_URL)
    Base.metadata.create_all(bind=engine)
    if seed:
        db = SessionLocal()
        try:
            added = seed_demo_posts(db)
            if added:
                logger.info("Seeded %d demo posts", added)
        finally:
            db.close()


if __name__ == "__main__":
    from app.core.config import settings
    from app.core.logging import setup_logging

    setup_logging(settings.LOG_LEVEL)
    init_db(seed=settings.SEED_DEMO_POSTS)
