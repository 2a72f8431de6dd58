from sqlalchemy import Column, Integer, String, Text, DateTime
from datetime import datetime, timezone
from app.db.base import Base

DEFAULT_IMAGE_PATH = "Post.jfif"
TITLE_MAX_LENGTH = 25


def utcnow():
    return datetime.now(timezone.utc)


class Post(Base):
    __tablename__ = "posts"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(TITLE_MAX_LENGTH), nullable=False)
    content = Column(Text, nullable=True)
    image_path = Column(String, nullable=True, default=DEFAULT_IMAGE_PATH, server_default=DEFAULT_IMAGE_PATH)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
