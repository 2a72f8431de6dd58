import logging
from typing import List, NamedTuple, Optional
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from app.core.errors import InfrastructureError, NotFound
from app.db.models.post import Post, DEFAULT_IMAGE_PATH
from app.schemas.post import PostCreate, PostUpdate, PostQueryParams

logger = logging.getLogger(__name__)

# Largest OFFSET the store accepts (signed 64-bit)
MAX_OFFSET = 2**63 - 1

_SORT_COLUMNS = {
    "id": Post.id,
    "title": Post.title,
    "content": Post.content,
}


class ImageUpload(NamedTuple):
    data: bytes
    content_type: Optional[str]


def apply_search(query, search: Optional[str]):
    if not search:
        return query
    return query.filter(
        or_(
            Post.title.icontains(search, autoescape=True),
            Post.content.icontains(search, autoescape=True),
        )
    )


def apply_sort(query, sort: str, order: str):
    column = _SORT_COLUMNS.get(sort, Post.id)
    if order == "desc":
        return query.order_by(column.desc(), Post.id.desc())
    return query.order_by(column.asc(), Post.id.asc())


def get_posts(db: Session, params: PostQueryParams) -> List[Post]:
    """Filter, then sort, then paginate the posts table."""
    if params.offset > MAX_OFFSET:
        return []
    query = db.query(Post)
    query = apply_search(query, params.search)
    query = apply_sort(query, params.sort, params.order)
    try:
        return query.offset(params.offset).limit(params.page_size).all()
    except SQLAlchemyError as e:
        logger.error("Database error listing posts: %s", e)
        raise InfrastructureError()


def get_post(db: Session, post_id: int) -> Post:
    post = db.query(Post).filter(Post.id == post_id).first()
    if post is None:
        raise NotFound("Post not found")
    return post


def _discard_image(storage, path: Optional[str]):
    if storage is not None and path and path != DEFAULT_IMAGE_PATH:
        storage.delete(path)


def create_post(db: Session, post_in: PostCreate, image: Optional[ImageUpload] = None, storage=None) -> Post:
    new_post = Post(
        title=post_in.title,
        content=post_in.content,
        image_path=post_in.image_path or DEFAULT_IMAGE_PATH,
    )
    saved_path = None
    try:
        db.add(new_post)
        if image is not None:
            # The image location is derived from the id, so flush first
            db.flush()
            saved_path = storage.save(new_post.id, new_post.title, image.data, image.content_type)
            new_post.image_path = saved_path
        db.commit()
        db.refresh(new_post)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Database error creating post: %s", e)
        _discard_image(storage, saved_path)
        raise InfrastructureError()
    except InfrastructureError:
        db.rollback()
        raise
    logger.info("Created post %s", new_post.id)
    return new_post


def update_post(
    db: Session, post_id: int, post_in: PostUpdate, image: Optional[ImageUpload] = None, storage=None
) -> Post:
    post = get_post(db, post_id)
    old_path = post.image_path
    post.title = post_in.title
    post.content = post_in.content
    post.image_path = post_in.image_path or DEFAULT_IMAGE_PATH
    saved_path = None
    try:
        if image is not None:
            saved_path = storage.save(post.id, post.title, image.data, image.content_type)
            post.image_path = saved_path
        db.commit()
        db.refresh(post)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Database error updating post %s: %s", post_id, e)
        if saved_path != old_path:
            _discard_image(storage, saved_path)
        raise InfrastructureError()
    except InfrastructureError:
        db.rollback()
        raise
    if old_path != post.image_path:
        _discard_image(storage, old_path)
    return post


def delete_post(db: Session, post_id: int, storage=None):
    post = get_post(db, post_id)
    image_path = post.image_path
    try:
        db.delete(post)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Database error deleting post %s: %s", post_id, e)
        raise InfrastructureError()
    _discard_image(storage, image_path)
    logger.info("Deleted post %s", post_id)
