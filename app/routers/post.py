from fastapi import APIRouter, Depends, Request, Response, status
from typing import Optional, Type
from pydantic import BaseModel, ValidationError
from starlette.datastructures import UploadFile
from sqlalchemy.orm import Session
from app.core.cache import POSTS_TAG, TaggedCache
from app.core.config import settings
from app.core.errors import ValidationFailed
from app.core.security import get_current_user
from app.crud import post as crud
from app.crud.post import ImageUpload
from app.db.session import get_db
from app.schemas.post import PostCreate, PostUpdate, PostOut, PostQueryParams
from app.schemas.token import TokenData
from app.services.image_storage import check_image_data, check_image_upload, get_image_storage

router = APIRouter()

_FORM_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")
_POST_FIELDS = ("title", "content", "image_path")


def get_cache(request: Request) -> TaggedCache:
    return request.app.state.cache


async def _read_body(request: Request):
    """Decode a JSON or form body into (fields, uploaded image)."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(_FORM_TYPES):
        form = await request.form()
        data = {}
        for field in _POST_FIELDS:
            value = form.get(field)
            if isinstance(value, str):
                # Empty optional form fields mean "not given"
                data[field] = value if value or field == "title" else None
        image = form.get("image")
        if isinstance(image, UploadFile) and image.filename:
            return data, image
        return data, None
    try:
        data = await request.json()
    except ValueError:
        raise ValidationFailed({"body": ["Request body must be valid JSON"]})
    if not isinstance(data, dict):
        raise ValidationFailed({"body": ["Request body must be a JSON object"]})
    return data, None


def post_payload(schema: Type[BaseModel]):
    async def dependency(request: Request):
        data, image = await _read_body(request)
        try:
            post_in = schema.model_validate(data)
        except ValidationError as e:
            raise ValidationFailed.from_pydantic(e)
        upload = None
        if image is not None:
            check_image_upload(image)
            raw = await image.read()
            check_image_data(raw)
            upload = ImageUpload(data=raw, content_type=image.content_type)
        return post_in, upload

    return dependency


@router.get("", response_model=list[PostOut])
def get_posts(
    search: Optional[str] = None,
    sort: Optional[str] = None,
    order: Optional[str] = None,
    page: Optional[int] = None,
    page_size: Optional[int] = None,
    db: Session = Depends(get_db),
    cache: TaggedCache = Depends(get_cache),
):
    params = PostQueryParams.from_raw(
        search=search,
        sort=sort,
        order=order,
        page=page,
        page_size=page_size,
        default_page_size=settings.DEFAULT_PAGE_SIZE,
        max_page_size=settings.MAX_PAGE_SIZE,
    )
    return cache.get_or_set(
        params.cache_key(),
        POSTS_TAG,
        lambda: [PostOut.model_validate(p).model_dump(mode="json") for p in crud.get_posts(db, params)],
    )


@router.get("/{post_id}", response_model=PostOut)
def get_post_by_id(post_id: int, db: Session = Depends(get_db)):
    return crud.get_post(db, post_id)


@router.post("", response_model=PostOut, status_code=status.HTTP_201_CREATED)
def create_post(
    response: Response,
    current_user: TokenData = Depends(get_current_user),
    payload=Depends(post_payload(PostCreate)),
    db: Session = Depends(get_db),
    storage=Depends(get_image_storage),
    cache: TaggedCache = Depends(get_cache),
):
    post_in, image = payload
    new_post = crud.create_post(db, post_in, image=image, storage=storage)
    cache.evict_tag(POSTS_TAG)
    response.headers["Location"] = f"/posts/{new_post.id}"
    return new_post


@router.put("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
def update_post(
    post_id: int,
    current_user: TokenData = Depends(get_current_user),
    payload=Depends(post_payload(PostUpdate)),
    db: Session = Depends(get_db),
    storage=Depends(get_image_storage),
    cache: TaggedCache = Depends(get_cache),
):
    post_in, image = payload
    crud.update_post(db, post_id, post_in, image=image, storage=storage)
    cache.evict_tag(POSTS_TAG)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_post(
    post_id: int,
    current_user: TokenData = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage=Depends(get_image_storage),
    cache: TaggedCache = Depends(get_cache),
):
    crud.delete_post(db, post_id, storage=storage)
    cache.evict_tag(POSTS_TAG)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
