import os
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from app.api.v1 import auth
from app.core.cache import TaggedCache
from app.core.config import settings
from app.core.errors import register_exception_handlers
from app.core.logging import setup_logging
from app.db.init_db import init_db
from app.routers import post

setup_logging(settings.LOG_LEVEL)

init_db(seed=settings.SEED_DEMO_POSTS)

app = FastAPI(title="Posts API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.state.cache = TaggedCache(
    ttl_seconds=settings.POSTS_CACHE_TTL_SECONDS,
    max_entries=settings.POSTS_CACHE_MAX_ENTRIES,
    enabled=settings.POSTS_CACHE_ENABLED,
)

app.include_router(auth.router, prefix="/auth", tags=["Auth"])
app.include_router(post.router, prefix="/posts", tags=["Posts"])

if settings.IMAGE_STORAGE == "local":
    os.makedirs(settings.MEDIA_ROOT, exist_ok=True)
    app.mount("/media", StaticFiles(directory=settings.MEDIA_ROOT), name="media")


@app.get("/health")
def health_check():
    return {"status": "ok"}
