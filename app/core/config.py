import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "on")


def _database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    if os.getenv("DB_NAME"):
        return (
            f"postgresql://{os.getenv('DB_USER')}:{os.getenv('DB_PASS')}"
            f"@{os.getenv('DB_HOST', 'localhost')}:{os.getenv('DB_PORT', '5432')}/{os.getenv('DB_NAME')}"
        )
    return "sqlite:///./posts.db"


class Settings:
    """Application settings read from the environment."""

    def __init__(self):
        # Database
        self.DATABASE_URL = _database_url()
        self.SEED_DEMO_POSTS = _env_bool("SEED_DEMO_POSTS")

        # JWT
        self.SECRET_KEY = os.getenv("SECRET_KEY", "supersecretkey-change-in-production")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_ISSUER = os.getenv("JWT_ISSUER", "posts-api")
        self.JWT_AUDIENCE = os.getenv("JWT_AUDIENCE", "posts-api-clients")
        self.ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
        # Unset means the dev-token endpoint always refuses
        self.DEV_TOKEN_SECRET = os.getenv("DEV_TOKEN_SECRET") or None

        # Listing
        self.DEFAULT_PAGE = 1
        self.DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "50"))
        self.MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "1000"))
        self.POSTS_CACHE_ENABLED = _env_bool("POSTS_CACHE_ENABLED", "true")
        self.POSTS_CACHE_TTL_SECONDS = int(os.getenv("POSTS_CACHE_TTL_SECONDS", "300"))
        self.POSTS_CACHE_MAX_ENTRIES = int(os.getenv("POSTS_CACHE_MAX_ENTRIES", "1024"))

        # Images
        self.IMAGE_STORAGE = os.getenv("IMAGE_STORAGE", "local").lower()
        self.MEDIA_ROOT = os.getenv("MEDIA_ROOT", "media")
        self.MAX_IMAGE_SIZE_MB = int(os.getenv("MAX_IMAGE_SIZE_MB", "5"))
        self.ALLOWED_IMAGE_TYPES = os.getenv(
            "ALLOWED_IMAGE_TYPES", "image/jpeg,image/png,image/webp,image/gif"
        ).split(",")
        self.CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME")
        self.CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY")
        self.CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET")

        # HTTP
        self.CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

        # Logging
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    @property
    def max_image_bytes(self) -> int:
        return self.MAX_IMAGE_SIZE_MB * 1024 * 1024


settings = Settings()
