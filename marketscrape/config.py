import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, HttpUrl, ValidationError


class Settings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    supabase_url: Optional[HttpUrl] = Field(default=None, alias="SUPABASE_URL")
    supabase_key: Optional[str] = Field(default=None, alias="SUPABASE_SERVICE_KEY")
    env: str = Field(default="local", alias="APP_ENV")
    listings_table: str = Field(default="saved_listings", alias="LISTINGS_TABLE")

    fetch_timeout: float = Field(default=3.5, gt=0, alias="SCRAPE_TIMEOUT_SECONDS")
    concurrency: int = Field(default=5, ge=1, alias="SCRAPE_CONCURRENCY")
    headless: bool = Field(default=False, alias="SCRAPE_HEADLESS")
    memo_ttl_seconds: int = Field(default=300, ge=0, alias="DETAIL_MEMO_TTL_SECONDS")
    fresh_hours: float = Field(default=24, gt=0, alias="DETAIL_FRESH_HOURS")

    image_cache_dir: Path = Field(default=Path("public/cache"), alias="IMAGE_CACHE_DIR")
    image_cache_url_prefix: str = Field(default="/cache", alias="IMAGE_CACHE_URL_PREFIX")
    placeholder_image: str = Field(default="/seed/placeholder.jpg", alias="PLACEHOLDER_IMAGE")


def _load_dotenv():
    # Load from repo root if present, otherwise rely on environment variables.
    root_env = Path(__file__).resolve().parents[1] / ".env"
    if root_env.exists():
        load_dotenv(root_env)
    else:
        load_dotenv()


@lru_cache()
def get_settings() -> Settings:
    _load_dotenv()
    try:
        return Settings(**os.environ)
    except ValidationError as exc:
        bad = [str(e["loc"][0]) for e in exc.errors()]
        detail = f"Invalid scraper configuration: {', '.join(bad)}"
        raise RuntimeError(detail) from exc
