"""Supabase client for the listing store, built on first use."""
from functools import lru_cache

from supabase import Client, create_client

from .config import get_settings


@lru_cache()
def get_supabase() -> Client:
    settings = get_settings()
    missing = [
        name
        for name, value in (("SUPABASE_URL", settings.supabase_url), ("SUPABASE_SERVICE_KEY", settings.supabase_key))
        if not value
    ]
    if missing:
        raise RuntimeError(f"Supabase listing store needs {', '.join(missing)} to be set")

    url = str(settings.supabase_url)
    if "your-project.supabase.co" in url:
        raise RuntimeError("SUPABASE_URL is still the .env template value; set the real project URL")
    return create_client(url, settings.supabase_key)
