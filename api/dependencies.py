"""
FastAPI dependencies.

Settings and the Supabase client are built once per process and injected into
endpoints; tests replace them through `app.dependency_overrides`.
"""

from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from repositories.client import Client, create_supabase_client
from services.settings import Settings, load_settings


@lru_cache()
def get_settings() -> Settings:
    return load_settings()


@lru_cache()
def _client_for(settings: Settings) -> Client:
    return create_supabase_client(settings)


def get_supabase(settings: Settings = Depends(get_settings)) -> Client:
    return _client_for(settings)
