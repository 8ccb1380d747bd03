import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str

    store_backend: str
    supabase_url: str
    supabase_anon_key: str
    supabase_timeout_seconds: int
    packages_table: str
    profiles_table: str
    database_url: str

    page_size: int
    editor_roles: tuple[str, ...]


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _split_roles(raw: str) -> tuple[str, ...]:
    return tuple(r.strip().lower() for r in raw.split(",") if r.strip())


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        store_backend=_getenv("STORE_BACKEND", "supabase").lower(),
        supabase_url=_getenv("SUPABASE_URL", ""),
        supabase_anon_key=_getenv("SUPABASE_ANON_KEY", ""),
        supabase_timeout_seconds=_getenv_int("SUPABASE_TIMEOUT_SECONDS", 30),
        packages_table=_getenv("PACKAGES_TABLE", "mortgage_packages"),
        profiles_table=_getenv("PROFILES_TABLE", "profiles"),
        database_url=_getenv("DATABASE_URL", "sqlite:///mortgage_dashboard.db"),
        page_size=max(1, _getenv_int("PAGE_SIZE", 10)),
        editor_roles=_split_roles(_getenv("EDITOR_ROLES", "admin")),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "STORE_BACKEND": s.store_backend,
        "SUPABASE_URL": s.supabase_url,
        "SUPABASE_ANON_KEY": s.supabase_anon_key,
        "SUPABASE_TIMEOUT_SECONDS": s.supabase_timeout_seconds,
        "PACKAGES_TABLE": s.packages_table,
        "PROFILES_TABLE": s.profiles_table,
        "DATABASE_URL": s.database_url,
        "PAGE_SIZE": s.page_size,
        "EDITOR_ROLES": s.editor_roles,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
    }
