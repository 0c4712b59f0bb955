from __future__ import annotations

import os
from dataclasses import dataclass
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from chat_ai_orx.stream_client import DEFAULT_STREAM_BASE_URL

DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_CORS_ALLOW_ORIGINS = ("*",)


@dataclass(frozen=True)
class Settings:
    database_url: str
    openai_api_key: str
    stream_api_key: str
    stream_api_secret: str
    openai_model: str = DEFAULT_OPENAI_MODEL
    openai_base_url: str = DEFAULT_OPENAI_BASE_URL
    openai_timeout_seconds: float = 45.0
    openai_max_output_tokens: int | None = None
    openai_temperature: float | None = None
    stream_base_url: str = DEFAULT_STREAM_BASE_URL
    stream_timeout_seconds: float = 30.0
    stream_channel_cache_ttl_seconds: int = 3600
    database_echo: bool = False
    cors_allow_origins: tuple[str, ...] = DEFAULT_CORS_ALLOW_ORIGINS
    host: str = "0.0.0.0"
    port: int = 5000

    @classmethod
    def from_env(cls) -> Settings:
        missing: list[str] = []

        required = {
            "database_url": os.getenv("DATABASE_URL"),
            "openai_api_key": os.getenv("OPENAI_API_KEY"),
            "stream_api_key": os.getenv("STREAM_API_KEY"),
            "stream_api_secret": os.getenv("STREAM_API_SECRET"),
        }

        for key, value in required.items():
            if not value:
                missing.append(key.upper())

        if missing:
            details = ", ".join(sorted(missing))
            raise RuntimeError(f"Missing required environment variables: {details}")

        cors_allow_origins = _split_csv_ordered(os.getenv("CORS_ALLOW_ORIGINS"))
        if not cors_allow_origins:
            cors_allow_origins = DEFAULT_CORS_ALLOW_ORIGINS

        return cls(
            database_url=normalize_database_url(required["database_url"] or ""),
            openai_api_key=required["openai_api_key"] or "",
            stream_api_key=required["stream_api_key"] or "",
            stream_api_secret=required["stream_api_secret"] or "",
            openai_model=os.getenv("OPENAI_MODEL", DEFAULT_OPENAI_MODEL),
            openai_base_url=os.getenv("OPENAI_BASE_URL", DEFAULT_OPENAI_BASE_URL),
            openai_timeout_seconds=float(os.getenv("OPENAI_TIMEOUT_SECONDS", "45")),
            openai_max_output_tokens=_optional_int(
                os.getenv("OPENAI_MAX_OUTPUT_TOKENS")
            ),
            openai_temperature=_optional_float(os.getenv("OPENAI_TEMPERATURE")),
            stream_base_url=os.getenv("STREAM_BASE_URL", DEFAULT_STREAM_BASE_URL),
            stream_timeout_seconds=float(os.getenv("STREAM_TIMEOUT_SECONDS", "30")),
            stream_channel_cache_ttl_seconds=int(
                os.getenv("STREAM_CHANNEL_CACHE_TTL_SECONDS", "3600")
            ),
            database_echo=_parse_bool(os.getenv("DATABASE_ECHO")),
            cors_allow_origins=cors_allow_origins,
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "5000")),
        )


def normalize_database_url(url: str) -> str:
    """Point plain Postgres URLs at the asyncpg driver.

    Hosted Postgres connection strings carry libpq options (`sslmode`,
    `channel_binding`) that asyncpg does not accept; `sslmode` becomes `ssl`
    and `channel_binding` is dropped.
    """
    stripped = url.strip()
    parts = urlsplit(stripped)
    scheme = parts.scheme
    if scheme in {"postgres", "postgresql"}:
        scheme = "postgresql+asyncpg"
    if scheme != "postgresql+asyncpg":
        return stripped

    query: list[tuple[str, str]] = []
    for key, value in parse_qsl(parts.query, keep_blank_values=True):
        if key == "channel_binding":
            continue
        if key == "sslmode":
            key = "ssl"
        query.append((key, value))

    return urlunsplit(parts._replace(scheme=scheme, query=urlencode(query)))


def _split_csv_ordered(value: str | None) -> tuple[str, ...]:
    if value is None:
        return ()

    seen: set[str] = set()
    ordered: list[str] = []
    for raw_item in value.split(","):
        item = raw_item.strip()
        if not item or item in seen:
            continue
        ordered.append(item)
        seen.add(item)

    return tuple(ordered)


def _parse_bool(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _optional_int(value: str | None) -> int | None:
    if value is None or not value.strip():
        return None
    return int(value)


def _optional_float(value: str | None) -> float | None:
    if value is None or not value.strip():
        return None
    return float(value)
