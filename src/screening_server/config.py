"""Server settings for the screening API, read once from the environment.

Variables (all optional):
  - ``SERVER_HOST`` / ``SERVER_PORT``: bind address
  - ``SERVER_CORS_ORIGINS``: comma-separated origins, ``*`` for any
  - ``SERVER_LOG_LEVEL``: root log level name
  - ``SERVER_ENABLE_DOCS``: serve ``/docs`` and ``/openapi.json`` (default on)
  - ``TRUSTED_PROXY_SECRET``: require a matching ``X-Proxy-Secret`` header
"""

import os
from dataclasses import dataclass, field


def _split_origins(raw: str) -> list[str]:
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def _flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class ServerSettings:
    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    enable_docs: bool = True

    # Participant identity arrives in X-Account-ID.  When this is set the
    # header is only trusted alongside a matching X-Proxy-Secret.
    trusted_proxy_secret: str | None = None


def load_settings() -> ServerSettings:
    return ServerSettings(
        host=os.getenv("SERVER_HOST", "0.0.0.0"),
        port=int(os.getenv("SERVER_PORT", "8080")),
        cors_origins=_split_origins(os.getenv("SERVER_CORS_ORIGINS", "*")),
        log_level=os.getenv("SERVER_LOG_LEVEL", "INFO").upper(),
        enable_docs=_flag("SERVER_ENABLE_DOCS", True),
        trusted_proxy_secret=os.getenv("TRUSTED_PROXY_SECRET") or None,
    )
