from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).resolve().parent / "config/config.yaml"

DEV_JWT_SECRET = "dev-insecure-secret"

# Environment variable -> dotted config key
ENV_OVERRIDES: Dict[str, str] = {
    "HOST": "server.host",
    "PORT": "server.port",
    "REQUEST_TIMEOUT_SECONDS": "server.request_timeout_seconds",
    "CORS_ORIGINS": "server.cors_origins",
    "TRUSTED_PROXIES": "server.trusted_proxies",
    "LOG_LEVEL": "logging.level",
    "DATABASE_PATH": "database.path",
    "JWT_SECRET": "auth.jwt_secret",
    "TOKEN_TTL_MINUTES": "auth.token_ttl_minutes",
    "TOKEN_LEEWAY_SECONDS": "auth.leeway_seconds",
    "RATE_LIMIT_PER_MINUTE": "rate_limit.requests_per_minute",
    "CHROMIUM_PATH": "pdf.chromium_path",
    "PDF_TIMEOUT_SECONDS": "pdf.timeout_seconds",
    "PDF_SETTLE_SECONDS": "pdf.settle_seconds",
    "S3_BUCKET_NAME": "storage.s3_bucket",
    "PRESIGNED_URL_TTL_SECONDS": "storage.presigned_url_ttl_seconds",
}

LIST_KEYS = {"server.cors_origins", "server.trusted_proxies"}


@dataclass
class ServerSettings:
    host: str = "0.0.0.0"
    port: int = 8080
    request_timeout_seconds: float = 60.0
    cors_origins: List[str] = field(default_factory=list)
    # Peers whose X-Forwarded-For / X-Real-IP headers are believed
    trusted_proxies: List[str] = field(default_factory=list)


@dataclass
class LoggingSettings:
    level: str = "INFO"


@dataclass
class DatabaseSettings:
    path: str = "data/apostilab.db"


@dataclass
class AuthSettings:
    jwt_secret: str = DEV_JWT_SECRET
    jwt_algorithm: str = "HS256"
    token_ttl_minutes: int = 60
    leeway_seconds: int = 5


@dataclass
class RateLimitSettings:
    requests_per_minute: int = 30


@dataclass
class PdfSettings:
    chromium_path: Optional[str] = None
    timeout_seconds: float = 30.0
    settle_seconds: float = 2.0
    paper_width: str = "8.27in"
    paper_height: str = "11.69in"
    margin_top: str = "1in"
    margin_bottom: str = "1in"
    margin_left: str = "0.5in"
    margin_right: str = "0.5in"


@dataclass
class StorageSettings:
    s3_bucket: str = ""
    presigned_url_ttl_seconds: int = 3600


@dataclass
class Settings:
    server: ServerSettings = field(default_factory=ServerSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    auth: AuthSettings = field(default_factory=AuthSettings)
    rate_limit: RateLimitSettings = field(default_factory=RateLimitSettings)
    pdf: PdfSettings = field(default_factory=PdfSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)


def _env_overrides(environ: Dict[str, str]) -> DictConfig:
    overrides = OmegaConf.create({})
    for env_name, key in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value is None or value == "":
            continue
        if key in LIST_KEYS:
            OmegaConf.update(overrides, key, [item.strip() for item in value.split(",") if item.strip()])
        else:
            OmegaConf.update(overrides, key, value)
    return overrides


def load_settings(environ: Optional[Dict[str, str]] = None, config_path: Optional[Path] = None) -> DictConfig:
    """
    Build the runtime settings.

    Layers, lowest precedence first: typed defaults, the packaged config.yaml,
    an optional file named by APOSTILAB_CONFIG, then environment variables.
    Values are validated against the Settings dataclasses, so "9000" becomes
    an int for server.port and a non-numeric port fails here.
    """
    if environ is None:
        load_dotenv()
        environ = dict(os.environ)

    base = OmegaConf.structured(Settings)
    layers = [OmegaConf.load(config_path or CONFIG_PATH)]

    extra_path = environ.get("APOSTILAB_CONFIG")
    if extra_path:
        layers.append(OmegaConf.load(extra_path))

    layers.append(_env_overrides(environ))
    merged = OmegaConf.merge(base, *layers)
    OmegaConf.set_readonly(merged, True)

    if merged.auth.jwt_secret == DEV_JWT_SECRET:
        logger.warning("JWT_SECRET not configured, using the development secret")
    return merged  # type: ignore[return-value]


@lru_cache(maxsize=1)
def get_settings() -> DictConfig:
    return load_settings()
