"""Process configuration loaded once from the environment."""

import os
import logging
from typing import Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://sandbox-api.iyzipay.com"
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./payments.db"


class Credentials(BaseModel):
    """API credentials for the gateway. Immutable for the process lifetime."""

    model_config = ConfigDict(frozen=True)

    api_key: str
    secret_key: str = Field(repr=False)
    base_url: str = DEFAULT_BASE_URL


class RelayConfig(BaseModel):
    """Everything the relay needs to run, resolved at startup."""

    model_config = ConfigDict(frozen=True)

    credentials: Credentials
    database_url: str = DEFAULT_DATABASE_URL
    port: int = 5000
    sentry_dsn: Optional[str] = None
    signing_scheme: str = "v2"
    locale: str = "tr"
    default_buyer_ip: str = "85.34.78.112"
    default_identity_number: str = "74300864791"
    vat_rate: float = 0.18
    request_timeout: float = 10.0
    webhook_signature_header: str = "x-iyz-signature-v3"
    rate_limit: str = "60/minute"
    cors_origins: Tuple[str, ...] = ("*",)
    log_level: str = "INFO"


def load_credentials(environ: Optional[Mapping[str, str]] = None) -> Credentials:
    """Read gateway credentials, failing fast when either key is absent.

    Raises:
        ConfigurationError: If IYZICO_API_KEY or IYZICO_SECRET_KEY is empty.
    """
    env = os.environ if environ is None else environ
    api_key = (env.get("IYZICO_API_KEY") or "").strip()
    secret_key = (env.get("IYZICO_SECRET_KEY") or "").strip()

    missing = [
        name
        for name, value in (("IYZICO_API_KEY", api_key), ("IYZICO_SECRET_KEY", secret_key))
        if not value
    ]
    if missing:
        logger.error(f"Missing gateway credentials: {', '.join(missing)}")
        raise ConfigurationError(f"{' and '.join(missing)} must be set")

    base_url = (env.get("IYZICO_BASE_URL") or DEFAULT_BASE_URL).rstrip("/")
    return Credentials(api_key=api_key, secret_key=secret_key, base_url=base_url)


def _get_number(env: Mapping[str, str], name: str, default, cast):
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


def load_config(environ: Optional[Mapping[str, str]] = None) -> RelayConfig:
    """Build the relay configuration from environment variables.

    Args:
        environ: Mapping to read from. Defaults to ``os.environ``.

    Returns:
        Frozen RelayConfig.

    Raises:
        ConfigurationError: If credentials are missing or a value cannot be parsed.
    """
    env = os.environ if environ is None else environ
    credentials = load_credentials(env)

    database_url = env.get("DATABASE_URL") or DEFAULT_DATABASE_URL
    origins = env.get("CORS_ORIGINS") or "*"

    config = RelayConfig(
        credentials=credentials,
        database_url=database_url,
        port=_get_number(env, "PORT", 5000, int),
        sentry_dsn=env.get("SENTRY_DSN") or None,
        signing_scheme=env.get("IYZICO_SIGNING_SCHEME") or "v2",
        locale=env.get("PAYMENT_LOCALE") or "tr",
        default_buyer_ip=env.get("DEFAULT_BUYER_IP") or "85.34.78.112",
        default_identity_number=env.get("DEFAULT_IDENTITY_NUMBER") or "74300864791",
        vat_rate=_get_number(env, "VAT_RATE", 0.18, float),
        request_timeout=_get_number(env, "GATEWAY_TIMEOUT_SECONDS", 10.0, float),
        webhook_signature_header=(
            env.get("WEBHOOK_SIGNATURE_HEADER") or "x-iyz-signature-v3"
        ).lower(),
        rate_limit=env.get("RATE_LIMIT") or "60/minute",
        cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
        log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
    )
    logger.info(
        f"Loaded configuration for {credentials.base_url} "
        f"(signing scheme {config.signing_scheme})"
    )
    return config
