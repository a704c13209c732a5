# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Run configuration built once at process entry."""

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass

import httpx

from revoker.model import HAS_ACCESS, NO_ACCESS, Category

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT_SECONDS: float = 20.0
DEFAULT_RENDER_TIMEOUT_SECONDS: float = 30.0

ENV_BASE_URL = "BB_URL"
ENV_USERNAME = "BB_USERNAME"
ENV_SECRET = "BB_KEYNAME"

_SCHEME_PATTERN = re.compile(r"^https?://", re.IGNORECASE)


class ConfigurationError(RuntimeError):
    """Represent missing or invalid run configuration."""


@dataclass(frozen=True)
class AuditConfig:
    """Immutable settings shared by every pipeline component.

    Attributes:
        base_url: Normalized server base URL (scheme, no trailing slash).
        username: Basic-auth principal.
        secret: Basic-auth secret (password or HTTP access token).
        request_timeout: Timeout in seconds for each remote API call.
        render_timeout: Upper bound in seconds for each renderer interaction.
        unknown_policy: Category used when verification could not determine access.
    """

    base_url: str
    username: str
    secret: str
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    render_timeout: float = DEFAULT_RENDER_TIMEOUT_SECONDS
    unknown_policy: Category = HAS_ACCESS

    def __repr__(self) -> str:
        return (
            f"AuditConfig(base_url={self.base_url!r}, username={self.username!r}, "
            f"secret='***', request_timeout={self.request_timeout}, "
            f"render_timeout={self.render_timeout}, unknown_policy={self.unknown_policy!r})"
        )


def normalize_base_url(raw_url: str) -> str:
    """Normalize a server URL to a scheme-qualified base without trailing slash.

    Args:
        raw_url: User-provided server URL, with or without scheme.

    Returns:
        Normalized base URL.

    Raises:
        ConfigurationError: If the URL is empty or cannot be parsed.
    """
    candidate = raw_url.strip().rstrip("/")
    if not candidate:
        raise ConfigurationError("Server base URL is empty.")
    if not _SCHEME_PATTERN.match(candidate):
        candidate = f"http://{candidate}"
    try:
        parsed = httpx.URL(candidate)
    except httpx.InvalidURL as exc:
        raise ConfigurationError(f"Invalid server base URL {candidate!r}: {exc}") from exc
    if not parsed.host:
        raise ConfigurationError(f"Server base URL has no host: {candidate!r}")
    return candidate


def load_config(
    values: Mapping[str, str | None],
    *,
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    render_timeout: float = DEFAULT_RENDER_TIMEOUT_SECONDS,
    unknown_policy: Category = HAS_ACCESS,
) -> AuditConfig:
    """Build configuration from a key/value mapping.

    Args:
        values: Merged configuration values (``.env`` file and environment).
        request_timeout: Timeout in seconds for remote API calls.
        render_timeout: Timeout in seconds for renderer interactions.
        unknown_policy: Category for records whose verification failed.

    Returns:
        Immutable run configuration.

    Raises:
        ConfigurationError: If a required key is missing or a value is invalid.
    """
    required = (ENV_BASE_URL, ENV_USERNAME, ENV_SECRET)
    missing = [key for key in required if not (values.get(key) or "").strip()]
    if missing:
        logger.warning(f"Missing configuration keys (keys={','.join(missing)})")
        raise ConfigurationError(f"Missing {', '.join(missing)} in environment or .env")
    if request_timeout <= 0 or render_timeout <= 0:
        raise ConfigurationError("Timeouts must be > 0")
    if unknown_policy not in (HAS_ACCESS, NO_ACCESS):
        raise ConfigurationError(f"Unsupported unknown-verdict policy: {unknown_policy}")

    return AuditConfig(
        base_url=normalize_base_url(values[ENV_BASE_URL] or ""),
        username=(values[ENV_USERNAME] or "").strip(),
        secret=values[ENV_SECRET] or "",
        request_timeout=request_timeout,
        render_timeout=render_timeout,
        unknown_policy=unknown_policy,
    )
