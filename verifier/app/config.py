"""
Runtime configuration for the attestation verifier.

Pydantic v2 settings management: values are read from the environment
(and an optional ``.env`` file) once at startup, validated, and treated as
immutable for the lifetime of the process.
"""

from __future__ import annotations

import importlib
import logging
import sys
from functools import lru_cache
from typing import Annotated, Any, Callable, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from verifier.app.checks.claim.policy import (
    DEFAULT_ALLOWED_HOST_SUFFIXES,
    parse_allowed_host_suffixes,
)
from verifier.app.checks.transcript.recent_transfers import (
    DEFAULT_RECENT_COUNT,
    MAX_RECENT_COUNT,
    MIN_RECENT_COUNT,
)


# -------------------------------------------------------------------------
# Settings Model
# -------------------------------------------------------------------------

class Settings(BaseSettings):
    """
    Application settings parsed from the environment.

    Variable names are unprefixed (``PORT``, ``TLSN_ALLOWED_HOST_SUFFIXES``)
    to stay compatible with existing deployments.
    """

    # ---------------------------------------------------------------------
    # Network surface
    # ---------------------------------------------------------------------

    host: str = "0.0.0.0"

    port: Annotated[int, Field(default=8080, ge=1, le=65535)]

    max_body_bytes: Annotated[
        int,
        Field(
            default=2_000_000,
            ge=1,
            description="Upper bound on the request body size",
        ),
    ]

    cors_allow_origin: str = "*"

    # ---------------------------------------------------------------------
    # Verification policy
    # ---------------------------------------------------------------------

    tlsn_allowed_host_suffixes: Annotated[
        str,
        Field(
            default=DEFAULT_ALLOWED_HOST_SUFFIXES,
            description="Comma-separated host suffixes accepted as sourceHost",
        ),
    ]

    tlsn_notary_public_key_pem: Annotated[
        str,
        Field(
            default="",
            description="Fallback notary public key (PEM) when none is embedded",
        ),
    ]

    tlsn_verify_function: Annotated[
        str,
        Field(
            default="",
            description=(
                "Import path ('module:attribute') of the presentation "
                "verification function"
            ),
        ),
    ]

    allow_browser_capture: Annotated[
        bool,
        Field(
            default=True,
            description=(
                "Accept browser-capture attestations that carry no TLS "
                "presentation"
            ),
        ),
    ]

    recent_transfers_default: Annotated[
        int,
        Field(
            default=DEFAULT_RECENT_COUNT,
            ge=MIN_RECENT_COUNT,
            le=MAX_RECENT_COUNT,
        ),
    ]

    # ---------------------------------------------------------------------
    # Outbound calls
    # ---------------------------------------------------------------------

    notary_info_timeout_seconds: Annotated[
        float,
        Field(default=10.0, gt=0, le=120),
    ]

    # ---------------------------------------------------------------------
    # Observability
    # ---------------------------------------------------------------------

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unsupported LOG_LEVEL '{v}'")
        return level

    @field_validator("tlsn_verify_function")
    @classmethod
    def validate_verify_function_path(cls, v: str) -> str:
        v = v.strip()
        if v and ":" not in v:
            raise ValueError(
                "TLSN_VERIFY_FUNCTION must look like 'package.module:function'"
            )
        return v

    @property
    def allowed_host_suffixes(self) -> List[str]:
        return parse_allowed_host_suffixes(self.tlsn_allowed_host_suffixes)


# -------------------------------------------------------------------------
# Collaborator loading
# -------------------------------------------------------------------------

def load_verify_function(path: str) -> Optional[Callable[..., Any]]:
    """
    Resolve the presentation verification function from ``module:attr``.

    Returns None when no path is configured. Import errors propagate so a
    misconfigured deployment fails at startup.
    """
    if not path:
        return None

    module_name, _, attribute = path.partition(":")
    module = importlib.import_module(module_name)

    target: Any = module
    for part in attribute.split("."):
        target = getattr(target, part)

    if not callable(target):
        raise TypeError(f"TLSN_VERIFY_FUNCTION target is not callable: {path}")
    return target


# -------------------------------------------------------------------------
# Logging
# -------------------------------------------------------------------------

def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the ``verifier`` logger tree."""
    logger = logging.getLogger("verifier")
    logger.setLevel(level)

    if not any(getattr(h, "_verifier_handler", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
        )
        handler._verifier_handler = True  # type: ignore[attr-defined]
        logger.addHandler(handler)


# -------------------------------------------------------------------------
# Settings Dependency Provider
# -------------------------------------------------------------------------

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings singleton."""
    return Settings()
