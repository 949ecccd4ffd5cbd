"""
Notary key resolution.

Resolves the notary public key used to verify a presentation. Sources, in
priority order:

1. key material embedded in the attestation (root, then ``meta``)
2. the deployment-configured fallback key
3. ``GET {notaryUrl}/info`` on the notary named by the attestation

Keys fetched from a notary are cached per canonical notary URL for the
lifetime of the process. Cached keys are immutable; there is no retry or
expiry. A non-2xx response is a hard failure for that request.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Annotated, Any, Dict, List, Optional

import httpx

from verifier.app.checks.attestation.notary import (
    extract_notary_public_key_pem,
    extract_notary_url,
    extract_public_key_from_notary_info,
)
from verifier.app.errors import MissingKeyError

logger = logging.getLogger("verifier.notary_client")

NOTARY_RESOLUTION_FAILED = "failed to resolve notary public key"
NOTARY_KEY_MISSING = (
    "missing notary key; include attestation.notaryUrl "
    "or set TLSN_NOTARY_PUBLIC_KEY_PEM"
)


class NotaryInfoError(RuntimeError):
    """The notary ``/info`` endpoint could not provide a public key."""


class NotaryKeyResolver:
    """
    Resolve notary public keys, fetching from notaries when required.

    The resolver owns the process-wide key cache. Fetches for the same URL
    are serialized so that concurrent requests trigger at most one fetch.
    """

    def __init__(
        self,
        http_client: Annotated[
            httpx.AsyncClient,
            "Persistent HTTP client",
        ],
        *,
        fallback_pem: Optional[str] = "",
        timeout_seconds: float = 10.0,
    ) -> None:
        self.client = http_client
        self.fallback_pem = fallback_pem or ""
        self.timeout_seconds = timeout_seconds

        self._cache: Dict[str, str] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def resolve(self, attestation: Any) -> str:
        """
        Return the notary key PEM for ``attestation``.

        Raises:
            MissingKeyError: no source yields a key, or the notary fetch
                failed.
        """
        direct = extract_notary_public_key_pem(attestation, self.fallback_pem)
        if direct:
            return direct

        notary_url = extract_notary_url(attestation)
        if not notary_url:
            raise MissingKeyError(NOTARY_KEY_MISSING)

        try:
            return await self.fetch_public_key(notary_url)
        except NotaryInfoError as exc:
            raise MissingKeyError(
                NOTARY_RESOLUTION_FAILED,
                details=[str(exc)],
            ) from exc

    async def fetch_public_key(self, notary_url: str) -> str:
        """Fetch (or return the cached) public key for a canonical notary URL."""
        cached = self._cache.get(notary_url)
        if cached is not None:
            return cached

        lock = self._locks.setdefault(notary_url, asyncio.Lock())
        async with lock:
            cached = self._cache.get(notary_url)
            if cached is not None:
                return cached

            key = await self._fetch_info_key(notary_url)
            self._cache[notary_url] = key

        logger.info("notary_key_cached", extra={"notary_url": notary_url})
        return key

    def cached_urls(self) -> List[str]:
        return list(self._cache)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _fetch_info_key(self, notary_url: str) -> str:
        try:
            response = await self.client.get(
                f"{notary_url}/info",
                timeout=self.timeout_seconds,
            )
        except httpx.HTTPError as exc:
            logger.warning(
                "notary_info_request_failed",
                extra={
                    "notary_url": notary_url,
                    "error_type": type(exc).__name__,
                },
            )
            raise NotaryInfoError(
                f"notary info fetch failed: {type(exc).__name__}"
            ) from exc

        if not response.is_success:
            logger.warning(
                "notary_info_fetch_failed",
                extra={
                    "notary_url": notary_url,
                    "status_code": response.status_code,
                },
            )
            raise NotaryInfoError(
                f"notary info fetch failed: {response.status_code}"
            )

        try:
            info = response.json()
        except ValueError:
            info = {}

        key = extract_public_key_from_notary_info(info)
        if not key:
            raise NotaryInfoError("notary info response missing public key")
        return key
