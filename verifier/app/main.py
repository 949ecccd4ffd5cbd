"""
FastAPI entrypoint for the attestation verifier.

This module defines the public HTTP interface. It accepts a Wise transfer
attestation, invokes the verification coordinator, and returns either a
hash-committed claim or a structured rejection.

The application is stateless apart from the notary key cache owned by the
NotaryKeyResolver. The request body is untrusted and bounded in size
before it is parsed.
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional
from uuid import uuid4

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from verifier.app.config import (
    Settings,
    configure_logging,
    get_settings,
    load_verify_function,
)
from verifier.app.coordinator.coordinator import VerificationCoordinator
from verifier.app.coordinator.local_verification import VerifyFunction
from verifier.app.errors import (
    InvalidRequestError,
    PayloadTooLargeError,
    VerificationRejection,
)
from verifier.app.events import LoggingEventEmitter
from verifier.app.schemas.verification_response import ErrorResponse, VerifyRequest
from verifier.app.services.notary_client import NotaryKeyResolver
from verifier.app.utils.payload import reject_json_constant

logger = logging.getLogger("verifier.main")

SERVICE_NAME = "tlsn-verifier"
NO_STORE_HEADERS = {"cache-control": "no-store"}


# ---------------------------------------------------------------------------
# Response helpers
# ---------------------------------------------------------------------------

def send_json(status_code: int, payload: Dict[str, Any]) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=payload,
        headers=NO_STORE_HEADERS,
    )


async def read_json_body(request: Request, max_body_bytes: int) -> Any:
    """
    Read and parse a JSON body without exceeding ``max_body_bytes``.

    An empty body parses as ``{}``.
    """
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > max_body_bytes:
        raise PayloadTooLargeError()

    chunks = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if size > max_body_bytes:
            raise PayloadTooLargeError()
        chunks.append(chunk)

    body = b"".join(chunks)
    if not body.strip():
        return {}

    try:
        return json.loads(body, parse_constant=reject_json_constant)
    except (ValueError, RecursionError) as exc:
        raise InvalidRequestError("invalid json body") from exc


# ---------------------------------------------------------------------------
# Application setup
# ---------------------------------------------------------------------------

def create_app(
    settings: Optional[Settings] = None,
    *,
    verify_fn: Optional[VerifyFunction] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Application factory.

    ``verify_fn`` and ``http_client`` override the configured collaborator
    and the outbound HTTP client; tests inject both.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level)

        logger.info(
            "verifier_startup_begin",
            extra={
                "service": SERVICE_NAME,
                "allowed_host_suffixes": settings.allowed_host_suffixes,
                "browser_capture": settings.allow_browser_capture,
            },
        )

        # --------------------------------------------------------------
        # Verification collaborator (FAIL FAST on a bad import path)
        # --------------------------------------------------------------
        try:
            resolved_verify_fn = verify_fn or load_verify_function(
                settings.tlsn_verify_function
            )
        except Exception:
            logger.exception(
                "verify_function_import_failed",
                extra={"path": settings.tlsn_verify_function},
            )
            raise

        if resolved_verify_fn is None:
            logger.warning("verify_function_not_configured")

        owns_client = http_client is None
        client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(
                timeout=settings.notary_info_timeout_seconds,
                connect=5.0,
            ),
            follow_redirects=False,
        )

        resolver = NotaryKeyResolver(
            client,
            fallback_pem=settings.tlsn_notary_public_key_pem,
            timeout_seconds=settings.notary_info_timeout_seconds,
        )

        app.state.settings = settings
        app.state.http_client = client
        app.state.notary_resolver = resolver
        app.state.coordinator = VerificationCoordinator(
            notary_resolver=resolver,
            verify_fn=resolved_verify_fn,
            allowed_host_suffixes=settings.allowed_host_suffixes,
            allow_browser_capture=settings.allow_browser_capture,
            default_recent_count=settings.recent_transfers_default,
        )

        try:
            yield
        finally:
            logger.info("verifier_shutdown_begin")
            if owns_client:
                try:
                    await client.aclose()
                except Exception:
                    logger.warning("http_client_shutdown_failed")

    app = FastAPI(
        title="TLSN Wise Attestation Verifier",
        description=(
            "Verifies TLS-notarized Wise transfer attestations and returns "
            "hash-committed transfer claims"
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_allow_origin],
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["content-type", "authorization"],
    )

    # -----------------------------------------------------------------------
    # Error handling
    # -----------------------------------------------------------------------

    @app.exception_handler(VerificationRejection)
    async def handle_rejection(
        request: Request, exc: VerificationRejection
    ) -> JSONResponse:
        return send_json(exc.status_code, exc.to_response())

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "unhandled_request_error",
            extra={"path": request.url.path},
        )
        return send_json(
            500,
            {"error": "internal error", "detail": str(exc) or type(exc).__name__},
        )

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------

    @app.get("/health", summary="Service health check")
    async def health_check() -> JSONResponse:
        return send_json(200, {"ok": True, "service": SERVICE_NAME})

    @app.post(
        "/verify-wise-attestation",
        summary="Verify a Wise transfer attestation",
        responses={
            400: {"model": ErrorResponse},
            413: {"model": ErrorResponse},
            500: {"model": ErrorResponse},
        },
    )
    async def verify_wise_attestation(request: Request) -> JSONResponse:
        payload = await read_json_body(request, settings.max_body_bytes)
        if not isinstance(payload, dict):
            payload = {}

        coordinator: VerificationCoordinator = request.app.state.coordinator
        response = await coordinator.run_verification(
            VerifyRequest.model_validate(payload),
            request_id=str(uuid4()),
            emitter=LoggingEventEmitter(),
        )
        return send_json(200, response.to_json())

    return app


def run() -> None:
    """Console entry point: serve the application with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
