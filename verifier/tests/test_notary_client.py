import httpx
import pytest

from verifier.app.errors import MissingKeyError
from verifier.app.services.notary_client import (
    NOTARY_KEY_MISSING,
    NOTARY_RESOLUTION_FAILED,
    NotaryKeyResolver,
)

pytestmark = pytest.mark.anyio

NOTARY_KEY = "-----BEGIN PUBLIC KEY-----\nnotary\n-----END PUBLIC KEY-----"


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _info_handler(requests, *, status_code=200, body=None):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(str(request.url))
        if body is None:
            return httpx.Response(status_code, json={"publicKey": NOTARY_KEY})
        return httpx.Response(status_code, content=body)

    return handler


async def test_embedded_key_wins_without_network():
    requests = []
    async with _client(_info_handler(requests)) as client:
        resolver = NotaryKeyResolver(client, fallback_pem="env-key")
        key = await resolver.resolve(
            {"notaryPublicKeyPem": "embedded", "notaryUrl": "https://n.example"}
        )

    assert key == "embedded"
    assert requests == []


async def test_env_fallback_is_used_before_fetching():
    requests = []
    async with _client(_info_handler(requests)) as client:
        resolver = NotaryKeyResolver(client, fallback_pem="env-key")
        key = await resolver.resolve({"notaryUrl": "https://n.example"})

    assert key == "env-key"
    assert requests == []


async def test_fetched_key_is_cached_per_canonical_url():
    requests = []
    async with _client(_info_handler(requests)) as client:
        resolver = NotaryKeyResolver(client)

        first = await resolver.resolve({"notaryUrl": "https://Notary.Example/"})
        second = await resolver.resolve(
            {"meta": {"notaryUrl": "https://notary.example:443"}}
        )

    assert first == second == NOTARY_KEY
    assert requests == ["https://notary.example/info"]
    assert resolver.cached_urls() == ["https://notary.example"]


async def test_non_success_status_is_a_resolution_failure():
    requests = []
    handler = _info_handler(requests, status_code=503, body=b"unavailable")
    async with _client(handler) as client:
        resolver = NotaryKeyResolver(client)
        with pytest.raises(MissingKeyError) as exc_info:
            await resolver.resolve({"notaryUrl": "https://n.example"})

    assert exc_info.value.error == NOTARY_RESOLUTION_FAILED
    assert exc_info.value.details == ["notary info fetch failed: 503"]
    assert resolver.cached_urls() == []


async def test_info_without_key_is_a_resolution_failure():
    requests = []
    handler = _info_handler(requests, body=b'{"version": "0.1"}')
    async with _client(handler) as client:
        resolver = NotaryKeyResolver(client)
        with pytest.raises(MissingKeyError) as exc_info:
            await resolver.resolve({"notaryUrl": "https://n.example"})

    assert exc_info.value.details == ["notary info response missing public key"]


async def test_transport_error_is_a_resolution_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with _client(handler) as client:
        resolver = NotaryKeyResolver(client)
        with pytest.raises(MissingKeyError) as exc_info:
            await resolver.resolve({"notaryUrl": "https://n.example"})

    assert exc_info.value.details == ["notary info fetch failed: ConnectError"]


async def test_no_key_and_no_url_is_missing_key():
    requests = []
    async with _client(_info_handler(requests)) as client:
        resolver = NotaryKeyResolver(client)
        with pytest.raises(MissingKeyError) as exc_info:
            await resolver.resolve({"notaryUrl": "not-a-url"})

    assert exc_info.value.error == NOTARY_KEY_MISSING
    assert requests == []
