import httpx
import pytest

from nosdeploy.engines.execution.adapters.pinata_adapter import PinataAdapter
from nosdeploy.errors import ConfigError, NosDeployError, ResponseSchemaError, ServiceUnavailable, StorageAPIError


def _adapter(handler) -> PinataAdapter:
    return PinataAdapter("jwt-token", "https://pinata.test", transport=httpx.MockTransport(handler))


@pytest.mark.anyio
async def test_upload_returns_ipfs_hash():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"IpfsHash": "QmTest", "PinSize": 10})

    ipfs_hash = await _adapter(handler).upload({"version": "0.1", "ops": []})

    assert ipfs_hash == "QmTest"
    request = seen[0]
    assert request.url.path == "/pinning/pinFileToIPFS"
    assert request.headers["Authorization"] == "Bearer jwt-token"
    assert request.headers["content-type"].startswith("multipart/form-data")
    assert b'filename="job.json"' in request.content
    assert b"pinataMetadata" in request.content


@pytest.mark.anyio
async def test_missing_hash_rejected():
    adapter = _adapter(lambda request: httpx.Response(200, json={"PinSize": 10}))
    with pytest.raises(ResponseSchemaError):
        await adapter.upload({"ops": []})


@pytest.mark.anyio
async def test_http_error_is_typed():
    adapter = _adapter(lambda request: httpx.Response(401, json={"error": "bad jwt"}))
    with pytest.raises(StorageAPIError) as exc:
        await adapter.upload({"ops": []})

    assert isinstance(exc.value, NosDeployError)
    assert exc.value.status_code == 401
    assert "bad jwt" in exc.value.body


@pytest.mark.anyio
async def test_transport_error_is_typed():
    def timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    with pytest.raises(ServiceUnavailable) as exc:
        await _adapter(timeout).upload({"ops": []})

    assert isinstance(exc.value.__cause__, httpx.ReadTimeout)


def test_jwt_required():
    with pytest.raises(ConfigError):
        PinataAdapter("")
