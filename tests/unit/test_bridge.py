import base64
import json

import httpx
import pytest
from solders.keypair import Keypair
from solders.signature import Signature

from mcp_token_factory import codec
from mcp_token_factory.bridge import HttpBridgeTransport
from mcp_token_factory.errors import TransportError
from mcp_token_factory.schemas import PriceUpdateFact

RELAYER_URL = "http://relayer.test/v1/messages"
MESSAGE = codec.encode(PriceUpdateFact(token_id=7, current_price=42, current_supply=1000, timestamp=1700000000))


@pytest.fixture
def emitter():
    return Keypair.from_seed(bytes([3] * 32))


def make_transport(emitter, handler) -> HttpBridgeTransport:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return HttpBridgeTransport(RELAYER_URL, emitter=emitter, source_chain=1, client=client)


def test_send_posts_signed_message(emitter):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": 17})

    make_transport(emitter, handler).send(2, MESSAGE)

    assert len(requests) == 1
    assert str(requests[0].url) == RELAYER_URL
    body = json.loads(requests[0].content)
    assert body["method"] == "postMessage"
    params = body["params"][0]
    data = base64.b64decode(params["payload"])
    assert data == MESSAGE.to_bytes()
    assert params["sourceChain"] == 1
    assert params["targetChain"] == 2
    assert params["emitter"] == bytes(emitter.pubkey()).hex()
    assert Signature.from_string(params["signature"]).verify(emitter.pubkey(), data)


def test_http_error_raises_transport_error(emitter):
    transport = make_transport(emitter, lambda request: httpx.Response(500, text="relayer down"))
    with pytest.raises(TransportError):
        transport.send(2, MESSAGE)


def test_connection_error_raises_transport_error(emitter):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransportError):
        make_transport(emitter, handler).send(2, MESSAGE)


def test_rpc_error_raises_transport_error(emitter):
    transport = make_transport(
        emitter, lambda request: httpx.Response(200, json={"error": {"code": -32000, "message": "bad emitter"}})
    )
    with pytest.raises(TransportError):
        transport.send(2, MESSAGE)


def test_non_json_response_raises_transport_error(emitter):
    transport = make_transport(emitter, lambda request: httpx.Response(200, text="ok"))
    with pytest.raises(TransportError):
        transport.send(2, MESSAGE)
