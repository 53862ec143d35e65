import base64
import json
from unittest.mock import MagicMock, patch

import pytest

from mcp_token_factory import codec, config, server
from mcp_token_factory.facts import PriceUpdatedFromRemote
from mcp_token_factory.relayer_api import create_app
from mcp_token_factory.schemas import LiquidityUpdateFact, PriceUpdateFact, TokenCreationFact

from conftest import BSC, ETHEREUM, TRUSTED_ADDRESS

PRICE_BYTES = codec.serialize(PriceUpdateFact(token_id=7, current_price=42, current_supply=1000, timestamp=1700000000))


@pytest.fixture
def patched_factory(token_factory):
    with patch.object(server, "factory", token_factory):
        yield token_factory


# --- MCP tools ---

@pytest.mark.asyncio
async def test_create_and_price_token(patched_factory, authority):
    mock_context = MagicMock()
    created = await server.create_token(
        context=mock_context,
        authority=authority,
        name="Crossify Token",
        symbol="CRX",
        decimals=9,
        metadata_uri="https://example.com/crx.json",
        initial_supply=1_000_000,
    )
    assert created.startswith("Token 0 (CRX) created with mint")

    configured = await server.configure_bonding_curve(
        context=mock_context, caller=authority, token_id=0, curve_kind=0, base_price=100, slope=1, reserve_ratio=0,
    )
    assert configured.startswith("Bonding curve for token 0 configured")

    result = await server.calculate_price(context=mock_context, token_id=0, supply=10, amount=5)
    assert result == "Price for 5 units of token 0 at supply 10: 550"


@pytest.mark.asyncio
async def test_get_token_info(patched_factory, token):
    result = await server.get_token_info(context=MagicMock(), token_id=token.token_id)
    info = json.loads(result)
    assert info["symbol"] == "CRX"
    assert info["bonding_curve"]["enabled"] is True

    missing = await server.get_token_info(context=MagicMock(), token_id=99)
    assert missing.startswith("Not found:")


@pytest.mark.asyncio
async def test_create_token_rejects_long_symbol(patched_factory, authority):
    result = await server.create_token(
        context=MagicMock(),
        authority=authority,
        name="Name",
        symbol="WAYTOOLONGSYMBOL",
        decimals=9,
        metadata_uri="uri",
        initial_supply=1,
    )
    assert result.startswith("Error: Invalid input parameters")


@pytest.mark.asyncio
async def test_error_categories(patched_factory, token, authority, stranger):
    mock_context = MagicMock()

    bad_kind = await server.configure_bonding_curve(
        context=mock_context, caller=authority, token_id=token.token_id, curve_kind=7, base_price=1, slope=0,
        reserve_ratio=0,
    )
    assert bad_kind.startswith("Configuration error:")

    not_owner = await server.configure_bonding_curve(
        context=mock_context, caller=stranger, token_id=token.token_id, curve_kind=0, base_price=1, slope=0,
        reserve_ratio=0,
    )
    assert not_owner.startswith("Authorization error:")

    not_enabled = await server.announce_token(
        context=mock_context, caller=authority, token_id=token.token_id, target_chain=ETHEREUM,
    )
    assert not_enabled.startswith("State error:")

    bad_payload = await server.receive_cross_chain_message(
        context=mock_context, source_chain=ETHEREUM, source_address=TRUSTED_ADDRESS.hex(), payload_hex="ff00",
    )
    assert bad_payload.startswith("Protocol error:")


@pytest.mark.asyncio
async def test_cross_chain_tools(patched_factory, token, authority, emitter_id, transport):
    mock_context = MagicMock()

    enabled = await server.enable_cross_chain(
        context=mock_context, caller=authority, token_id=token.token_id, emitter_id=emitter_id, chain_ids=[ETHEREUM],
    )
    assert enabled.endswith(f"Supported chains: [{ETHEREUM}]")

    await server.announce_token(context=mock_context, caller=authority, token_id=token.token_id, target_chain=ETHEREUM)
    await server.publish_price_update(
        context=mock_context, caller=authority, token_id=token.token_id, target_chain=ETHEREUM, supply=10,
    )
    await server.publish_liquidity_update(
        context=mock_context, caller=authority, token_id=token.token_id, target_chain=ETHEREUM,
        liquidity_added=50, liquidity_removed=0, current_liquidity=50,
    )

    payloads = [codec.decode(message) for _, message in transport.sent]
    assert [type(p) for p in payloads] == [TokenCreationFact, PriceUpdateFact, LiquidityUpdateFact]
    assert payloads[1].current_price == 110
    assert payloads[2].current_liquidity == 50

    unsupported = await server.publish_price_update(
        context=mock_context, caller=authority, token_id=token.token_id, target_chain=BSC, supply=10,
    )
    assert unsupported.startswith("State error:")
    assert len(transport.sent) == 3


@pytest.mark.asyncio
async def test_receive_cross_chain_message(patched_factory, sink):
    result = await server.receive_cross_chain_message(
        context=MagicMock(), source_chain=ETHEREUM, source_address=TRUSTED_ADDRESS.hex(), payload_hex=PRICE_BYTES.hex(),
    )
    assert result.startswith("PriceUpdatedFromRemote:")
    assert isinstance(sink.facts[-1], PriceUpdatedFromRemote)

    untrusted = await server.receive_cross_chain_message(
        context=MagicMock(), source_chain=BSC, source_address=TRUSTED_ADDRESS.hex(), payload_hex=PRICE_BYTES.hex(),
    )
    assert untrusted.startswith("Authorization error:")


@pytest.mark.asyncio
async def test_factory_authority():
    result = await server.factory_authority(context=MagicMock())
    assert result == str(config.FACTORY_AUTHORITY.pubkey())


# --- Relayer HTTP API ---

@pytest.fixture
def client(token_factory):
    app = create_app(token_factory)
    app.config["TESTING"] = True
    return app.test_client()


def delivery(source_chain=ETHEREUM, source_address=TRUSTED_ADDRESS, payload=PRICE_BYTES) -> dict:
    return {
        "sourceChain": source_chain,
        "sourceAddress": source_address.hex(),
        "payload": base64.b64encode(payload).decode("ascii"),
    }


def test_post_message(client, sink):
    response = client.post("/v1/messages", json=delivery())

    assert response.status_code == 200
    assert response.json["fact"] == "PriceUpdatedFromRemote"
    assert response.json["data"]["current_price"] == 42
    assert response.json["data"]["source_chain"] == ETHEREUM
    assert len(sink.facts) == 1
    assert "Access-Control-Allow-Origin" not in response.headers


def test_post_message_rejections(client, sink):
    assert client.post("/v1/messages", json=delivery(source_chain=BSC)).status_code == 403
    assert client.post("/v1/messages", json=delivery(payload=b"")).status_code == 400
    assert client.post("/v1/messages", json=delivery(payload=b"\x04" + PRICE_BYTES[1:])).status_code == 400
    assert client.post("/v1/messages", json={"sourceChain": ETHEREUM}).status_code == 400
    assert client.post("/v1/messages", json=dict(delivery(), sourceAddress="zz")).status_code == 400
    assert client.post("/v1/messages", data="not json", content_type="text/plain").status_code == 415
    assert sink.facts == []


def test_post_message_rate_limited(client, token_factory):
    token_factory.rate_limit_per_minute = 1
    assert client.post("/v1/messages", json=delivery()).status_code == 200

    response = client.post("/v1/messages", json=delivery())
    assert response.status_code == 429
    assert response.json["error"] == "RateLimitExceededError"


def test_get_price(client, token, authority, token_factory):
    response = client.get(f"/v1/tokens/{token.token_id}/price?supply=10&amount=5")
    assert response.status_code == 200
    assert response.json["price"] == "550"

    assert client.get("/v1/tokens/99/price?supply=10&amount=5").status_code == 404
    assert client.get(f"/v1/tokens/{token.token_id}/price?supply=ten&amount=5").status_code == 400
    assert client.get(f"/v1/tokens/{token.token_id}/price?supply=-1&amount=5").status_code == 400


def test_get_price_curve_not_enabled(client, token_factory, authority):
    record = token_factory.create_token(authority, "Plain", "PLN", 6, "uri://plain", 10)
    response = client.get(f"/v1/tokens/{record.token_id}/price?supply=10&amount=5")
    assert response.status_code == 409
    assert response.json["error"] == "BondingCurveNotEnabledError"
