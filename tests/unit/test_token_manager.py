import json

import pytest
from solders.keypair import Keypair

from mcp_token_factory.errors import StaleFactoryStateError, TokenNotFoundError
from mcp_token_factory.schemas import CrossChainConfig, CurveConfig, TokenRecord
from mcp_token_factory.token_manager import FACTORY_STATE_FILE, JsonTokenStore


def make_record(token_id: int, authority: str, **overrides) -> TokenRecord:
    key = str(Keypair.from_seed(bytes([token_id + 20] * 32)).pubkey())
    fields = dict(
        token_id=token_id,
        mint=key,
        name=f"Token {token_id}",
        symbol=f"T{token_id}",
        decimals=9,
        metadata_uri=f"https://example.com/{token_id}.json",
        authority=authority,
        initial_supply=1000,
        token_account=key,
    )
    fields.update(overrides)
    return TokenRecord(**fields)


def test_put_then_get(store, authority):
    record = make_record(0, authority)
    store.put(record)
    assert store.get(0) == record
    assert store.find(1) is None


def test_get_missing_token(store):
    with pytest.raises(TokenNotFoundError):
        store.get(5)


def test_records_survive_a_new_store(store, tmp_path, authority, emitter_id):
    record = make_record(
        3,
        authority,
        cross_chain_enabled=True,
        cross_chain=CrossChainConfig(emitter_id=emitter_id, supported_chains={2, 30}),
        bonding_curve=CurveConfig(enabled=True, curve_kind=2, base_price=100, reserve_ratio=800),
    )
    store.put(record)

    reopened = JsonTokenStore(store.store_dir, authority=authority)
    loaded = reopened.get(3)
    assert loaded == record
    assert loaded.cross_chain.supported_chains == {2, 30}


def test_invalid_files_are_skipped(store, authority):
    store.put(make_record(0, authority))
    (store.store_dir / "1.json").write_text("{not json")
    (store.store_dir / "2.json").write_text(json.dumps({"token_id": 2}))
    # file name does not match the record id
    (store.store_dir / "9.json").write_text(make_record(4, authority).model_dump_json())

    store.clear_cache()
    assert list(store.load_tokens_from_files()) == [0]


def test_missing_directory_loads_nothing(tmp_path, authority):
    empty = JsonTokenStore(tmp_path / "nowhere", authority=authority)
    assert empty.load_tokens_from_files() == {}
    assert empty.factory_state().token_count == 0
    assert empty.factory_state().authority == authority


def test_compare_and_increment(store):
    assert store.compare_and_increment(0) == 1
    assert store.compare_and_increment(1) == 2
    assert store.factory_state().token_count == 2
    assert (store.store_dir / FACTORY_STATE_FILE).exists()


def test_compare_and_increment_rejects_stale_count(store):
    store.compare_and_increment(0)
    with pytest.raises(StaleFactoryStateError):
        store.compare_and_increment(0)
    assert store.factory_state().token_count == 1


def test_factory_state_file_is_not_a_record(store, authority):
    store.compare_and_increment(0)
    store.put(make_record(0, authority))
    store.clear_cache()
    assert list(store.load_tokens_from_files()) == [0]


def test_returned_records_are_copies(store, authority):
    store.put(make_record(0, authority))

    record = store.get(0)
    record.cross_chain_enabled = True
    record.bonding_curve.enabled = True

    stored = store.get(0)
    assert stored.cross_chain_enabled is False
    assert stored.bonding_curve.enabled is False
