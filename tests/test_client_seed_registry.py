import pytest

from provably_fair.exceptions import InvalidClientSeedError
from provably_fair.services.client_seed_registry import ClientSeedRegistry, validate_client_seed


@pytest.mark.parametrize("seed", ["", "   ", "x" * 65, "tab\tseed", "null\x00", None, 42])
def test_validate_rejects(seed):
    with pytest.raises(InvalidClientSeedError):
        validate_client_seed(seed, max_length=64)


@pytest.mark.parametrize("seed", ["xyz", "x" * 64, "lucky seed 7", "ünïcödé"])
def test_validate_accepts(seed):
    assert validate_client_seed(seed, max_length=64) == seed


async def test_default_seed_is_generated_once(Session):
    registry = ClientSeedRegistry(Session)
    first = await registry.get_client_seed("alice")
    assert len(first) == 32
    assert await registry.get_client_seed("alice") == first
    assert await registry.get_client_seed("bob") != first


async def test_set_then_get(Session):
    registry = ClientSeedRegistry(Session)
    await registry.get_client_seed("alice")

    stored = await registry.set_client_seed("alice", "my lucky seed")
    assert stored.user_id == "alice"
    assert stored.seed == "my lucky seed"
    assert await registry.get_client_seed("alice") == "my lucky seed"

    await registry.set_client_seed("alice", "another")
    assert await registry.get_client_seed("alice") == "another"


async def test_set_creates_missing_row(Session):
    registry = ClientSeedRegistry(Session)
    await registry.set_client_seed("carol", "first")
    assert await registry.get_client_seed("carol") == "first"


async def test_invalid_seed_leaves_stored_seed(Session):
    registry = ClientSeedRegistry(Session, max_length=8)
    await registry.set_client_seed("alice", "short")
    with pytest.raises(InvalidClientSeedError):
        await registry.set_client_seed("alice", "far too long")
    assert await registry.get_client_seed("alice") == "short"
