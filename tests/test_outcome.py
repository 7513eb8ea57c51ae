import hashlib

import pytest

from provably_fair.domain.game_mappers import CoinflipMapper, CrashMapper
from provably_fair.domain.outcome import (
    derive,
    generate_client_seed,
    generate_server_seed,
    hash_server_seed,
    hmac_digest,
    hmac_hex,
    outcome_from_digest,
    seeds_match,
)

# Regression anchor computed once and pinned.
ANCHOR_SERVER_SEED = "abc123"
ANCHOR_CLIENT_SEED = "xyz"
ANCHOR_NONCE = 1
ANCHOR_HMAC = "1b8b76b6f993273ca287cf88e2c16545bb03c26d1777f179baed8d98e6616226"
ANCHOR_PREFIX = 0x1B8B76B6
ANCHOR_OUTCOME = 462124726 / 2**32


def test_regression_anchor_digest():
    assert hmac_hex(ANCHOR_SERVER_SEED, ANCHOR_CLIENT_SEED, ANCHOR_NONCE) == ANCHOR_HMAC
    assert ANCHOR_PREFIX == 462124726


def test_regression_anchor_outcome():
    outcome = derive(ANCHOR_SERVER_SEED, ANCHOR_CLIENT_SEED, ANCHOR_NONCE)
    assert outcome == ANCHOR_OUTCOME
    assert outcome == pytest.approx(0.1075967974, abs=1e-10)


def test_regression_anchor_results():
    outcome = derive(ANCHOR_SERVER_SEED, ANCHOR_CLIENT_SEED, ANCHOR_NONCE)
    assert CoinflipMapper().map(outcome, {"bias": 0.0}) == {"side": "heads"}
    assert CrashMapper(house_edge=0.01).map(outcome, {}) == {"multiplier": 1.10}


def test_derive_is_deterministic():
    first = [derive("server", "client", nonce) for nonce in range(100)]
    second = [derive("server", "client", nonce) for nonce in range(100)]
    assert first == second


def test_derive_depends_on_every_input():
    base = derive("server", "client", 0)
    assert derive("server", "client", 1) != base
    assert derive("server", "client2", 0) != base
    assert derive("server2", "client", 0) != base


def test_derive_range():
    for nonce in range(2000):
        assert 0.0 <= derive("range-check", "client", nonce) < 1.0


def test_outcome_from_digest_extremes():
    assert outcome_from_digest(b"\x00" * 32) == 0.0
    assert outcome_from_digest(b"\xff" * 32) == (2**32 - 1) / 2**32
    assert outcome_from_digest(b"\xff" * 32) < 1.0


def test_message_uses_colon_separator():
    assert hmac_digest("key", "a:1", 2) == hmac_digest("key", "a:1", 2)
    assert hmac_digest("key", "a", 12) != hmac_digest("key", "a:1", 2)


def test_derive_rejects_negative_nonce():
    with pytest.raises(ValueError):
        derive("server", "client", -1)


def test_hash_server_seed_is_sha256():
    assert hash_server_seed("abc123") == hashlib.sha256(b"abc123").hexdigest()
    assert hash_server_seed("abc123") == "6ca13d52ca70c883e0f0bb101e425a89e8624de51db2d2392593af6a84118090"


def test_seeds_match():
    seed = generate_server_seed()
    assert seeds_match(seed, hash_server_seed(seed))
    assert seeds_match(seed, hash_server_seed(seed).upper())
    assert not seeds_match(seed + "x", hash_server_seed(seed))
    assert not seeds_match(seed, "ünicode")


def test_generated_seeds_are_random_and_wide():
    server_seeds = {generate_server_seed() for _ in range(50)}
    assert len(server_seeds) == 50
    assert all(len(seed) == 64 for seed in server_seeds)
    assert len(generate_client_seed()) == 32
