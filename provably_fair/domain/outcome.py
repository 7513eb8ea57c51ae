"""Commit-reveal primitives and outcome derivation.

The server commits to ``sha256(server_seed)`` before any round is played.
Each round's outcome is

    HMAC-SHA256(key=server_seed, msg=f"{client_seed}:{nonce}")

with the first ``PREFIX_BYTES`` bytes of the digest read as an unsigned
big-endian integer and divided by ``2 ** 32``.
"""

import hashlib
import hmac
import secrets

from provably_fair.exceptions import RandomnessUnavailableError

SERVER_SEED_BYTES = 32  # 256 bits
CLIENT_SEED_BYTES = 16
PREFIX_BYTES = 4
OUTCOME_SCALE = 2 ** (8 * PREFIX_BYTES)


def hash_server_seed(server_seed: str) -> str:
    """Commitment hash published while the seed is active."""
    return hashlib.sha256(server_seed.encode("utf-8")).hexdigest()


def round_message(client_seed: str, nonce: int) -> str:
    return f"{client_seed}:{nonce}"


def hmac_digest(server_seed: str, client_seed: str, nonce: int) -> bytes:
    return hmac.new(
        key=server_seed.encode("utf-8"),
        msg=round_message(client_seed, nonce).encode("utf-8"),
        digestmod=hashlib.sha256,
    ).digest()


def hmac_hex(server_seed: str, client_seed: str, nonce: int) -> str:
    return hmac_digest(server_seed, client_seed, nonce).hex()


def outcome_from_digest(digest: bytes) -> float:
    """Normalise the digest prefix into [0, 1).

    Args:
        digest (bytes): HMAC-SHA256 digest

    Returns:
        float: prefix / 2**32, exactly representable as a float
    """
    prefix = int.from_bytes(digest[:PREFIX_BYTES], "big")
    return prefix / OUTCOME_SCALE


def derive(server_seed: str, client_seed: str, nonce: int) -> float:
    """Deterministic uniform outcome in [0, 1) for one round."""
    if nonce < 0:
        raise ValueError(f"nonce must be non-negative, got {nonce}")
    return outcome_from_digest(hmac_digest(server_seed, client_seed, nonce))


def _token_hex(nbytes: int) -> str:
    try:
        return secrets.token_hex(nbytes)
    except (NotImplementedError, OSError) as e:
        raise RandomnessUnavailableError(f"secure randomness unavailable: {e}") from e


def generate_server_seed() -> str:
    return _token_hex(SERVER_SEED_BYTES)


def generate_client_seed() -> str:
    return _token_hex(CLIENT_SEED_BYTES)


def seeds_match(server_seed: str, hashed_seed: str) -> bool:
    """Constant-time check of a revealed seed against its commitment."""
    return hmac.compare_digest(
        hash_server_seed(server_seed).encode("utf-8"),
        hashed_seed.strip().lower().encode("utf-8"),
    )
