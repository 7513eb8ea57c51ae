import asyncio
import uuid

import pytest
from sqlalchemy import select

from provably_fair.exceptions import StaleSeedError
from provably_fair.models.schemas import NonceState
from provably_fair.services.nonce_counter import NonceCounter
from provably_fair.services.seed_manager import SeedManager


@pytest.fixture
async def active_seed(Session):
    return await SeedManager(Session).generate_server_seed()


async def test_sequential_nonces_start_at_zero(Session, active_seed):
    nonce_counter = NonceCounter(Session)
    nonces = [await nonce_counter.reserve_nonce("alice", active_seed.server_seed_id) for _ in range(5)]
    assert nonces == [0, 1, 2, 3, 4]


async def test_users_have_independent_counters(Session, active_seed):
    nonce_counter = NonceCounter(Session)
    assert await nonce_counter.reserve_nonce("alice", active_seed.server_seed_id) == 0
    assert await nonce_counter.reserve_nonce("alice", active_seed.server_seed_id) == 1
    assert await nonce_counter.reserve_nonce("bob", active_seed.server_seed_id) == 0


async def test_concurrent_reservations_are_unique_and_gapless(Session, active_seed):
    nonce_counter = NonceCounter(Session)
    count = 50
    nonces = await asyncio.gather(
        *(nonce_counter.reserve_nonce("alice", active_seed.server_seed_id) for _ in range(count))
    )
    assert sorted(nonces) == list(range(count))


async def test_counter_restarts_on_new_seed(Session, active_seed):
    nonce_counter = NonceCounter(Session)
    await nonce_counter.reserve_nonce("alice", active_seed.server_seed_id)
    await nonce_counter.reserve_nonce("alice", active_seed.server_seed_id)

    _, new_seed = await SeedManager(Session).rotate_and_reveal()
    assert await nonce_counter.reserve_nonce("alice", new_seed.server_seed_id) == 0


async def test_rotation_during_reservations(Session, active_seed):
    nonce_counter = NonceCounter(Session)
    seed_manager = SeedManager(Session)
    reservations = [nonce_counter.reserve_nonce("alice", active_seed.server_seed_id) for _ in range(40)]
    reservations.insert(20, seed_manager.rotate_and_reveal())

    results = await asyncio.gather(*reservations, return_exceptions=True)
    rotation = results.pop(20)
    assert not isinstance(rotation, Exception)
    revealed, new_seed = rotation
    assert revealed.server_seed_id == active_seed.server_seed_id

    nonces = [result for result in results if not isinstance(result, Exception)]
    errors = [result for result in results if isinstance(result, Exception)]
    assert all(isinstance(error, StaleSeedError) for error in errors)
    assert len(nonces) + len(errors) == 40
    # rejected reservations consume nothing, accepted ones stay gapless
    assert sorted(nonces) == list(range(len(nonces)))

    async with Session() as session:
        nonce_state = await session.scalar(
            select(NonceState).where(
                NonceState.user_id == "alice", NonceState.server_seed_id == active_seed.server_seed_id
            )
        )
    assert (nonce_state.next_nonce if nonce_state else 0) == len(nonces)

    # every reservation after the rotation is refused for the revealed seed
    with pytest.raises(StaleSeedError):
        await nonce_counter.reserve_nonce("alice", active_seed.server_seed_id)
    assert await nonce_counter.reserve_nonce("alice", new_seed.server_seed_id) == 0


async def test_revealed_seed_is_stale(Session, active_seed):
    nonce_counter = NonceCounter(Session)
    await SeedManager(Session).rotate_and_reveal()
    with pytest.raises(StaleSeedError):
        await nonce_counter.reserve_nonce("alice", active_seed.server_seed_id)


async def test_unknown_seed_is_stale(Session, active_seed):
    with pytest.raises(StaleSeedError):
        await NonceCounter(Session).reserve_nonce("alice", uuid.uuid4())
