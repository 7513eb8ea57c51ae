import uuid

import pytest
from sqlalchemy import select, update

from provably_fair.domain.game_mappers import GameType
from provably_fair.domain.outcome import hash_server_seed
from provably_fair.exceptions import (
    InvalidBetParamsError,
    RoundNotFoundError,
    SeedNotRevealedError,
    VerificationMismatchError,
)
from provably_fair.models.schemas import AuditLog, GameRound, ServerSeed
from provably_fair.services.verification import ROUND_MISMATCH, SEED_HASH_MISMATCH


async def audit_events(Session):
    async with Session() as session:
        return [audit_log.event for audit_log in (await session.scalars(select(AuditLog))).all()]


async def play_and_reveal(fairness_engine, game_type=GameType.crash, bet_params=None):
    outcome = await fairness_engine.request_outcome("alice", game_type, bet_params or {})
    revealed, _ = await fairness_engine.seed_manager.rotate_and_reveal()
    game_round = await fairness_engine.get_round(outcome.round_id)
    return outcome, revealed, game_round


async def tamper_seed(Session, server_seed_id):
    async with Session() as session:
        async with session.begin():
            await session.execute(
                update(ServerSeed)
                .where(ServerSeed.server_seed_id == server_seed_id)
                .values(plaintext_seed="tampered")
            )


def test_recompute_regression_anchor(fairness_engine):
    derived_value, result = fairness_engine.verification_service.recompute(
        "abc123", "xyz", 1, GameType.crash, {"house_edge": 0.01, "max_multiplier": 1000.0}
    )
    assert derived_value == 462124726 / 2**32
    assert result == {"multiplier": 1.10}


def test_recompute_unknown_game(fairness_engine):
    with pytest.raises(InvalidBetParamsError):
        fairness_engine.verification_service.recompute("abc123", "xyz", 1, "roulette", {})


@pytest.mark.parametrize(
    "game_type, bet_params",
    [
        (GameType.coinflip, {"choice": "tails"}),
        (GameType.crash, {"target_multiplier": 1.5}),
        (GameType.crate, {"crate_id": "starter"}),
        (GameType.plinko, {"rows": 12, "risk": "high"}),
    ],
)
async def test_verify_round_trip(fairness_engine, game_type, bet_params):
    outcome, revealed, game_round = await play_and_reveal(fairness_engine, game_type, bet_params)

    assert await fairness_engine.verification_service.verify(
        revealed.plaintext_seed,
        revealed.hashed_seed,
        outcome.client_seed,
        outcome.nonce,
        game_type,
        game_round.bet_params,
        outcome.result,
    )


async def test_verify_detects_altered_inputs(fairness_engine):
    outcome, revealed, game_round = await play_and_reveal(fairness_engine)
    service = fairness_engine.verification_service

    args = dict(
        revealed_server_seed=revealed.plaintext_seed,
        hashed_seed=revealed.hashed_seed,
        client_seed=outcome.client_seed,
        nonce=outcome.nonce,
        game_type=GameType.crash,
        bet_params=game_round.bet_params,
        claimed_result=outcome.result,
    )
    altered_result = {"multiplier": outcome.result["multiplier"] + 0.01}
    assert not await service.verify(**{**args, "claimed_result": altered_result})

    # altering the client seed or nonce moves the outcome; compare on the raw value
    other_value, _ = service.recompute(revealed.plaintext_seed, outcome.client_seed + "!", 0, GameType.crash, {})
    assert other_value != outcome.derived_value
    other_value, _ = service.recompute(revealed.plaintext_seed, outcome.client_seed, 1, GameType.crash, {})
    assert other_value != outcome.derived_value


async def test_verify_wrong_seed_is_not_audited(Session, fairness_engine):
    outcome, revealed, game_round = await play_and_reveal(fairness_engine)
    service = fairness_engine.verification_service

    args = (outcome.client_seed, outcome.nonce, GameType.crash, game_round.bet_params, outcome.result)
    with pytest.raises(VerificationMismatchError):
        await service.verify(revealed.plaintext_seed + "0", revealed.hashed_seed, *args)
    for _ in range(5):
        with pytest.raises(VerificationMismatchError):
            await service.verify(revealed.plaintext_seed, "0" * 64, *args)
    assert await audit_events(Session) == []


async def test_verify_tampered_commitment_is_audited(Session, fairness_engine):
    outcome, revealed, game_round = await play_and_reveal(fairness_engine)
    await tamper_seed(Session, revealed.server_seed_id)

    with pytest.raises(VerificationMismatchError):
        await fairness_engine.verification_service.verify(
            "tampered",
            revealed.hashed_seed.upper(),
            outcome.client_seed,
            outcome.nonce,
            GameType.crash,
            game_round.bet_params,
            outcome.result,
        )
    assert await audit_events(Session) == [SEED_HASH_MISMATCH]


async def test_verify_round_matches(Session, fairness_engine):
    outcome, revealed, _ = await play_and_reveal(fairness_engine, GameType.plinko, {})

    report = await fairness_engine.verification_service.verify_round(outcome.round_id)
    assert report.match
    assert report.hash_matches and report.derived_value_matches and report.result_matches
    assert report.recomputed_derived_value == outcome.derived_value
    assert report.recomputed_result == outcome.result
    assert report.server_seed_id == revealed.server_seed_id

    report = await fairness_engine.verification_service.verify_round(outcome.round_id, revealed.plaintext_seed)
    assert report.match
    assert await audit_events(Session) == []


async def test_verify_round_before_reveal(fairness_engine):
    outcome = await fairness_engine.request_outcome("alice", GameType.crash, {})
    with pytest.raises(SeedNotRevealedError):
        await fairness_engine.verification_service.verify_round(outcome.round_id)


async def test_verify_round_unknown(fairness_engine):
    with pytest.raises(RoundNotFoundError):
        await fairness_engine.verification_service.verify_round(uuid.uuid4())


async def test_verify_round_wrong_seed(Session, fairness_engine):
    outcome, _, _ = await play_and_reveal(fairness_engine)
    report = await fairness_engine.verification_service.verify_round(outcome.round_id, "not the seed")
    assert not report.match
    assert not report.hash_matches
    assert report.recomputed_result is None
    assert await audit_events(Session) == []


async def test_verify_round_tampered_seed(Session, fairness_engine):
    outcome, revealed, _ = await play_and_reveal(fairness_engine)
    await tamper_seed(Session, revealed.server_seed_id)
    with pytest.raises(VerificationMismatchError):
        await fairness_engine.verification_service.verify_round(outcome.round_id)
    assert await audit_events(Session) == [SEED_HASH_MISMATCH]


async def test_verify_round_detects_tampered_result(Session, fairness_engine):
    outcome, _, _ = await play_and_reveal(fairness_engine)
    async with Session() as session:
        async with session.begin():
            await session.execute(
                update(GameRound)
                .where(GameRound.round_id == outcome.round_id)
                .values(result_payload={"multiplier": 999.0})
            )

    report = await fairness_engine.verification_service.verify_round(outcome.round_id)
    assert not report.match
    assert report.hash_matches
    assert report.derived_value_matches
    assert not report.result_matches
    assert report.recomputed_result == outcome.result
    assert await audit_events(Session) == [ROUND_MISMATCH]


async def test_audit_seed_history(Session, fairness_engine):
    await fairness_engine.seed_manager.rotate_and_reveal()
    revealed, _ = await fairness_engine.seed_manager.rotate_and_reveal()
    assert await fairness_engine.verification_service.audit_seed_history() == []

    await tamper_seed(Session, revealed.server_seed_id)
    assert hash_server_seed("tampered") != revealed.hashed_seed
    assert await fairness_engine.verification_service.audit_seed_history() == [revealed.server_seed_id]
    assert await audit_events(Session) == [SEED_HASH_MISMATCH]
