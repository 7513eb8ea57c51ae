import logging
from typing import Any, Dict, List, Mapping, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import async_sessionmaker

from provably_fair.crud import CreateData, ReadData
from provably_fair.domain.game_mappers import GameResultMapper, GameType
from provably_fair.domain.outcome import derive, hash_server_seed, seeds_match
from provably_fair.exceptions import (
    InvalidBetParamsError,
    RoundNotFoundError,
    SeedNotFoundError,
    SeedNotRevealedError,
    VerificationMismatchError,
)
from provably_fair.models.dc_models import VerificationReportModel
from provably_fair.models.schemas import RoundStatus, SeedState

create_data = CreateData()
read_data = ReadData()

SEED_HASH_MISMATCH = "server_seed_hash_mismatch"
ROUND_MISMATCH = "round_result_mismatch"


class VerificationService:
    """Recomputes past rounds from revealed inputs.

    Disagreements are evidence of tampering or a bug. They are written to the
    audit log and logged at CRITICAL; stored rounds are never changed.
    """

    def __init__(self, Session: async_sessionmaker, mappers: Mapping[GameType, GameResultMapper]):
        self.Session: async_sessionmaker = Session
        self.mappers = mappers

    def recompute(
        self,
        server_seed: str,
        client_seed: str,
        nonce: int,
        game_type: GameType | str,
        bet_params: Dict[str, Any],
    ) -> Tuple[float, Dict[str, Any]]:
        """Replay derivation and mapping for one round

        Returns:
            Tuple[float, Dict[str, Any]]: Derived value and mapped result
        """
        try:
            mapper = self.mappers[GameType(game_type)]
        except ValueError:
            raise InvalidBetParamsError(f"unknown game type {game_type!r}")
        params = mapper.replay_params(bet_params)
        derived_value = derive(server_seed, client_seed, nonce)
        return derived_value, mapper.map(derived_value, params)

    async def verify(
        self,
        revealed_server_seed: str,
        hashed_seed: str,
        client_seed: str,
        nonce: int,
        game_type: GameType | str,
        bet_params: Dict[str, Any],
        claimed_result: Dict[str, Any],
    ) -> bool:
        """Check a published round against its revealed server seed

        Args:
            revealed_server_seed (str): Plaintext published at rotation
            hashed_seed (str): Commitment published while the seed was active
            client_seed (str): Client seed of the round
            nonce (int): Nonce of the round
            game_type (GameType | str): Mapper that produced the result
            bet_params (Dict[str, Any]): Params the mapper was applied with
            claimed_result (Dict[str, Any]): Result to check

        Raises:
            VerificationMismatchError: The revealed seed does not hash to the commitment. Only audited
                when the stored seed behind a published commitment contradicts it.

        Returns:
            bool: Whether the recomputed result equals the claim
        """
        if not seeds_match(revealed_server_seed, hashed_seed):
            await self._check_commitment(hashed_seed)
            logging.info(f"Verification request with a seed that does not hash to {hashed_seed!r}")
            raise VerificationMismatchError("revealed server seed does not match its commitment hash")

        _, recomputed_result = self.recompute(revealed_server_seed, client_seed, nonce, game_type, bet_params)
        return recomputed_result == claimed_result

    async def _check_commitment(self, hashed_seed: str) -> None:
        """Audit a published commitment whose own stored plaintext contradicts it.

        A caller supplying a wrong seed or an unknown hash is not evidence of
        tampering and leaves no audit record.
        """
        async with self.Session() as session:
            server_seed = await read_data.read_server_seed_by_hash(hashed_seed.strip().lower(), session)
        if server_seed is None or server_seed.state != SeedState.revealed.value:
            return
        if seeds_match(server_seed.plaintext_seed, server_seed.hashed_seed):
            return
        await self._record_mismatch(
            SEED_HASH_MISMATCH,
            {
                "server_seed_id": str(server_seed.server_seed_id),
                "hashed_seed": server_seed.hashed_seed,
                "recomputed_hash": hash_server_seed(server_seed.plaintext_seed),
            },
        )
        raise VerificationMismatchError(
            f"stored server seed {server_seed.server_seed_id} does not match its commitment hash"
        )

    async def verify_round(self, round_id: UUID, revealed_server_seed: str | None = None) -> VerificationReportModel:
        """Recompute a stored round once its server seed has been revealed

        Args:
            round_id (UUID): Round to check
            revealed_server_seed (str | None, optional): Seed published to the verifier. Defaults to the stored plaintext.

        Raises:
            RoundNotFoundError: Unknown round, or a failed round without an outcome
            SeedNotRevealedError: The round's seed is still active
            VerificationMismatchError: The stored seed does not hash to its own commitment
        """
        async with self.Session() as session:
            game_round = await read_data.read_game_round(round_id, session)
            if game_round is None:
                raise RoundNotFoundError(f"game round {round_id} does not exist")
            server_seed = await read_data.read_server_seed(game_round.server_seed_id, session)

        if game_round.status != RoundStatus.completed.value:
            raise RoundNotFoundError(f"game round {round_id} failed and has no outcome to verify")
        if server_seed is None:
            raise SeedNotFoundError(f"server seed {game_round.server_seed_id} does not exist")
        if server_seed.state != SeedState.revealed.value:
            raise SeedNotRevealedError(f"server seed {server_seed.server_seed_id} is still active")

        if not seeds_match(server_seed.plaintext_seed, server_seed.hashed_seed):
            await self._record_mismatch(
                SEED_HASH_MISMATCH,
                {
                    "round_id": str(round_id),
                    "server_seed_id": str(server_seed.server_seed_id),
                    "hashed_seed": server_seed.hashed_seed,
                    "recomputed_hash": hash_server_seed(server_seed.plaintext_seed),
                },
            )
            raise VerificationMismatchError(f"server seed of round {round_id} does not match its commitment hash")

        if revealed_server_seed is not None and not seeds_match(revealed_server_seed, server_seed.hashed_seed):
            # the caller's seed is wrong, the stored commitment is intact
            return VerificationReportModel(
                round_id=game_round.round_id,
                server_seed_id=server_seed.server_seed_id,
                hash_matches=False,
                derived_value_matches=False,
                result_matches=False,
                recomputed_derived_value=None,
                recomputed_result=None,
                match=False,
            )

        derived_value, recomputed_result = self.recompute(
            server_seed.plaintext_seed,
            game_round.client_seed,
            game_round.nonce,
            game_round.game_type,
            game_round.bet_params,
        )
        derived_value_matches = derived_value == game_round.derived_value
        result_matches = recomputed_result == game_round.result_payload
        report = VerificationReportModel(
            round_id=game_round.round_id,
            server_seed_id=server_seed.server_seed_id,
            hash_matches=True,
            derived_value_matches=derived_value_matches,
            result_matches=result_matches,
            recomputed_derived_value=derived_value,
            recomputed_result=recomputed_result,
            match=derived_value_matches and result_matches,
        )
        if not report.match:
            await self._record_mismatch(
                ROUND_MISMATCH,
                {
                    "round_id": str(round_id),
                    "server_seed_id": str(server_seed.server_seed_id),
                    "stored_derived_value": game_round.derived_value,
                    "recomputed_derived_value": derived_value,
                    "stored_result": game_round.result_payload,
                    "recomputed_result": recomputed_result,
                },
            )
        return report

    async def audit_seed_history(self) -> List[UUID]:
        """Check the commitment of every revealed seed

        Returns:
            List[UUID]: Seeds whose plaintext does not hash to the published hash
        """
        async with self.Session() as session:
            server_seeds = await read_data.read_revealed_server_seeds(session)

        mismatched: List[UUID] = []
        for server_seed in server_seeds:
            if seeds_match(server_seed.plaintext_seed, server_seed.hashed_seed):
                continue
            mismatched.append(server_seed.server_seed_id)
            await self._record_mismatch(
                SEED_HASH_MISMATCH,
                {
                    "server_seed_id": str(server_seed.server_seed_id),
                    "hashed_seed": server_seed.hashed_seed,
                    "recomputed_hash": hash_server_seed(server_seed.plaintext_seed),
                },
            )
        logging.info(f"Audited {len(server_seeds)} revealed server seeds, {len(mismatched)} mismatched")
        return mismatched

    async def _record_mismatch(self, event: str, details: Dict[str, Any]) -> None:
        logging.critical(f"Verification mismatch {event}: {details}")
        async with self.Session() as session:
            async with session.begin():
                await create_data.create_audit_log(event, details, session)
