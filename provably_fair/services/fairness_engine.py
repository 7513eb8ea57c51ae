import logging
from typing import Any, Dict, List, Mapping
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from provably_fair.crud import CreateData, ReadData
from provably_fair.domain.game_mappers import GameResultMapper, GameType, build_mappers
from provably_fair.domain.outcome import derive, hmac_hex
from provably_fair.exceptions import (
    InvalidBetParamsError,
    NonceConflictError,
    OutcomeGenerationError,
    RoundNotFoundError,
)
from provably_fair.models.dc_models import OutcomeModel
from provably_fair.models.schema_models import GameRoundSchema
from provably_fair.models.schemas import RoundStatus
from provably_fair.services.client_seed_registry import ClientSeedRegistry
from provably_fair.services.crate_catalog import CrateCatalog, StaticCrateCatalog
from provably_fair.services.nonce_counter import NonceCounter
from provably_fair.services.seed_manager import SeedManager
from provably_fair.services.verification import VerificationService

create_data = CreateData()
read_data = ReadData()

FAILED_ROUND_EVENT = "round_failed"


class FairnessEngine:
    """Single entry point for collaborators that need a provably fair outcome.

    Round order: validate params -> reserve nonce -> derive -> map -> persist
    the GameRound -> return. Only after the return may the caller touch
    balances. Once a nonce is reserved it stays consumed: a failure later on
    is stored as a failed round instead of being discarded.
    """

    def __init__(
        self,
        Session: async_sessionmaker,
        mappers: Mapping[GameType, GameResultMapper] | None = None,
        crate_catalog: CrateCatalog | None = None,
    ):
        self.Session: async_sessionmaker = Session
        self.mappers = mappers if mappers is not None else build_mappers()
        self.crate_catalog = crate_catalog if crate_catalog is not None else StaticCrateCatalog()
        self.seed_manager = SeedManager(Session)
        self.client_seed_registry = ClientSeedRegistry(Session)
        self.nonce_counter = NonceCounter(Session)
        self.verification_service = VerificationService(Session, self.mappers)

    def prepare_bet_params(self, game_type: GameType, bet_params: Dict[str, Any]) -> Dict[str, Any]:
        """Resolve collaborator data and normalise the params before a nonce is spent

        Crate rounds get the catalog's validated distribution copied into
        their params so the stored round can be replayed on its own.
        """
        mapper = self.mappers[game_type]
        bet_params = dict(bet_params)
        if game_type == GameType.crate:
            crate_id = bet_params.get("crate_id")
            if not isinstance(crate_id, str) or not crate_id:
                raise InvalidBetParamsError(f"crate_id must be a non-empty string, got {crate_id!r}")
            distribution = self.crate_catalog.get_distribution(crate_id)
            bet_params["items"] = distribution.as_items()
        return mapper.validate_params(bet_params)

    async def request_outcome(self, user_id: str, game_type: GameType, bet_params: Dict[str, Any]) -> OutcomeModel:
        """Produce, persist and return the outcome of one round

        Args:
            user_id (str): Player of the round
            game_type (GameType): Selects the result mapper
            bet_params (Dict[str, Any]): Game specific params, e.g. choice, target_multiplier, crate_id

        Raises:
            InvalidBetParamsError: Params rejected before any nonce was reserved
            CrateNotFoundError: Unknown crate
            StaleSeedError: The seed rotated between lookup and reservation; retry
            NonceConflictError: Reuse of the nonce was detected
            OutcomeGenerationError: Derivation, mapping or persistence failed; the nonce is consumed

        Returns:
            OutcomeModel: Fairness data and result of the persisted round
        """
        game_type = GameType(game_type)
        mapper = self.mappers[game_type]
        params = self.prepare_bet_params(game_type, bet_params)

        client_seed = await self.client_seed_registry.get_client_seed(user_id)
        active_seed = await self.seed_manager.get_active_server_seed()
        nonce = await self.nonce_counter.reserve_nonce(user_id, active_seed.server_seed_id)

        try:
            server_seed = await self.seed_manager.read_seed_secret(active_seed.server_seed_id)
            derived_value = derive(server_seed, client_seed, nonce)
            result = mapper.map(derived_value, params)
            round_hmac = hmac_hex(server_seed, client_seed, nonce)
        except Exception as e:
            await self._record_failed_round(
                user_id, active_seed.server_seed_id, client_seed, nonce, game_type, params, e
            )
            raise OutcomeGenerationError(
                f"round for user {user_id} nonce {nonce} failed after reservation: {e}"
            ) from e

        try:
            async with self.Session() as session:
                async with session.begin():
                    game_round = await create_data.create_game_round(
                        user_id=user_id,
                        server_seed_id=active_seed.server_seed_id,
                        client_seed=client_seed,
                        nonce=nonce,
                        game_type=game_type.value,
                        bet_params=params,
                        derived_value=derived_value,
                        result_payload=result,
                        status=RoundStatus.completed,
                        session=session,
                    )
        except IntegrityError as e:
            logging.critical(
                f"Nonce {nonce} of user {user_id} on seed {active_seed.server_seed_id} was already used"
            )
            raise NonceConflictError(f"nonce {nonce} already has a round") from e
        except Exception as e:
            await self._record_failed_round(
                user_id, active_seed.server_seed_id, client_seed, nonce, game_type, params, e
            )
            raise OutcomeGenerationError(f"round for user {user_id} nonce {nonce} could not be stored: {e}") from e

        logging.info(
            f"Round {game_round.round_id} user={user_id} game={game_type.value} "
            f"seed={active_seed.server_seed_id} nonce={nonce} value={derived_value}"
        )
        return OutcomeModel(
            round_id=game_round.round_id,
            server_seed_id=active_seed.server_seed_id,
            server_seed_hash=active_seed.hashed_seed,
            client_seed=client_seed,
            nonce=nonce,
            derived_value=derived_value,
            hmac=round_hmac,
            game_type=game_type,
            result=result,
        )

    async def _record_failed_round(
        self,
        user_id: str,
        server_seed_id: UUID,
        client_seed: str,
        nonce: int,
        game_type: GameType,
        params: Dict[str, Any],
        error: Exception,
    ) -> None:
        error_payload = {"error": type(error).__name__, "detail": str(error)}
        logging.error(f"Round of user {user_id} nonce {nonce} failed: {error_payload}")
        try:
            async with self.Session() as session:
                async with session.begin():
                    await create_data.create_game_round(
                        user_id=user_id,
                        server_seed_id=server_seed_id,
                        client_seed=client_seed,
                        nonce=nonce,
                        game_type=game_type.value,
                        bet_params=params,
                        derived_value=None,
                        result_payload=error_payload,
                        status=RoundStatus.failed,
                        session=session,
                    )
                    await create_data.create_audit_log(
                        FAILED_ROUND_EVENT,
                        {
                            "user_id": user_id,
                            "server_seed_id": str(server_seed_id),
                            "nonce": nonce,
                            **error_payload,
                        },
                        session,
                    )
        except Exception as e:
            # the nonce is still consumed; only the record is missing
            logging.critical(f"Could not record failed round of user {user_id} nonce {nonce}: {e}")

    async def get_round(self, round_id: UUID) -> GameRoundSchema:
        async with self.Session() as session:
            game_round = await read_data.read_game_round(round_id, session)
        if game_round is None:
            raise RoundNotFoundError(f"game round {round_id} does not exist")
        return GameRoundSchema.model_validate(game_round)

    async def get_user_rounds(self, user_id: str, limit: int = 50) -> List[GameRoundSchema]:
        async with self.Session() as session:
            game_rounds = await read_data.read_user_game_rounds(user_id, limit, session)
        return [GameRoundSchema.model_validate(game_round) for game_round in game_rounds]
