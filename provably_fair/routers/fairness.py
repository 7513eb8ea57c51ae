import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from provably_fair.authentication.admin_authentication import admin_auth
from provably_fair.db import Session
from provably_fair.domain.game_mappers import build_mappers
from provably_fair.exceptions import VerificationMismatchError
from provably_fair.load_secrets import crate_catalog_path, house_edge, max_crash_multiplier
from provably_fair.models.dc_models import (
    ClientSeedModel,
    OutcomeModel,
    OutcomeRequestModel,
    RotationModel,
    VerificationModel,
    VerificationReportModel,
    VerifyRequestModel,
    VerifyRoundRequestModel,
)
from provably_fair.models.schema_models import (
    ActiveServerSeedSchema,
    ClientSeedSchema,
    GameRoundSchema,
    RevealedServerSeedSchema,
    ServerSeedSchema,
)
from provably_fair.services.crate_catalog import load_crate_catalog
from provably_fair.services.fairness_engine import FairnessEngine

fairness_router = APIRouter()

fairness_engine = FairnessEngine(
    Session,
    mappers=build_mappers(house_edge=house_edge, max_crash_multiplier=max_crash_multiplier),
    crate_catalog=load_crate_catalog(crate_catalog_path),
)


def get_fairness_engine() -> FairnessEngine:
    return fairness_engine


class SeedAPI:
    @staticmethod
    @fairness_router.get("/seeds/active", response_model=ActiveServerSeedSchema)
    async def get_active_seed(engine: FairnessEngine = Depends(get_fairness_engine)):
        return await engine.seed_manager.get_active_server_seed()

    @staticmethod
    @fairness_router.post("/seeds/rotate", response_model=RotationModel)
    async def rotate_seed(
        expected_seed_id: UUID | None = None,
        admin: str = Depends(admin_auth.check_admin),
        engine: FairnessEngine = Depends(get_fairness_engine),
    ):
        revealed_seed, new_seed = await engine.seed_manager.rotate_and_reveal(expected_seed_id)
        logging.info(f"Seed rotation requested by {admin}")
        return RotationModel(revealed_seed=revealed_seed, new_seed=new_seed)

    @staticmethod
    @fairness_router.get("/seeds/revealed", response_model=List[RevealedServerSeedSchema])
    async def list_revealed_seeds(
        limit: int = Query(default=50, ge=1, le=500),
        engine: FairnessEngine = Depends(get_fairness_engine),
    ):
        return await engine.seed_manager.list_revealed_server_seeds(limit)

    @staticmethod
    @fairness_router.get("/seeds/{server_seed_id}", response_model=ServerSeedSchema)
    async def get_seed(server_seed_id: UUID, engine: FairnessEngine = Depends(get_fairness_engine)):
        return await engine.seed_manager.get_server_seed(server_seed_id)


class ClientSeedAPI:
    @staticmethod
    @fairness_router.get("/client-seeds/{user_id}", response_model=ClientSeedModel)
    async def get_client_seed(user_id: str, engine: FairnessEngine = Depends(get_fairness_engine)):
        client_seed = await engine.client_seed_registry.get_client_seed(user_id)
        return ClientSeedModel(client_seed=client_seed)

    @staticmethod
    @fairness_router.put("/client-seeds/{user_id}", response_model=ClientSeedSchema)
    async def set_client_seed(
        user_id: str,
        client_seed: ClientSeedModel,
        engine: FairnessEngine = Depends(get_fairness_engine),
    ):
        return await engine.client_seed_registry.set_client_seed(user_id, client_seed.client_seed)


class OutcomeAPI:
    @staticmethod
    @fairness_router.post("/outcomes", response_model=OutcomeModel)
    async def request_outcome(
        outcome_request: OutcomeRequestModel,
        engine: FairnessEngine = Depends(get_fairness_engine),
    ):
        return await engine.request_outcome(
            outcome_request.user_id, outcome_request.game_type, outcome_request.bet_params
        )

    @staticmethod
    @fairness_router.get("/rounds/{round_id}", response_model=GameRoundSchema)
    async def get_round(round_id: UUID, engine: FairnessEngine = Depends(get_fairness_engine)):
        return await engine.get_round(round_id)

    @staticmethod
    @fairness_router.get("/users/{user_id}/rounds", response_model=List[GameRoundSchema])
    async def get_user_rounds(
        user_id: str,
        limit: int = Query(default=50, ge=1, le=500),
        engine: FairnessEngine = Depends(get_fairness_engine),
    ):
        return await engine.get_user_rounds(user_id, limit)


class VerificationAPI:
    @staticmethod
    @fairness_router.post("/verify", response_model=VerificationModel)
    async def verify(
        verify_request: VerifyRequestModel,
        engine: FairnessEngine = Depends(get_fairness_engine),
    ):
        try:
            match = await engine.verification_service.verify(
                verify_request.revealed_server_seed,
                verify_request.hashed_seed,
                verify_request.client_seed,
                verify_request.nonce,
                verify_request.game_type,
                verify_request.bet_params,
                verify_request.claimed_result,
            )
        except VerificationMismatchError:
            # audited when the stored commitment itself is broken; the verifier only learns the answer
            return VerificationModel(match=False, reason="server seed does not match its commitment hash")
        return VerificationModel(match=match, reason=None if match else "result does not match")

    @staticmethod
    @fairness_router.post("/verify/{round_id}", response_model=VerificationReportModel)
    async def verify_round(
        round_id: UUID,
        verify_request: VerifyRoundRequestModel | None = None,
        engine: FairnessEngine = Depends(get_fairness_engine),
    ):
        revealed_server_seed = verify_request.revealed_server_seed if verify_request else None
        return await engine.verification_service.verify_round(round_id, revealed_server_seed)
