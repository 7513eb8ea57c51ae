from pydantic import BaseModel, Field
from uuid import UUID
from typing import Any, Dict, Optional

from provably_fair.domain.game_mappers import GameType
from provably_fair.models.schema_models import (
    ActiveServerSeedSchema,
    RevealedServerSeedSchema,
)


class ClientSeedModel(BaseModel):
    client_seed: str


class OutcomeRequestModel(BaseModel):
    user_id: str = Field(min_length=1, max_length=128)
    game_type: GameType
    bet_params: Dict[str, Any] = Field(default_factory=dict)


class OutcomeModel(BaseModel):
    round_id: UUID
    server_seed_id: UUID
    server_seed_hash: str
    client_seed: str
    nonce: int
    derived_value: float
    hmac: str
    game_type: GameType
    result: Dict[str, Any]


class RotationModel(BaseModel):
    revealed_seed: RevealedServerSeedSchema
    new_seed: ActiveServerSeedSchema


class VerifyRequestModel(BaseModel):
    revealed_server_seed: str
    hashed_seed: str
    client_seed: str
    nonce: int = Field(ge=0)
    game_type: GameType
    bet_params: Dict[str, Any] = Field(default_factory=dict)
    claimed_result: Dict[str, Any]


class VerifyRoundRequestModel(BaseModel):
    revealed_server_seed: Optional[str] = None


class VerificationModel(BaseModel):
    match: bool
    reason: Optional[str] = None


class VerificationReportModel(BaseModel):
    round_id: UUID
    server_seed_id: UUID
    hash_matches: bool
    derived_value_matches: bool
    result_matches: bool
    recomputed_derived_value: float | None
    recomputed_result: Dict[str, Any] | None
    match: bool
