from pydantic import BaseModel
from typing import Any, Dict, Optional
from uuid import UUID
from datetime import datetime


class ActiveServerSeedSchema(BaseModel):
    """Public view of a seed. Never carries the plaintext."""

    server_seed_id: UUID
    hashed_seed: str
    created_at: datetime

    class Config:
        from_attributes = True


class ServerSeedSchema(BaseModel):
    server_seed_id: UUID
    hashed_seed: str
    state: str
    created_at: datetime
    revealed_at: Optional[datetime] = None
    plaintext_seed: Optional[str] = None  # set only once the seed is revealed

    class Config:
        from_attributes = True


class RevealedServerSeedSchema(BaseModel):
    server_seed_id: UUID
    plaintext_seed: str
    hashed_seed: str
    created_at: datetime
    revealed_at: datetime

    class Config:
        from_attributes = True


class ClientSeedSchema(BaseModel):
    user_id: str
    seed: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class GameRoundSchema(BaseModel):
    round_id: UUID
    user_id: str
    server_seed_id: UUID
    client_seed: str
    nonce: int
    game_type: str
    bet_params: Dict[str, Any]
    derived_value: float | None
    result_payload: Dict[str, Any]
    status: str
    created_at: datetime

    class Config:
        from_attributes = True


class AuditLogSchema(BaseModel):
    audit_id: UUID
    event: str
    details: Dict[str, Any]
    created_at: datetime

    class Config:
        from_attributes = True
