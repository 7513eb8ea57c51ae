from datetime import datetime
from enum import Enum

from sqlalchemy import Index, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.schema import Column
from sqlalchemy.types import JSON, BigInteger, DateTime, Float, String, Uuid
from uuid6 import uuid7

JSONType = JSON().with_variant(JSONB(), "postgresql")


class SeedState(str, Enum):
    active = "active"
    revealed = "revealed"


class RoundStatus(str, Enum):
    completed = "completed"
    failed = "failed"


class Base(DeclarativeBase):
    pass


class ServerSeed(Base):
    __tablename__ = "server_seed"
    server_seed_id = Column(Uuid, primary_key=True, default=uuid7)
    plaintext_seed = Column(String(128), nullable=False)
    hashed_seed = Column(String(64), nullable=False, unique=True)
    state = Column(String(16), nullable=False, default=SeedState.active.value)
    created_at = Column(DateTime, default=datetime.now)
    revealed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        # at most one active seed, enforced by the database
        Index(
            "uq_server_seed_single_active",
            "state",
            unique=True,
            postgresql_where=text("state = 'active'"),
            sqlite_where=text("state = 'active'"),
        ),
    )


class ClientSeed(Base):
    __tablename__ = "client_seed"
    client_seed_id = Column(Uuid, primary_key=True, default=uuid7)
    user_id = Column(String(128), nullable=False, unique=True)
    seed = Column(String(256), nullable=False)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now)


class NonceState(Base):
    __tablename__ = "nonce_state"
    nonce_state_id = Column(Uuid, primary_key=True, default=uuid7)
    user_id = Column(String(128), nullable=False)
    server_seed_id = Column(Uuid, nullable=False)
    next_nonce = Column(BigInteger, nullable=False, default=0)

    __table_args__ = (UniqueConstraint("user_id", "server_seed_id", name="uq_nonce_state_user_seed"),)


class GameRound(Base):
    __tablename__ = "game_round"
    round_id = Column(Uuid, primary_key=True, default=uuid7)
    user_id = Column(String(128), nullable=False)
    server_seed_id = Column(Uuid, nullable=False)
    client_seed = Column(String(256), nullable=False)
    nonce = Column(BigInteger, nullable=False)
    game_type = Column(String(32), nullable=False)
    bet_params = Column(JSONType, nullable=False)
    derived_value = Column(Float, nullable=True)
    result_payload = Column(JSONType, nullable=False)
    status = Column(String(16), nullable=False, default=RoundStatus.completed.value)
    created_at = Column(DateTime, default=datetime.now)

    __table_args__ = (
        UniqueConstraint("server_seed_id", "user_id", "nonce", name="uq_game_round_seed_user_nonce"),
        Index("ix_game_round_user_created", "user_id", "created_at"),
    )


class AuditLog(Base):
    __tablename__ = "audit_log"
    audit_id = Column(Uuid, primary_key=True, default=uuid7)
    event = Column(String(64), nullable=False)
    details = Column(JSONType, nullable=False)
    created_at = Column(DateTime, default=datetime.now)
