from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy import select, desc
from datetime import datetime
from typing import Any, Dict, List
from uuid import UUID
import logging

from provably_fair.models.schemas import (
    AuditLog,
    ClientSeed,
    GameRound,
    NonceState,
    RoundStatus,
    SeedState,
    ServerSeed,
)

# Every helper runs inside the caller's transaction: nothing here commits.
# Database failures are logged and re-raised so the transaction rolls back.


class UpdateData:
    @staticmethod
    async def update_seed_revealed(server_seed: ServerSeed, session: AsyncSession) -> ServerSeed:
        """Move a locked active seed to the terminal revealed state

        Args:
            server_seed (ServerSeed): Active seed row locked with FOR UPDATE
        """
        try:
            server_seed.state = SeedState.revealed.value
            server_seed.revealed_at = datetime.now()
            await session.flush()
            return server_seed
        except SQLAlchemyError as e:
            logging.error(f"Failed to reveal server seed {server_seed.server_seed_id}: {e}")
            raise

    @staticmethod
    async def update_client_seed(client_seed: ClientSeed, seed: str, session: AsyncSession) -> ClientSeed:
        """Replace the seed of an existing client seed row

        Args:
            client_seed (ClientSeed): Row of the user
            seed (str): Validated new seed
        """
        try:
            client_seed.seed = seed
            client_seed.updated_at = datetime.now()
            await session.flush()
            return client_seed
        except SQLAlchemyError as e:
            logging.error(f"Failed to update client seed of user {client_seed.user_id}: {e}")
            raise

    @staticmethod
    async def increment_nonce(nonce_state: NonceState, session: AsyncSession) -> int:
        """Consume the next nonce of a locked nonce row

        Args:
            nonce_state (NonceState): Row locked with FOR UPDATE

        Returns:
            int: The nonce handed out
        """
        try:
            nonce = nonce_state.next_nonce
            nonce_state.next_nonce = nonce + 1
            await session.flush()
            return nonce
        except SQLAlchemyError as e:
            logging.error(f"Failed to increment nonce of user {nonce_state.user_id}: {e}")
            raise


class ReadData:
    @staticmethod
    async def read_active_server_seed(session: AsyncSession, for_update: bool = False) -> ServerSeed | None:
        """Read the single active server seed

        Args:
            for_update (bool, optional): Lock the row until the transaction ends. Defaults to False.

        Returns:
            ServerSeed | None: Active seed, None before the first seed exists
        """
        try:
            stmt = select(ServerSeed).where(ServerSeed.state == SeedState.active.value)
            if for_update:
                stmt = stmt.with_for_update()
            result = await session.execute(stmt)
            return result.scalars().first()
        except SQLAlchemyError as e:
            logging.error(f"Failed to read active server seed: {e}")
            raise

    @staticmethod
    async def read_server_seed(
        server_seed_id: UUID, session: AsyncSession, for_share: bool = False
    ) -> ServerSeed | None:
        """Read a server seed by id

        Args:
            server_seed_id (UUID): To identify the seed
            for_share (bool, optional): Hold a shared lock so the seed cannot rotate meanwhile. Defaults to False.
        """
        try:
            stmt = select(ServerSeed).where(ServerSeed.server_seed_id == server_seed_id)
            if for_share:
                stmt = stmt.with_for_update(read=True)
            result = await session.execute(stmt)
            return result.scalars().first()
        except SQLAlchemyError as e:
            logging.error(f"Failed to read server seed {server_seed_id}: {e}")
            raise

    @staticmethod
    async def read_server_seed_by_hash(hashed_seed: str, session: AsyncSession) -> ServerSeed | None:
        """Read the seed behind a published commitment hash"""
        try:
            stmt = select(ServerSeed).where(ServerSeed.hashed_seed == hashed_seed)
            result = await session.execute(stmt)
            return result.scalars().first()
        except SQLAlchemyError as e:
            logging.error(f"Failed to read server seed with hash {hashed_seed}: {e}")
            raise

    @staticmethod
    async def read_revealed_server_seeds(session: AsyncSession, limit: int | None = None) -> List[ServerSeed]:
        """Read revealed seeds, newest first

        Args:
            limit (int | None, optional): Maximum rows. Defaults to all.
        """
        try:
            stmt = (
                select(ServerSeed)
                .where(ServerSeed.state == SeedState.revealed.value)
                .order_by(desc(ServerSeed.revealed_at))
            )
            if limit is not None:
                stmt = stmt.limit(limit)
            result = await session.execute(stmt)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logging.error(f"Failed to read revealed server seeds: {e}")
            raise

    @staticmethod
    async def read_client_seed(user_id: str, session: AsyncSession) -> ClientSeed | None:
        try:
            stmt = select(ClientSeed).where(ClientSeed.user_id == user_id)
            result = await session.execute(stmt)
            return result.scalars().first()
        except SQLAlchemyError as e:
            logging.error(f"Failed to read client seed of user {user_id}: {e}")
            raise

    @staticmethod
    async def read_nonce_state(user_id: str, server_seed_id: UUID, session: AsyncSession) -> NonceState | None:
        """Read and lock the nonce row of a (user, server seed) pair

        Args:
            user_id (str): Owner of the counter
            server_seed_id (UUID): Seed the counter is scoped to

        Returns:
            NonceState | None: Locked row, None before the first reservation
        """
        try:
            stmt = (
                select(NonceState)
                .where(
                    NonceState.user_id == user_id,
                    NonceState.server_seed_id == server_seed_id,
                )
                .with_for_update()
            )
            result = await session.execute(stmt)
            return result.scalars().first()
        except SQLAlchemyError as e:
            logging.error(f"Failed to read nonce state of user {user_id}: {e}")
            raise

    @staticmethod
    async def read_game_round(round_id: UUID, session: AsyncSession) -> GameRound | None:
        try:
            stmt = select(GameRound).where(GameRound.round_id == round_id)
            result = await session.execute(stmt)
            return result.scalars().first()
        except SQLAlchemyError as e:
            logging.error(f"Failed to read game round {round_id}: {e}")
            raise

    @staticmethod
    async def read_user_game_rounds(user_id: str, limit: int, session: AsyncSession) -> List[GameRound]:
        """Read the latest rounds of a user, newest first

        Args:
            user_id (str): Owner of the rounds
            limit (int): Maximum rows
        """
        try:
            stmt = (
                select(GameRound)
                .where(GameRound.user_id == user_id)
                .order_by(desc(GameRound.created_at), desc(GameRound.nonce))
                .limit(limit)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logging.error(f"Failed to read game rounds of user {user_id}: {e}")
            raise


class CreateData:
    @staticmethod
    async def create_server_seed(plaintext_seed: str, hashed_seed: str, session: AsyncSession) -> ServerSeed:
        """Insert a new active server seed

        Args:
            plaintext_seed (str): Secret seed
            hashed_seed (str): sha256 commitment of the secret
        """
        try:
            new_seed = ServerSeed(
                plaintext_seed=plaintext_seed,
                hashed_seed=hashed_seed,
                state=SeedState.active.value,
                created_at=datetime.now(),
            )
            session.add(new_seed)
            await session.flush()
            return new_seed
        except IntegrityError as e:
            logging.warning(f"Server seed insert rejected by a constraint: {e}")
            raise
        except SQLAlchemyError as e:
            logging.error(f"Failed to create server seed: {e}")
            raise

    @staticmethod
    async def create_client_seed(user_id: str, seed: str, session: AsyncSession) -> ClientSeed:
        try:
            now = datetime.now()
            new_client_seed = ClientSeed(user_id=user_id, seed=seed, created_at=now, updated_at=now)
            session.add(new_client_seed)
            await session.flush()
            return new_client_seed
        except IntegrityError as e:
            logging.warning(f"Client seed of user {user_id} was created concurrently: {e}")
            raise
        except SQLAlchemyError as e:
            logging.error(f"Failed to create client seed of user {user_id}: {e}")
            raise

    @staticmethod
    async def create_nonce_state(
        user_id: str, server_seed_id: UUID, next_nonce: int, session: AsyncSession
    ) -> NonceState:
        """Insert the nonce row of a (user, server seed) pair

        Args:
            next_nonce (int): Value stored after the first nonce is handed out
        """
        try:
            new_nonce_state = NonceState(
                user_id=user_id,
                server_seed_id=server_seed_id,
                next_nonce=next_nonce,
            )
            session.add(new_nonce_state)
            await session.flush()
            return new_nonce_state
        except IntegrityError as e:
            logging.warning(f"Nonce state of user {user_id} was created concurrently: {e}")
            raise
        except SQLAlchemyError as e:
            logging.error(f"Failed to create nonce state of user {user_id}: {e}")
            raise

    @staticmethod
    async def create_game_round(
        user_id: str,
        server_seed_id: UUID,
        client_seed: str,
        nonce: int,
        game_type: str,
        bet_params: Dict[str, Any],
        derived_value: float | None,
        result_payload: Dict[str, Any],
        status: RoundStatus,
        session: AsyncSession,
    ) -> GameRound:
        """Insert the immutable audit record of one outcome request

        Args:
            derived_value (float | None): None when derivation failed
            result_payload (Dict[str, Any]): Mapped result, or the error of a failed round
            status (RoundStatus): completed or failed
        """
        try:
            new_round = GameRound(
                user_id=user_id,
                server_seed_id=server_seed_id,
                client_seed=client_seed,
                nonce=nonce,
                game_type=game_type,
                bet_params=bet_params,
                derived_value=derived_value,
                result_payload=result_payload,
                status=status.value,
                created_at=datetime.now(),
            )
            session.add(new_round)
            await session.flush()
            return new_round
        except SQLAlchemyError as e:
            logging.error(f"Failed to create game round for user {user_id} nonce {nonce}: {e}")
            raise

    @staticmethod
    async def create_audit_log(event: str, details: Dict[str, Any], session: AsyncSession) -> AuditLog:
        try:
            new_audit_log = AuditLog(event=event, details=details, created_at=datetime.now())
            session.add(new_audit_log)
            await session.flush()
            return new_audit_log
        except SQLAlchemyError as e:
            logging.error(f"Failed to create audit log {event}: {e}")
            raise
