import logging
from typing import List, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from provably_fair.crud import CreateData, ReadData, UpdateData
from provably_fair.domain.outcome import generate_server_seed, hash_server_seed
from provably_fair.exceptions import (
    SeedAlreadyActiveError,
    SeedAlreadyRevealedError,
    SeedNotFoundError,
)
from provably_fair.models.schema_models import (
    ActiveServerSeedSchema,
    RevealedServerSeedSchema,
    ServerSeedSchema,
)
from provably_fair.models.schemas import SeedState, ServerSeed

create_data = CreateData()
read_data = ReadData()
update_data = UpdateData()


class SeedManager:
    """Owns the server seed lifecycle: commit, rotate, reveal.

    A seed is created active with its sha256 commitment and moves to revealed
    exactly once, inside the same transaction that activates its successor.
    """

    def __init__(self, Session: async_sessionmaker):
        self.Session: async_sessionmaker = Session

    @staticmethod
    async def _insert_new_seed(session) -> ServerSeed:
        plaintext_seed = generate_server_seed()
        return await create_data.create_server_seed(plaintext_seed, hash_server_seed(plaintext_seed), session)

    async def generate_server_seed(self) -> ActiveServerSeedSchema:
        """Create the active seed when no unrevealed seed exists

        Raises:
            SeedAlreadyActiveError: Another seed is still active

        Returns:
            ActiveServerSeedSchema: Id and commitment hash of the new seed
        """
        try:
            async with self.Session() as session:
                async with session.begin():
                    current = await read_data.read_active_server_seed(session, for_update=True)
                    if current is not None:
                        raise SeedAlreadyActiveError(
                            f"server seed {current.server_seed_id} is still active; rotate instead"
                        )
                    new_seed = await self._insert_new_seed(session)
        except IntegrityError as e:
            raise SeedAlreadyActiveError("another server seed was activated concurrently") from e

        logging.info(f"Activated server seed {new_seed.server_seed_id} hash={new_seed.hashed_seed}")
        return ActiveServerSeedSchema.model_validate(new_seed)

    async def ensure_active_server_seed(self) -> ActiveServerSeedSchema:
        """Return the active seed, creating the first one if none exists"""
        try:
            return await self.get_active_server_seed()
        except SeedNotFoundError:
            pass
        try:
            return await self.generate_server_seed()
        except SeedAlreadyActiveError:
            # another worker bootstrapped first
            return await self.get_active_server_seed()

    async def get_active_server_seed(self) -> ActiveServerSeedSchema:
        async with self.Session() as session:
            current = await read_data.read_active_server_seed(session)
        if current is None:
            raise SeedNotFoundError("no active server seed")
        return ActiveServerSeedSchema.model_validate(current)

    async def rotate_and_reveal(
        self, expected_seed_id: UUID | None = None
    ) -> Tuple[RevealedServerSeedSchema, ActiveServerSeedSchema]:
        """Reveal the active seed and activate a fresh one in one transaction

        Args:
            expected_seed_id (UUID | None, optional): Only rotate if this seed is the active one. Defaults to None.

        Raises:
            SeedNotFoundError: No active seed, or expected_seed_id does not exist
            SeedAlreadyRevealedError: expected_seed_id was already revealed

        Returns:
            Tuple[RevealedServerSeedSchema, ActiveServerSeedSchema]: Retired seed with plaintext, new public seed
        """
        try:
            async with self.Session() as session:
                async with session.begin():
                    current = await read_data.read_active_server_seed(session, for_update=True)
                    if expected_seed_id is not None and (
                        current is None or current.server_seed_id != expected_seed_id
                    ):
                        expected = await read_data.read_server_seed(expected_seed_id, session)
                        if expected is None:
                            raise SeedNotFoundError(f"server seed {expected_seed_id} does not exist")
                        raise SeedAlreadyRevealedError(f"server seed {expected_seed_id} was already revealed")
                    if current is None:
                        raise SeedNotFoundError("no active server seed to rotate")

                    revealed = await update_data.update_seed_revealed(current, session)
                    new_seed = await self._insert_new_seed(session)
        except IntegrityError as e:
            raise SeedAlreadyActiveError("server seed rotation raced with another activation") from e

        logging.info(
            f"Rotated server seed {revealed.server_seed_id} -> {new_seed.server_seed_id}, "
            f"revealed hash={revealed.hashed_seed}"
        )
        return (
            RevealedServerSeedSchema.model_validate(revealed),
            ActiveServerSeedSchema.model_validate(new_seed),
        )

    async def get_server_seed(self, server_seed_id: UUID) -> ServerSeedSchema:
        """Public view of any seed; the plaintext is included only once revealed"""
        async with self.Session() as session:
            server_seed = await read_data.read_server_seed(server_seed_id, session)
        if server_seed is None:
            raise SeedNotFoundError(f"server seed {server_seed_id} does not exist")
        return self.to_public_schema(server_seed)

    async def list_revealed_server_seeds(self, limit: int | None = None) -> List[RevealedServerSeedSchema]:
        async with self.Session() as session:
            server_seeds = await read_data.read_revealed_server_seeds(session, limit)
        return [RevealedServerSeedSchema.model_validate(server_seed) for server_seed in server_seeds]

    async def read_seed_secret(self, server_seed_id: UUID) -> str:
        """Plaintext of a seed for outcome derivation. Never routed to clients."""
        async with self.Session() as session:
            server_seed = await read_data.read_server_seed(server_seed_id, session)
        if server_seed is None:
            raise SeedNotFoundError(f"server seed {server_seed_id} does not exist")
        return server_seed.plaintext_seed

    @staticmethod
    def to_public_schema(server_seed: ServerSeed) -> ServerSeedSchema:
        revealed = server_seed.state == SeedState.revealed.value
        return ServerSeedSchema(
            server_seed_id=server_seed.server_seed_id,
            hashed_seed=server_seed.hashed_seed,
            state=server_seed.state,
            created_at=server_seed.created_at,
            revealed_at=server_seed.revealed_at,
            plaintext_seed=server_seed.plaintext_seed if revealed else None,
        )
