import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from provably_fair.crud import CreateData, ReadData, UpdateData
from provably_fair.domain.outcome import generate_client_seed
from provably_fair.exceptions import InvalidClientSeedError
from provably_fair.load_secrets import client_seed_max_length
from provably_fair.models.schema_models import ClientSeedSchema

create_data = CreateData()
read_data = ReadData()
update_data = UpdateData()


def validate_client_seed(seed, max_length: int = client_seed_max_length) -> str:
    """Reject anything but a non-blank printable string of bounded length."""
    if not isinstance(seed, str):
        raise InvalidClientSeedError(f"client seed must be a string, got {type(seed).__name__}")
    if not seed.strip():
        raise InvalidClientSeedError("client seed must not be empty")
    if len(seed) > max_length:
        raise InvalidClientSeedError(f"client seed longer than {max_length} characters")
    if not seed.isprintable():
        raise InvalidClientSeedError("client seed contains non-printable characters")
    return seed


class ClientSeedRegistry:
    def __init__(self, Session: async_sessionmaker, max_length: int = client_seed_max_length):
        self.Session: async_sessionmaker = Session
        self.max_length = max_length

    async def set_client_seed(self, user_id: str, seed: str) -> ClientSeedSchema:
        """Store the user's own client seed

        Args:
            user_id (str): Owner of the seed
            seed (str): New client seed

        Raises:
            InvalidClientSeedError: Empty, oversized or non-printable seed
        """
        seed = validate_client_seed(seed, self.max_length)
        try:
            return await self._upsert(user_id, seed)
        except IntegrityError:
            # the row was created concurrently; it exists now
            return await self._upsert(user_id, seed)

    async def _upsert(self, user_id: str, seed: str) -> ClientSeedSchema:
        async with self.Session() as session:
            async with session.begin():
                client_seed = await read_data.read_client_seed(user_id, session)
                if client_seed is None:
                    client_seed = await create_data.create_client_seed(user_id, seed, session)
                else:
                    client_seed = await update_data.update_client_seed(client_seed, seed, session)
        logging.info(f"Client seed of user {user_id} set")
        return ClientSeedSchema.model_validate(client_seed)

    async def get_client_seed(self, user_id: str) -> str:
        """Return the user's client seed, creating a random default on first use"""
        async with self.Session() as session:
            client_seed = await read_data.read_client_seed(user_id, session)
        if client_seed is not None:
            return client_seed.seed

        try:
            async with self.Session() as session:
                async with session.begin():
                    client_seed = await create_data.create_client_seed(user_id, generate_client_seed(), session)
            logging.info(f"Generated default client seed for user {user_id}")
            return client_seed.seed
        except IntegrityError:
            async with self.Session() as session:
                client_seed = await read_data.read_client_seed(user_id, session)
            return client_seed.seed
