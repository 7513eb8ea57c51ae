import logging
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from provably_fair.crud import CreateData, ReadData, UpdateData
from provably_fair.exceptions import NonceConflictError, StaleSeedError
from provably_fair.models.schemas import SeedState

create_data = CreateData()
read_data = ReadData()
update_data = UpdateData()


class NonceCounter:
    """Hands out strictly increasing nonces per (user, server seed).

    A reservation holds a shared lock on the seed row and an exclusive lock on
    the user's counter row for the length of one transaction. A nonce that was
    handed out is never handed out again, even if the round using it fails.
    """

    def __init__(self, Session: async_sessionmaker):
        self.Session: async_sessionmaker = Session

    async def reserve_nonce(self, user_id: str, server_seed_id: UUID) -> int:
        """Atomically read and increment the user's counter for the seed

        Args:
            user_id (str): User the round belongs to
            server_seed_id (UUID): Seed the caller believes is active

        Raises:
            StaleSeedError: The seed is not the active one; retry against the current seed
            NonceConflictError: The counter row could not be claimed

        Returns:
            int: Reserved nonce, starting at 0 for each seed
        """
        try:
            return await self._reserve(user_id, server_seed_id)
        except IntegrityError:
            logging.warning(f"Nonce row race for user {user_id} on seed {server_seed_id}, retrying")
        try:
            return await self._reserve(user_id, server_seed_id)
        except IntegrityError as e:
            raise NonceConflictError(
                f"could not reserve a nonce for user {user_id} on seed {server_seed_id}"
            ) from e

    async def _reserve(self, user_id: str, server_seed_id: UUID) -> int:
        async with self.Session() as session:
            async with session.begin():
                server_seed = await read_data.read_server_seed(server_seed_id, session, for_share=True)
                if server_seed is None or server_seed.state != SeedState.active.value:
                    raise StaleSeedError(f"server seed {server_seed_id} is not the active seed")

                nonce_state = await read_data.read_nonce_state(user_id, server_seed_id, session)
                if nonce_state is None:
                    await create_data.create_nonce_state(user_id, server_seed_id, 1, session)
                    nonce = 0
                else:
                    nonce = await update_data.increment_nonce(nonce_state, session)

        logging.debug(f"Reserved nonce {nonce} for user {user_id} on seed {server_seed_id}")
        return nonce
