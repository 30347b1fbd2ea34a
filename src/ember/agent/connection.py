"""Create-if-absent management of accounts, rooms and participants."""

import logging

from ember.memory.schema import Account
from ember.memory.storage import DatabaseAdapter

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Makes sure the actors of a conversation exist before it is recorded.

    Every method is idempotent: calling it again for an existing entity is a
    no-op.
    """

    def __init__(self, db: DatabaseAdapter, agent: Account):
        self.db = db
        self.agent = agent

    async def ensure_user_exists(self, user_id: str, username: str, name: str | None = None) -> None:
        account = await self.db.get_account_by_id(user_id)
        if account is None:
            await self.db.create_account(
                Account(id=user_id, name=name or username, username=username)
            )
            logger.info("Created account %s (%s)", user_id, username)

    async def ensure_room_exists(self, room_id: str) -> None:
        room = await self.db.get_room(room_id)
        if room is None:
            await self.db.create_room(room_id)
            logger.info("Created room %s", room_id)

    async def ensure_participant_in_room(self, user_id: str, room_id: str) -> None:
        participants = await self.db.get_participants_for_room(room_id)
        if user_id not in participants:
            await self.db.add_participant(user_id, room_id)
            logger.debug("Added participant %s to room %s", user_id, room_id)

    async def ensure_connection(
        self, user_id: str, room_id: str, username: str, name: str | None = None
    ) -> None:
        """Ensure the agent, the user, the room and both memberships exist.

        Args:
            user_id: Id of the human participant
            room_id: Conversation scope
            username: Handle of the user
            name: Display name of the user (defaults to the username)
        """
        await self.ensure_user_exists(self.agent.id, self.agent.username, self.agent.name)
        await self.ensure_user_exists(user_id, username, name)
        await self.ensure_room_exists(room_id)
        await self.ensure_participant_in_room(self.agent.id, room_id)
        await self.ensure_participant_in_room(user_id, room_id)
