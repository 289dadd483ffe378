"""Identity resolution for history attribution.

Financial changes are always attributed to a user row. When the caller has
no identity (scripts, imports, unauthenticated internal calls) the change is
attributed to a well-known system user that is created on first use.

Resolution runs in its own short transaction *before* the financial
transaction opens, so creating the system user never widens the item lock.
"""

from typing import Optional, Protocol
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inventory_ledger.config import settings
from inventory_ledger.database import read_session, transaction
from inventory_ledger.exceptions import ConflictError, NotFoundError
from inventory_ledger.models.user import User

logger = logging.getLogger(__name__)


class _SystemUserCreated(Exception):
    """Lost the unique-email race while inserting the system user."""


class IdentityResolver(Protocol):
    async def resolve(self, user_id: Optional[int] = None) -> int:
        """Return the user id to attribute a change to."""
        ...


class UserIdentityResolver:
    """Resolves callers against the users table, falling back to the system user."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        system_email: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self.system_email = system_email or settings.SYSTEM_USER_EMAIL
        self._system_user_id: Optional[int] = None

    async def resolve(self, user_id: Optional[int] = None) -> int:
        if user_id is not None:
            async with read_session(self.session_factory) as db:
                user = await db.get(User, user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            return user.id

        if self._system_user_id is None:
            self._system_user_id = await self._ensure_system_user()
        return self._system_user_id

    async def _lookup_system_user(self, db: AsyncSession) -> Optional[int]:
        result = await db.execute(select(User.id).where(User.email == self.system_email))
        return result.scalar_one_or_none()

    async def _ensure_system_user(self) -> int:
        try:
            async with transaction(self.session_factory) as db:
                existing = await self._lookup_system_user(db)
                if existing is not None:
                    return existing

                user = User(
                    email=self.system_email,
                    first_name=settings.SYSTEM_USER_FIRST_NAME,
                    last_name=settings.SYSTEM_USER_LAST_NAME,
                    is_active=True,
                    is_system=True,
                )
                db.add(user)
                try:
                    await db.flush()
                except IntegrityError as e:
                    raise _SystemUserCreated() from e
        except _SystemUserCreated:
            # Another request inserted it between our lookup and insert
            async with read_session(self.session_factory) as db:
                existing = await self._lookup_system_user(db)
            if existing is None:
                raise ConflictError("System user could not be resolved, retry the request")
            return existing

        logger.info(f"Created system user {user.id} ({self.system_email})")
        return user.id
