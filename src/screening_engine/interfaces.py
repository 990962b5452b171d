"""Collaborator interfaces the engine depends on, with default implementations.

The ABCs define the contract; deployments may substitute their own
implementations (for example an identity service client, or a notifier
that pages an on-call clinician).

Typical wiring::

    engine = ScreeningEngine(
        account_directory=MyIdentityServiceDirectory(...),
        crisis_notifier=MyPagerNotifier(...),
    )
"""

import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from screening_db.repository import ScreeningRepository

logger = logging.getLogger(__name__)


class AccountDirectory(ABC):
    """Resolves account ids.  The engine only needs to know they exist."""

    @abstractmethod
    async def account_exists(self, db: AsyncSession, account_id: uuid.UUID) -> bool:
        ...


class CrisisNotifier(ABC):
    """Dispatches a crisis notification for a session.

    Called at most once per session, after the transaction that set the
    crisis flag has committed.  Implementations should enqueue work and
    return quickly.  A raised exception is logged by the engine and does
    not undo the committed submission.
    """

    @abstractmethod
    async def notify(self, session_id: uuid.UUID, metadata: dict[str, Any]) -> None:
        ...


class RepositoryAccountDirectory(AccountDirectory):
    """Looks accounts up in the local ``accounts`` table."""

    def __init__(self, repository: ScreeningRepository | None = None) -> None:
        self._repo = repository or ScreeningRepository()

    async def account_exists(self, db: AsyncSession, account_id: uuid.UUID) -> bool:
        return await self._repo.get_account(db, account_id) is not None


class LoggingCrisisNotifier(CrisisNotifier):
    """Records crisis indications in the application log."""

    async def notify(self, session_id: uuid.UUID, metadata: dict[str, Any]) -> None:
        logger.warning("Crisis indicated for screening session %s: %s", session_id, metadata)
