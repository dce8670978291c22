# mls_sync/adapters/repos/sqlalchemy_repos.py
from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from .media import MediaRepository
from .properties import PropertyRepository
from .provider_configs import ProviderConfigRepository
from .sync_errors import SyncErrorRepository
from .sync_history import SyncHistoryRepository
from .sync_status import SyncStatusRepository


class SqlAlchemyRepos:
    """All repositories over one session."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.properties = PropertyRepository(session)
        self.media = MediaRepository(session)
        self.providers = ProviderConfigRepository(session)
        self.history = SyncHistoryRepository(session)
        self.status = SyncStatusRepository(session)
        self.errors = SyncErrorRepository(session)
