"""
Token Store: per-workspace bot credentials.

Resolution order for a workspace's credential:
1. In-memory cache (shared by every task in the process)
2. Durable storage (installations table, token encrypted with Fernet)
3. The bootstrap SLACK_BOT_TOKEN, claimed by the first workspace without one
4. Nothing - the workspace is not configured
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache

from cryptography.fernet import Fernet
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import get_settings
from ..core.database import get_session_factory
from ..core.security import decrypt_token, encrypt_token, mask_token
from ..models import Installation

logger = logging.getLogger(__name__)


class CredentialSource(str, Enum):
    CACHE = "cache"
    STORE = "store"
    BOOTSTRAP = "bootstrap"
    NONE = "none"


@dataclass(frozen=True)
class Credential:
    """Decrypted bot credential for one workspace."""
    team_id: str
    bot_token: str
    bot_id: str | None = None
    bot_user_id: str | None = None
    scopes: tuple[str, ...] = field(default_factory=tuple)
    enterprise_id: str | None = None
    is_bootstrap: bool = False


@dataclass(frozen=True)
class CredentialResolution:
    credential: Credential | None
    source: CredentialSource


def resolve_credential(
    team_id: str,
    cached: Credential | None,
    stored: Credential | None,
    bootstrap_token: str | None,
) -> CredentialResolution:
    """Pick a credential in cache -> store -> bootstrap order."""
    if cached is not None:
        return CredentialResolution(cached, CredentialSource.CACHE)
    if stored is not None:
        return CredentialResolution(stored, CredentialSource.STORE)
    if bootstrap_token:
        return CredentialResolution(
            Credential(team_id=team_id, bot_token=bootstrap_token, is_bootstrap=True),
            CredentialSource.BOOTSTRAP,
        )
    return CredentialResolution(None, CredentialSource.NONE)


class TokenStore:
    """Write-through cache in front of the installations table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        bootstrap_token: str | None = None,
        fernet: Fernet | None = None,
    ):
        self._session_factory = session_factory
        self._bootstrap_token = bootstrap_token
        self._fernet = fernet
        self._cache: dict[str, Credential] = {}
        self._bootstrap_claimed = False
        self._claim_lock = asyncio.Lock()

    # =========================================================================
    # READ
    # =========================================================================

    async def get_credential(self, team_id: str) -> Credential | None:
        """Get the credential for a workspace, or None if it has none."""
        cached = self._cache.get(team_id)
        stored = None
        row_exists = False
        if cached is None:
            row_exists, stored = await self._load(team_id)

        bootstrap = None
        if cached is None and not row_exists:
            bootstrap = await self._unclaimed_bootstrap_token()

        resolution = resolve_credential(team_id, cached, stored, bootstrap)

        if resolution.source is CredentialSource.STORE:
            self._cache[team_id] = resolution.credential
        elif resolution.source is CredentialSource.BOOTSTRAP:
            return await self._claim_bootstrap(team_id)
        elif resolution.source is CredentialSource.NONE:
            logger.debug(f"No credential for workspace {team_id}")

        return resolution.credential

    async def get_token(self, team_id: str) -> str | None:
        credential = await self.get_credential(team_id)
        return credential.bot_token if credential else None

    async def _load(self, team_id: str) -> tuple[bool, Credential | None]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Installation).where(Installation.team_id == team_id)
            )
            row = result.scalar_one_or_none()

        if row is None:
            return False, None

        token = decrypt_token(row.bot_token, self._fernet)
        if token is None:
            logger.error(f"Installation for workspace {team_id} has an unreadable token")
            return True, None

        return True, Credential(
            team_id=row.team_id,
            bot_token=token,
            bot_id=row.bot_id,
            bot_user_id=row.bot_user_id,
            scopes=tuple(s for s in (row.bot_scopes or "").split(",") if s),
            enterprise_id=row.enterprise_id,
            is_bootstrap=row.is_bootstrap,
        )

    # =========================================================================
    # BOOTSTRAP TOKEN
    # =========================================================================

    async def _unclaimed_bootstrap_token(self) -> str | None:
        if not self._bootstrap_token or self._bootstrap_claimed:
            return None

        async with self._session_factory() as session:
            result = await session.execute(
                select(Installation.team_id).where(Installation.is_bootstrap.is_(True)).limit(1)
            )
            owner = result.scalar_one_or_none()

        if owner is not None:
            self._bootstrap_claimed = True
            return None
        return self._bootstrap_token

    async def _claim_bootstrap(self, team_id: str) -> Credential | None:
        async with self._claim_lock:
            # Another task may have claimed it while we waited
            if self._bootstrap_claimed:
                return self._cache.get(team_id)

            credential = await self.set_credential(
                team_id, self._bootstrap_token, is_bootstrap=True
            )
            self._bootstrap_claimed = True

        logger.info(f"Workspace {team_id} claimed the bootstrap bot token {mask_token(credential.bot_token)}")
        return credential

    # =========================================================================
    # WRITE
    # =========================================================================

    async def set_credential(
        self,
        team_id: str,
        bot_token: str,
        bot_id: str | None = None,
        bot_user_id: str | None = None,
        scopes: list[str] | None = None,
        enterprise_id: str | None = None,
        is_bootstrap: bool = False,
    ) -> Credential:
        """Persist a credential, then update the cache."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Installation).where(Installation.team_id == team_id)
            )
            row = result.scalar_one_or_none()
            if row is None:
                row = Installation(team_id=team_id)
                session.add(row)

            row.bot_token = encrypt_token(bot_token, self._fernet)
            row.bot_id = bot_id or row.bot_id
            row.bot_user_id = bot_user_id or row.bot_user_id
            row.bot_scopes = ",".join(scopes) if scopes else row.bot_scopes
            row.enterprise_id = enterprise_id or row.enterprise_id
            # Once claimed, the bootstrap token stays claimed by this workspace
            row.is_bootstrap = bool(row.is_bootstrap) or is_bootstrap

            await session.commit()

            credential = Credential(
                team_id=team_id,
                bot_token=bot_token,
                bot_id=row.bot_id,
                bot_user_id=row.bot_user_id,
                scopes=tuple(s for s in (row.bot_scopes or "").split(",") if s),
                enterprise_id=row.enterprise_id,
                is_bootstrap=row.is_bootstrap,
            )

        self._cache[team_id] = credential
        logger.info(f"Stored encrypted token {mask_token(bot_token)} for workspace {team_id}")
        return credential

    async def delete_installation(self, team_id: str) -> bool:
        """Remove a workspace's credential (explicit uninstall only)."""
        async with self._session_factory() as session:
            result = await session.execute(
                delete(Installation).where(Installation.team_id == team_id)
            )
            await session.commit()

        self._cache.pop(team_id, None)
        deleted = (result.rowcount or 0) > 0
        if deleted:
            logger.info(f"Deleted installation for workspace {team_id}")
        return deleted


@lru_cache
def get_token_store() -> TokenStore:
    """Process-wide token store."""
    settings = get_settings()
    return TokenStore(get_session_factory(), bootstrap_token=settings.slack_bot_token)
