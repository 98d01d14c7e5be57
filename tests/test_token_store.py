"""
Tests for the Token Store.

These tests verify:
1. Credentials are encrypted at rest and read back through the cache
2. The bootstrap token is claimed by exactly one workspace
3. Unreadable rows are treated as absent
4. Uninstall removes the credential
"""

from cryptography.fernet import Fernet
from sqlalchemy import select

from askbox.models import Installation
from askbox.services.token_store import (
    Credential,
    CredentialSource,
    TokenStore,
    resolve_credential,
)

from .conftest import BOT_TOKEN, TEAM_ID


# =============================================================================
# TEST: RESOLUTION ORDER
# =============================================================================


class TestResolveCredential:
    """The cache -> store -> bootstrap -> none chain."""

    def test_cache_wins(self):
        cached = Credential(team_id="T1", bot_token="xoxb-cached")
        stored = Credential(team_id="T1", bot_token="xoxb-stored")

        resolution = resolve_credential("T1", cached, stored, "xoxb-bootstrap")

        assert resolution.source == CredentialSource.CACHE
        assert resolution.credential.bot_token == "xoxb-cached"

    def test_store_before_bootstrap(self):
        stored = Credential(team_id="T1", bot_token="xoxb-stored")

        resolution = resolve_credential("T1", None, stored, "xoxb-bootstrap")

        assert resolution.source == CredentialSource.STORE

    def test_bootstrap_when_nothing_stored(self):
        resolution = resolve_credential("T1", None, None, "xoxb-bootstrap")

        assert resolution.source == CredentialSource.BOOTSTRAP
        assert resolution.credential.is_bootstrap is True

    def test_none_when_nothing_available(self):
        resolution = resolve_credential("T1", None, None, None)

        assert resolution.source == CredentialSource.NONE
        assert resolution.credential is None


# =============================================================================
# TEST: READ / WRITE
# =============================================================================


class TestTokenStore:
    async def test_set_then_get(self, token_store):
        await token_store.set_credential(TEAM_ID, BOT_TOKEN, bot_user_id="UBOT", scopes=["commands", "chat:write"])

        credential = await token_store.get_credential(TEAM_ID)

        assert credential.bot_token == BOT_TOKEN
        assert credential.bot_user_id == "UBOT"
        assert credential.scopes == ("commands", "chat:write")

    async def test_token_is_encrypted_at_rest(self, token_store, session):
        await token_store.set_credential(TEAM_ID, BOT_TOKEN)

        row = (await session.execute(select(Installation))).scalar_one()

        assert row.bot_token != BOT_TOKEN
        assert BOT_TOKEN not in row.bot_token

    async def test_same_token_encrypts_differently(self, session_factory, fernet):
        first = TokenStore(session_factory, fernet=fernet)
        await first.set_credential("T1", BOT_TOKEN)
        await first.set_credential("T2", BOT_TOKEN)

        async with session_factory() as session:
            rows = (await session.execute(select(Installation.bot_token))).scalars().all()

        assert len(rows) == 2
        assert rows[0] != rows[1]

    async def test_store_survives_a_fresh_cache(self, token_store, session_factory, fernet):
        await token_store.set_credential(TEAM_ID, BOT_TOKEN)

        restarted = TokenStore(session_factory, fernet=fernet)

        assert await restarted.get_token(TEAM_ID) == BOT_TOKEN

    async def test_unknown_workspace_has_no_token(self, token_store):
        assert await token_store.get_token("T_UNKNOWN") is None

    async def test_set_credential_overwrites(self, token_store):
        await token_store.set_credential(TEAM_ID, "xoxb-old")
        await token_store.set_credential(TEAM_ID, "xoxb-new")

        assert await token_store.get_token(TEAM_ID) == "xoxb-new"

    async def test_wrong_key_reads_as_absent(self, token_store, session_factory):
        await token_store.set_credential(TEAM_ID, BOT_TOKEN)

        other_key = TokenStore(session_factory, fernet=Fernet(Fernet.generate_key()))

        assert await other_key.get_credential(TEAM_ID) is None

    async def test_unreadable_row_does_not_claim_bootstrap(self, token_store, session_factory):
        await token_store.set_credential(TEAM_ID, BOT_TOKEN)

        other_key = TokenStore(
            session_factory,
            bootstrap_token="xoxb-bootstrap",
            fernet=Fernet(Fernet.generate_key()),
        )

        assert await other_key.get_credential(TEAM_ID) is None

    async def test_delete_installation(self, token_store):
        await token_store.set_credential(TEAM_ID, BOT_TOKEN)

        assert await token_store.delete_installation(TEAM_ID) is True
        assert await token_store.get_credential(TEAM_ID) is None
        assert await token_store.delete_installation(TEAM_ID) is False


# =============================================================================
# TEST: BOOTSTRAP TOKEN
# =============================================================================


class TestBootstrapToken:
    async def test_first_workspace_claims_bootstrap(self, session_factory, fernet):
        store = TokenStore(session_factory, bootstrap_token="xoxb-bootstrap", fernet=fernet)

        first = await store.get_credential("T1")
        second = await store.get_credential("T2")

        assert first.bot_token == "xoxb-bootstrap"
        assert first.is_bootstrap is True
        assert second is None

    async def test_claim_is_persisted(self, session_factory, fernet):
        store = TokenStore(session_factory, bootstrap_token="xoxb-bootstrap", fernet=fernet)
        await store.get_credential("T1")

        restarted = TokenStore(session_factory, bootstrap_token="xoxb-bootstrap", fernet=fernet)

        assert (await restarted.get_credential("T1")).bot_token == "xoxb-bootstrap"
        assert await restarted.get_credential("T2") is None

    async def test_oauth_install_does_not_use_bootstrap(self, session_factory, fernet):
        store = TokenStore(session_factory, bootstrap_token="xoxb-bootstrap", fernet=fernet)
        await store.set_credential("T1", "xoxb-oauth")

        credential = await store.get_credential("T1")

        assert credential.bot_token == "xoxb-oauth"
        assert credential.is_bootstrap is False

    async def test_reinstall_keeps_bootstrap_claimed(self, session_factory, fernet):
        store = TokenStore(session_factory, bootstrap_token="xoxb-bootstrap", fernet=fernet)
        await store.get_credential("T1")
        await store.set_credential("T1", "xoxb-oauth")

        restarted = TokenStore(session_factory, bootstrap_token="xoxb-bootstrap", fernet=fernet)

        assert (await restarted.get_credential("T1")).bot_token == "xoxb-oauth"
        assert await restarted.get_credential("T2") is None
