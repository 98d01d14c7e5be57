"""
Slack endpoints: slash command, interactions, Events API and OAuth install.

Every inbound Slack request must carry a valid v0 signature; anything else
is rejected with 401 before its body is looked at.
"""

import json
import logging
from typing import Annotated
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import get_settings
from ..core.database import get_session, get_session_factory
from ..core.security import create_oauth_state, verify_oauth_state, verify_slack_signature
from ..services.slack_client import get_http_client
from ..services.slack_service import (
    SlackCommandHandler,
    SlackEventHandler,
    SlackInteractionHandler,
)
from ..services.token_store import TokenStore, get_token_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/slack", tags=["slack"])

BOT_SCOPES = [
    "commands",         # Slash command
    "chat:write",       # Post questions, responses and scores
    "reactions:read",   # Receive vote reactions
    "reactions:write",  # Seed responses with vote reactions
]

TokenStoreDep = Annotated[TokenStore, Depends(get_token_store)]
HttpClientDep = Annotated[httpx.AsyncClient, Depends(get_http_client)]
SessionDep = Annotated[AsyncSession, Depends(get_session)]


# =============================================================================
# SIGNATURE VERIFICATION
# =============================================================================


async def verified_body(
    request: Request,
    x_slack_signature: Annotated[str | None, Header()] = None,
    x_slack_request_timestamp: Annotated[str | None, Header()] = None,
) -> bytes:
    """Raw request body, once its Slack signature checks out."""
    body = await request.body()

    if not x_slack_signature or not x_slack_request_timestamp:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Slack signature headers"
        )

    if not verify_slack_signature(body, x_slack_request_timestamp, x_slack_signature):
        logger.warning(f"Rejected request to {request.url.path} with an invalid Slack signature")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid Slack signature"
        )

    return body


VerifiedBody = Annotated[bytes, Depends(verified_body)]


# =============================================================================
# SLASH COMMAND AND INTERACTIONS
# =============================================================================


@router.post("/commands")
async def handle_slack_command(
    request: Request,
    _body: VerifiedBody,
    session: SessionDep,
    token_store: TokenStoreDep,
    http_client: HttpClientDep,
):
    """Handle the question slash command (`/ask-question <text>`)."""
    form_data = await request.form()
    form = {key: str(value) for key, value in form_data.items()}

    handler = SlackCommandHandler(session, token_store, http_client)
    return await handler.handle(form)


@router.post("/interactions")
async def handle_slack_interactions(
    request: Request,
    _body: VerifiedBody,
    session: SessionDep,
    token_store: TokenStoreDep,
    http_client: HttpClientDep,
):
    """
    Handle Slack interactive components.

    - block_actions: Respond / Close Voting buttons
    - view_submission: the response modal
    """
    form_data = await request.form()
    try:
        payload = json.loads(form_data.get("payload", "{}"))
    except json.JSONDecodeError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Malformed interaction payload"
        )

    handler = SlackInteractionHandler(session, token_store, http_client)
    result = await handler.handle(payload)
    return result if result else {}


# =============================================================================
# EVENTS API
# =============================================================================


async def process_event(
    envelope: dict,
    session_factory: async_sessionmaker[AsyncSession],
    token_store: TokenStore,
    http_client: httpx.AsyncClient,
) -> None:
    """Handle one event after Slack has been acknowledged."""
    async with session_factory() as session:
        try:
            await SlackEventHandler(session, token_store, http_client).dispatch(envelope)
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.exception(f"Failed to process Slack event {envelope.get('event_id')}: {e}")


@router.post("/events")
async def handle_slack_events(
    body: VerifiedBody,
    background_tasks: BackgroundTasks,
    token_store: TokenStoreDep,
    http_client: HttpClientDep,
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
):
    """
    Events API endpoint.

    Answers the url_verification handshake, and acknowledges event_callback
    envelopes immediately, processing them in the background.
    """
    try:
        envelope = json.loads(body)
    except json.JSONDecodeError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Malformed event payload"
        )

    envelope_type = envelope.get("type")
    if envelope_type == "url_verification":
        return {"challenge": envelope.get("challenge")}

    if envelope_type == "event_callback":
        background_tasks.add_task(process_event, envelope, session_factory, token_store, http_client)

    return {}


# =============================================================================
# OAUTH INSTALL
# =============================================================================


@router.get("/install")
async def slack_install():
    """Redirect to Slack's authorization page."""
    settings = get_settings()
    if not settings.oauth_enabled:
        raise HTTPException(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            detail="Slack OAuth is not configured on this server"
        )

    params = {
        "client_id": settings.slack_client_id,
        "scope": ",".join(BOT_SCOPES),
        "state": create_oauth_state(settings.slack_client_secret),
    }
    if settings.slack_redirect_uri:
        params["redirect_uri"] = settings.slack_redirect_uri

    return RedirectResponse(url=f"https://slack.com/oauth/v2/authorize?{urlencode(params)}", status_code=302)


@router.get("/oauth/callback")
async def slack_oauth_callback(
    token_store: TokenStoreDep,
    http_client: HttpClientDep,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
):
    """
    Exchange the authorization code for a bot token and store it.

    The token is written to the token store, so the workspace can use the app
    immediately.
    """
    settings = get_settings()
    if not settings.oauth_enabled:
        raise HTTPException(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            detail="Slack OAuth is not configured on this server"
        )

    if error:
        logger.warning(f"Slack install was not approved: {error}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Slack authorization failed: {error}"
        )

    if not code or not state or not verify_oauth_state(state, settings.slack_client_secret):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid state parameter"
        )

    try:
        response = await http_client.post(
            f"{settings.slack_api_base_url.rstrip('/')}/oauth.v2.access",
            data={
                "client_id": settings.slack_client_id,
                "client_secret": settings.slack_client_secret,
                "code": code,
                **({"redirect_uri": settings.slack_redirect_uri} if settings.slack_redirect_uri else {}),
            },
        )
        data = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"Slack OAuth exchange failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Could not reach Slack"
        )

    if not data.get("ok"):
        logger.error(f"Slack OAuth error: {data.get('error')}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Slack authorization failed: {data.get('error')}"
        )

    team_info = data.get("team") or {}
    team_id = team_info.get("id")
    access_token = data.get("access_token")
    if not team_id or not access_token:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Slack did not return a bot token"
        )

    await token_store.set_credential(
        team_id,
        access_token,
        bot_id=data.get("bot_id"),
        bot_user_id=data.get("bot_user_id"),
        scopes=[s for s in (data.get("scope") or "").split(",") if s],
        enterprise_id=(data.get("enterprise") or {}).get("id"),
    )

    logger.info(f"Askbox installed in workspace {team_id} ({team_info.get('name')})")
    return HTMLResponse(
        f"<h1>Askbox installed</h1><p>Askbox is ready in {team_info.get('name', 'your workspace')}. "
        f"Try <code>{settings.question_command}</code> in any channel.</p>"
    )
