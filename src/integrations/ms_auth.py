"""Microsoft identity + Graph helpers.

Uses MSAL's ConfidentialClientApplication for the delegated
authorization-code flow and for silent renewal from its token cache.
The GraphServiceClient returned by get_graph_client() is bound to a single
user's access token and is used by PlannerTaskFetcher.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path

import msal
from azure.core.credentials import AccessToken
from msgraph import GraphServiceClient

from src.config import settings
from src.data.models import AccountIdentity

logger = logging.getLogger(__name__)

# MSAL adds openid/profile/offline_access on its own.
GRAPH_SCOPES = ["User.Read", "Group.Read.All", "Tasks.Read"]

_app: msal.ConfidentialClientApplication | None = None
_cache: msal.SerializableTokenCache | None = None


class AuthError(Exception):
    """Raised when the interactive sign-in flow cannot be completed."""


def _load_token_cache() -> msal.SerializableTokenCache:
    cache = msal.SerializableTokenCache()
    cache_path = settings.MSAL_TOKEN_CACHE_PATH
    if cache_path and Path(cache_path).exists():
        cache.deserialize(Path(cache_path).read_text())
        logger.debug("Loaded MSAL token cache from %s", cache_path)
    return cache


def get_msal_app() -> msal.ConfidentialClientApplication:
    """Return a cached ConfidentialClientApplication for this tenant."""
    global _app, _cache
    if _app is not None:
        return _app

    if not settings.is_development:
        logging.getLogger("msal").setLevel(logging.WARNING)

    _cache = _load_token_cache()
    _app = msal.ConfidentialClientApplication(
        settings.CLIENT_ID,
        client_credential=settings.CLIENT_SECRET,
        authority=settings.authority,
        token_cache=_cache,
    )
    logger.info("MSAL client initialized (tenant=%s)", settings.TENANT_ID)
    return _app


def save_token_cache() -> None:
    """Write the token cache to disk if a path is configured and it changed."""
    cache_path = settings.MSAL_TOKEN_CACHE_PATH
    if not cache_path or _cache is None or not _cache.has_state_changed:
        return
    path = Path(cache_path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(_cache.serialize())
    except OSError as exc:
        logger.warning("Could not save MSAL token cache to %s: %s", cache_path, exc)
        return
    logger.debug("MSAL token cache saved to %s", cache_path)


def initiate_login(redirect_uri: str | None = None) -> dict:
    """Start an auth-code flow.

    Returns the flow dict; the caller keeps it in the session and redirects
    the browser to flow["auth_uri"].
    """
    app = get_msal_app()
    return app.initiate_auth_code_flow(
        GRAPH_SCOPES,
        redirect_uri=redirect_uri or settings.REDIRECT_URI,
        prompt="select_account",
    )


def complete_login(flow: dict, auth_response: dict) -> AccountIdentity:
    """Redeem the authorization code and return the signed-in account.

    Args:
        flow: The dict returned by initiate_login().
        auth_response: The query parameters the identity provider sent back.
    """
    app = get_msal_app()
    try:
        result = app.acquire_token_by_auth_code_flow(flow, auth_response)
    except ValueError as exc:
        # MSAL raises ValueError on state mismatch / replayed callbacks
        raise AuthError(f"Invalid authorization response: {exc}") from exc

    if "error" in result:
        raise AuthError(
            f"{result.get('error')}: {result.get('error_description', '')}".strip()
        )

    claims = result.get("id_token_claims") or {}
    username = claims.get("preferred_username", "")
    accounts = app.get_accounts(username=username) if username else []
    if not accounts:
        raise AuthError(f"No cached account for {username or 'unknown user'}")

    save_token_cache()
    account = AccountIdentity.from_msal_account(accounts[0], name=claims.get("name", ""))
    logger.info("User authenticated: %s", account.username)
    return account


def logout_url(post_logout_redirect_uri: str | None = None) -> str:
    """Return the Entra ID sign-out URL."""
    from urllib.parse import quote

    target = post_logout_redirect_uri or settings.POST_LOGOUT_REDIRECT_URI
    return (
        f"{settings.authority}/oauth2/v2.0/logout"
        f"?post_logout_redirect_uri={quote(target, safe='')}"
    )


class StaticTokenCredential:
    """Async credential that always hands out one pre-acquired bearer token."""

    def __init__(self, access_token: str, lifetime_seconds: int = 3600) -> None:
        self._token = access_token
        self._expires_on = int(time.time()) + lifetime_seconds

    async def get_token(self, *scopes: str, **kwargs: object) -> AccessToken:
        return AccessToken(self._token, self._expires_on)

    async def close(self) -> None:
        return None

    async def __aenter__(self) -> StaticTokenCredential:
        return self

    async def __aexit__(self, *args: object) -> None:
        return None


def get_graph_client(access_token: str) -> GraphServiceClient:
    """Return a GraphServiceClient that calls Graph as the token's owner."""
    return GraphServiceClient(
        credentials=StaticTokenCredential(access_token),
        scopes=["https://graph.microsoft.com/.default"],
    )
