"""MSAL token adapter — implements TokenProvider.

Silently renews a user's Graph access token from MSAL's token cache.
Never falls back to an interactive prompt.
"""

from __future__ import annotations

import asyncio
import logging

import msal

from src.data.models import AccountIdentity
from src.integrations.ms_auth import GRAPH_SCOPES, get_msal_app, save_token_cache
from src.ports.token_port import TokenRefreshFailed

logger = logging.getLogger(__name__)


class MsalTokenProvider:
    """MSAL implementation of TokenProvider."""

    def __init__(
        self,
        app: msal.ConfidentialClientApplication | None = None,
        scopes: list[str] | None = None,
    ) -> None:
        self._app = app
        self._scopes = scopes or GRAPH_SCOPES

    def _get_app(self) -> msal.ConfidentialClientApplication:
        if self._app is None:
            self._app = get_msal_app()
        return self._app

    def _acquire(self, account: AccountIdentity) -> dict | None:
        app = self._get_app()
        cached = [
            a for a in app.get_accounts()
            if a.get("home_account_id") == account.home_account_id
        ]
        msal_account = cached[0] if cached else account.to_msal_account()
        result = app.acquire_token_silent(self._scopes, account=msal_account)
        if result and "access_token" in result:
            # Renewal may rotate the refresh token; runs on the worker thread.
            save_token_cache()
        return result

    async def acquire_silent(self, account: AccountIdentity) -> str:
        try:
            result = await asyncio.to_thread(self._acquire, account)
        except Exception as exc:
            logger.error(
                "Failed to refresh token for user %s: %s", account.user_id, exc,
            )
            raise TokenRefreshFailed(str(exc)) from exc

        if not result:
            logger.error(
                "Failed to refresh token for user %s: no cached refresh token",
                account.user_id,
            )
            raise TokenRefreshFailed("No cached token for account")

        if "access_token" not in result:
            detail = f"{result.get('error', 'unknown_error')}: {result.get('error_description', '')}"
            logger.error("Failed to refresh token for user %s: %s", account.user_id, detail)
            raise TokenRefreshFailed(detail.strip())

        return result["access_token"]
