"""Token port — abstract interface for silent access-token renewal.

Core modules depend on this protocol, never on MSAL directly.
"""

from __future__ import annotations

from typing import Protocol

from src.data.models import AccountIdentity


class TokenRefreshFailed(Exception):
    """Raised when a token cannot be renewed without user interaction.

    The account is unusable until the user signs in again; callers do not
    distinguish between expired grants, revoked consent or network errors.
    """


class TokenProvider(Protocol):
    """Abstract token interface used by core modules."""

    async def acquire_silent(self, account: AccountIdentity) -> str: ...
