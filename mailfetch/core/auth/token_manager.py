"""
OAuth2 Token Manager for Microsoft accounts

Keeps each account's access token valid by exchanging its refresh token at
the identity provider. The granted scope decides which protocol the account
uses afterwards:
- scope mentions Graph  -> GRAPH (REST inbox listing)
- anything else         -> IMAP_OAUTH (XOAUTH2 over IMAP)

Usage:
    manager = TokenManager()
    if manager.ensure_valid(account):
        ...  # account.access_token is fresh
    else:
        reason = manager.failures[account.email]
"""
import logging
import re
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

import httpx

from mailfetch.core.accounts.models import Account, AuthMode
from mailfetch.core.errors import TokenRefreshFailed
from .proxy_pool import ProxyPool

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_URL = "https://login.microsoftonline.com/common/oauth2/v2.0/token"
DEFAULT_EXPIRES_IN = 3600

_TRACE_ID_PATTERN = re.compile(r"\s*Trace ID:.*", re.DOTALL)


def clean_error_description(description: str) -> str:
    """Drop the 'Trace ID: ...' diagnostic tail Microsoft appends to errors"""
    return _TRACE_ID_PATTERN.sub("", description).strip()


class TokenManager:
    """
    Refresh-token exchange against the identity provider.

    No retries: a failed refresh is reported once and the caller moves on
    to the next account.
    """

    def __init__(self,
                 token_url: str = DEFAULT_TOKEN_URL,
                 proxy_pool: Optional[ProxyPool] = None,
                 timeout: float = 30.0,
                 graph_scope_marker: str = "graph",
                 clock: Callable[[], float] = time.time):
        """
        Args:
            token_url: OAuth2 v2 token endpoint
            proxy_pool: Optional pool of outbound proxies
            timeout: HTTP connect/read timeout in seconds
            graph_scope_marker: Scope substring that selects the Graph protocol
            clock: Time source (epoch seconds)
        """
        self.token_url = token_url
        self.proxy_pool = proxy_pool or ProxyPool()
        self.timeout = timeout
        self.graph_scope_marker = graph_scope_marker
        self.clock = clock
        self.failures: Dict[str, str] = {}

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self.clock(), tz=timezone.utc)

    def ensure_valid(self, account: Account) -> bool:
        """
        Make sure the account can authenticate.

        Returns:
            True if the current token is still valid (no network call) or was
            refreshed; False if the refresh failed for any reason
        """
        if account.has_valid_access_token(self._now()):
            return True

        try:
            self.refresh(account)
            self.failures.pop(account.email, None)
            return True
        except TokenRefreshFailed as e:
            self.failures[account.email] = e.reason
            logger.error(f"Token refresh failed for {account.email}: {e.reason}")
            return False

    def refresh(self, account: Account):
        """
        Exchange the account's refresh token and update it in place.

        Raises:
            TokenRefreshFailed: Missing local fields, provider error, or network/parse failure
        """
        if not account.client_id or not account.refresh_token:
            raise TokenRefreshFailed("client id and refresh token are required", email=account.email)

        logger.info(f"Acquiring new OAuth2 access token for {account.email}")
        result = self.request_token(account.client_id, account.refresh_token)

        scope = result.get("scope") or ""
        mode = AuthMode.GRAPH if self.graph_scope_marker in scope else AuthMode.IMAP_OAUTH

        try:
            expires_in = float(result.get("expires_in") or DEFAULT_EXPIRES_IN)
        except (TypeError, ValueError) as e:
            raise TokenRefreshFailed(f"invalid expires_in: {result.get('expires_in')!r}", email=account.email) from e

        account.update_tokens(
            access_token=result["access_token"],
            expires_in=expires_in,
            mode=mode,
            refresh_token=result.get("refresh_token"),
            now=self._now(),
        )
        logger.info(f"Refreshed token for {account.email} ({mode.value}, expires in {int(expires_in)}s)")

    def request_token(self, client_id: str, refresh_token: str) -> dict:
        """
        POST a refresh_token grant to the token endpoint.

        Returns:
            Token response containing at least 'access_token'

        Raises:
            TokenRefreshFailed: On transport errors, non-JSON bodies, or missing access_token
        """
        data = {
            'client_id': client_id,
            'grant_type': 'refresh_token',
            'refresh_token': refresh_token,
        }

        try:
            with httpx.Client(proxy=self.proxy_pool.pick(), timeout=self.timeout) as client:
                response = client.post(
                    self.token_url,
                    data=data,
                    headers={'Content-Type': 'application/x-www-form-urlencoded'},
                )
        except httpx.HTTPError as e:
            raise TokenRefreshFailed(f"token request failed: {e}") from e

        logger.debug(f"Token endpoint answered HTTP {response.status_code}")

        try:
            result = response.json()
        except ValueError as e:
            raise TokenRefreshFailed(f"unparseable token response (HTTP {response.status_code})") from e

        if not isinstance(result, dict) or not result.get("access_token"):
            error = response.text
            if isinstance(result, dict) and result.get("error_description"):
                error = result["error_description"]
            raise TokenRefreshFailed(clean_error_description(error))

        return result
