"""
Microsoft Graph mail client.

Lists the inbox of a GRAPH-mode account with bearer auth. A token minted for
IMAP (not a JWT Graph accepts) is answered with a malformed-token error; that
is surfaced as ProtocolMismatch so the caller can switch to IMAP OAuth.
"""
from typing import List, Optional
import logging

import httpx
from pydantic import ValidationError

from mailfetch.core.auth.proxy_pool import ProxyPool
from mailfetch.core.errors import GraphAPIError, ProtocolMismatch
from .models import MessageRecord

logger = logging.getLogger(__name__)

DEFAULT_GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
MALFORMED_TOKEN_MARKER = "IDX14100: JWT is not well formed"


class GraphClient:
    """Inbox listing and deletion over the Graph REST API"""

    def __init__(self,
                 base_url: str = DEFAULT_GRAPH_BASE_URL,
                 proxy_pool: Optional[ProxyPool] = None,
                 timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.proxy_pool = proxy_pool or ProxyPool()
        self.timeout = timeout

    @property
    def inbox_url(self) -> str:
        return f"{self.base_url}/me/mailfolders/inbox/messages"

    def message_url(self, message_id: str) -> str:
        return f"{self.base_url}/me/messages/{message_id}"

    def _client(self) -> httpx.Client:
        return httpx.Client(proxy=self.proxy_pool.pick(), timeout=self.timeout)

    @staticmethod
    def _headers(access_token: str) -> dict:
        return {
            'Authorization': f'Bearer {access_token}',
            'Accept': 'application/json',
        }

    def list_inbox(self, access_token: str) -> List[MessageRecord]:
        """
        Fetch inbox messages, newest first as returned by Graph.

        Raises:
            ProtocolMismatch: Token is not accepted by Graph (use IMAP OAuth instead)
            GraphAPIError: Any other non-200 response, a transport failure or
                a message list that does not match the Graph message shape
        """
        try:
            with self._client() as client:
                response = client.get(self.inbox_url, headers=self._headers(access_token))
        except httpx.HTTPError as e:
            raise GraphAPIError(f"Graph request failed: {e}") from e

        if MALFORMED_TOKEN_MARKER in response.text:
            raise ProtocolMismatch("Graph rejected the token as malformed, IMAP OAuth required")

        if response.status_code != 200:
            raise GraphAPIError(
                f"Graph inbox listing failed (HTTP {response.status_code}): {response.text[:200]}",
                status_code=response.status_code
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise GraphAPIError("Graph returned a non-JSON body", status_code=response.status_code) from e

        try:
            messages = [MessageRecord.from_graph(item) for item in payload.get("value", [])]
        except (ValidationError, AttributeError, TypeError) as e:
            logger.error(f"Unexpected Graph message payload: {e}")
            raise GraphAPIError(f"Graph returned an invalid message list: {e}", status_code=response.status_code) from e

        logger.debug(f"Graph returned {len(messages)} messages")
        return messages

    def delete_message(self, access_token: str, message_id: str) -> bool:
        """
        Delete one message.

        Returns:
            True if Graph answered 204 No Content
        """
        try:
            with self._client() as client:
                response = client.delete(self.message_url(message_id), headers=self._headers(access_token))
        except httpx.HTTPError as e:
            raise GraphAPIError(f"Graph delete failed: {e}") from e

        if response.status_code != 204:
            logger.warning(f"Graph delete of {message_id} answered HTTP {response.status_code}")
            return False
        return True
