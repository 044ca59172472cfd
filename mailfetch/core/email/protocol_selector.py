"""
Protocol selection for one account.

Makes sure the token is valid, then reads the inbox over the protocol the
account is in: Graph, IMAP with XOAUTH2, or IMAP with a password. A Graph
malformed-token answer switches the account to IMAP OAuth for good and the
inbox is read over IMAP in the same call.
"""
from dataclasses import dataclass, field
from typing import List, Optional
import logging

from mailfetch.core.accounts.models import Account, AuthMode
from mailfetch.core.auth.token_manager import TokenManager
from mailfetch.core.errors import MailConnectionError, MailFetchError, ProtocolMismatch, TokenRefreshFailed
from .fetcher import MessageFetcher
from .graph_client import GraphClient
from .imap_session import SessionCache
from .models import MessageRecord

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    """Outcome of one inbox fetch"""
    account: Account
    messages: List[MessageRecord] = field(default_factory=list)
    error: Optional[MailFetchError] = None
    fallback_used: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


class ProtocolSelector:
    """Routes an account's inbox fetch to Graph or IMAP"""

    def __init__(self,
                 token_manager: TokenManager,
                 graph_client: GraphClient,
                 session_cache: SessionCache,
                 fetcher: Optional[MessageFetcher] = None,
                 window_size: int = 5,
                 lazy_load: bool = True):
        self.token_manager = token_manager
        self.graph_client = graph_client
        self.session_cache = session_cache
        self.fetcher = fetcher or MessageFetcher()
        self.window_size = window_size
        self.lazy_load = lazy_load

    @property
    def lazy(self) -> bool:
        # Dedicated sessions are closed right after the fetch
        return self.lazy_load and not self.session_cache.multi_threaded

    def fetch_inbox(self, account: Account) -> FetchResult:
        """
        Fetch the account's newest inbox messages.

        Never raises MailFetchError: failures are returned in FetchResult.error.
        """
        if not self.token_manager.ensure_valid(account):
            reason = self.token_manager.failures.get(account.email, "token refresh failed")
            return FetchResult(account, error=TokenRefreshFailed(reason, email=account.email))

        fallback_used = False
        try:
            if account.mode is AuthMode.GRAPH:
                try:
                    return FetchResult(account, self.graph_client.list_inbox(account.access_token))
                except ProtocolMismatch:
                    logger.info(f"{account.email}: Graph rejected the token, retrying over IMAP OAuth")
                    account.demote(AuthMode.IMAP_OAUTH)
                    fallback_used = True

            messages = self._fetch_imap(account)
            return FetchResult(account, messages, fallback_used=fallback_used)
        except MailFetchError as e:
            if e.email is None:
                e.email = account.email
            return FetchResult(account, error=e, fallback_used=fallback_used)

    def _fetch_imap(self, account: Account) -> List[MessageRecord]:
        with self.session_cache.session(account.email, account.credential, account.mode) as session:
            try:
                return self.fetcher.fetch_window(session, self.window_size, lazy=self.lazy)
            except MailConnectionError:
                self.session_cache.invalidate(session)
                raise

    def delete_message(self, account: Account, message_id: str) -> bool:
        """
        Delete a message by id over the account's protocol.

        IMAP deletes run on a dedicated read-write session that is always closed.

        Raises:
            TokenRefreshFailed: Token could not be refreshed
            MailFetchError: Graph or IMAP failure
        """
        if not self.token_manager.ensure_valid(account):
            reason = self.token_manager.failures.get(account.email, "token refresh failed")
            raise TokenRefreshFailed(reason, email=account.email)

        if account.mode is AuthMode.GRAPH:
            return self.graph_client.delete_message(account.access_token, message_id)

        session = self.session_cache.open_session(
            account.email, account.credential, account.mode, keep_alive=False, readonly=False
        )
        try:
            return self.fetcher.delete_message(session, message_id)
        finally:
            session.close()
