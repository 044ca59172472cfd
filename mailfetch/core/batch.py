"""
Batch inbox processing over every account in the store.

Sequential mode walks the accounts in file order and lets the session cache
reuse a connection. Multi-threaded mode fans out over a ThreadPoolExecutor;
each fetch then owns its own IMAP session.

A failing account never stops the batch: it is logged and appended to the
invalid-accounts file. Refreshed tokens are written back at the end.
"""
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, List, Optional
import logging
import threading

from mailfetch.core.accounts.manager import AccountStore
from mailfetch.core.accounts.models import Account
from mailfetch.core.auth.proxy_pool import ProxyPool
from mailfetch.core.auth.token_manager import TokenManager
from mailfetch.core.config import Settings
from mailfetch.core.email.fetcher import MessageFetcher
from mailfetch.core.email.graph_client import GraphClient
from mailfetch.core.email.host_resolver import HostResolver
from mailfetch.core.email.imap_session import SessionCache
from mailfetch.core.email.protocol_selector import FetchResult, ProtocolSelector
from mailfetch.core.errors import MailFetchError
from mailfetch.core.paths import get_config_path

logger = logging.getLogger(__name__)


@dataclass
class BatchReport:
    """Results of one batch run, in completion order"""
    results: List[FetchResult] = field(default_factory=list)
    saved: bool = False

    @property
    def succeeded(self) -> List[FetchResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> List[FetchResult]:
        return [r for r in self.results if not r.ok]

    @property
    def message_count(self) -> int:
        return sum(len(r.messages) for r in self.results)


class InboxBatchRunner:
    """Runs ProtocolSelector.fetch_inbox for each account in the store"""

    def __init__(self,
                 store: AccountStore,
                 selector: ProtocolSelector,
                 max_workers: int = 4,
                 on_result: Optional[Callable[[int, FetchResult], None]] = None):
        """
        Args:
            store: Account store (loaded by run(), saved afterwards)
            selector: Protocol selector shared by all fetches; its session
                cache decides between sequential and parallel processing
            max_workers: Thread pool size in multi-threaded mode
            on_result: Callback invoked with (index, result) as each account finishes
        """
        self.store = store
        self.selector = selector
        self.max_workers = max_workers
        self.on_result = on_result
        self._lock = threading.Lock()

    @property
    def multi_threaded(self) -> bool:
        # Parallel workers must never share the cached session
        return self.selector.session_cache.multi_threaded

    def run(self, accounts: Optional[List[Account]] = None) -> BatchReport:
        """
        Fetch every account's inbox.

        Args:
            accounts: Accounts to process (default: store.load())

        Returns:
            BatchReport with one result per account
        """
        if accounts is None:
            accounts = self.store.load()

        report = BatchReport()
        if not accounts:
            logger.warning("No accounts to process")
            return report

        mode = f"parallel, {self.max_workers} workers" if self.multi_threaded else "sequential"
        logger.info(f"Processing {len(accounts)} account(s) ({mode})")

        if self.multi_threaded:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = {
                    executor.submit(self._process, index, account): account
                    for index, account in enumerate(accounts, 1)
                }
                for future in as_completed(futures):
                    report.results.append(future.result())
        else:
            for index, account in enumerate(accounts, 1):
                report.results.append(self._process(index, account))

        report.saved = self.store.save(accounts)
        logger.info(f"Batch finished: {len(report.succeeded)} succeeded, {len(report.failed)} failed, "
                    f"{report.message_count} messages")
        return report

    def _process(self, index: int, account: Account) -> FetchResult:
        try:
            result = self.selector.fetch_inbox(account)
        except Exception as e:
            logger.error(f"[{index}] Unexpected error for {account.email}: {e}", exc_info=True)
            result = FetchResult(account, error=MailFetchError(f"Unexpected error: {e}", email=account.email))

        if result.ok:
            suffix = " (via IMAP fallback)" if result.fallback_used else ""
            logger.info(f"[{index}] Success: {account.email}, {len(result.messages)} messages{suffix}")
        else:
            logger.error(f"[{index}] Failed: {account.email}: {result.error.reason}")
            with self._lock:
                self.store.record_invalid(account, result.error.reason)

        if self.on_result is not None:
            with self._lock:
                self.on_result(index, result)
        return result


def build_selector(settings: Settings,
                   hosts_file: Optional[str] = None,
                   proxies_file: Optional[str] = None) -> ProtocolSelector:
    """
    Wire a ProtocolSelector from settings.

    Args:
        settings: Application settings
        hosts_file: Override for settings.hosts_file
        proxies_file: Override for settings.proxies_file
    """
    hosts_path = get_config_path(hosts_file or settings.hosts_file)
    proxies_name = proxies_file or settings.proxies_file
    proxies_path = get_config_path(proxies_name) if proxies_name else None

    proxy_pool = ProxyPool.from_file(str(proxies_path) if proxies_path else None)
    host_resolver = HostResolver.from_file(str(hosts_path) if hosts_path else None)

    token_manager = TokenManager(
        token_url=settings.token_url,
        proxy_pool=proxy_pool,
        timeout=settings.http_timeout,
        graph_scope_marker=settings.graph_scope_marker,
    )
    graph_client = GraphClient(
        base_url=settings.graph_base_url,
        proxy_pool=proxy_pool,
        timeout=settings.http_timeout,
    )
    session_cache = SessionCache(
        host_resolver=host_resolver,
        multi_threaded=settings.multi_threaded,
        port=settings.imap_port,
        timeout=settings.imap_timeout,
        folder=settings.imap_folder,
    )

    return ProtocolSelector(
        token_manager=token_manager,
        graph_client=graph_client,
        session_cache=session_cache,
        fetcher=MessageFetcher(),
        window_size=settings.imap_window_size,
        lazy_load=settings.lazy_load,
    )
