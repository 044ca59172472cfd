"""
IMAP session management.

A Session is a logged-in IMAPClient (the store) plus one selected folder.
In sequential mode the SessionCache keeps exactly one Session alive and hands
it out again while the same account is fetched; lazily loaded message bodies
also read through it after the batch. In multi-threaded mode nothing is
cached: every fetch opens its own Session and closes it afterwards.
"""
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional
import logging
import ssl

from imapclient import IMAPClient
from imapclient.exceptions import IMAPClientError, LoginError

from mailfetch.core.accounts.models import AuthMode
from mailfetch.core.errors import AuthenticationFailed, MailConnectionError
from .host_resolver import HostResolver

logger = logging.getLogger(__name__)

IMAP_SSL_PORT = 993
DEFAULT_TIMEOUT = 30
DEFAULT_FOLDER = "INBOX"

# Errors raised by imapclient/imaplib and the socket layer
TRANSPORT_ERRORS = (IMAPClientError, OSError)


@dataclass(frozen=True)
class ConnectionOptions:
    """How to reach and authenticate against one IMAP server"""
    host: str
    port: int = IMAP_SSL_PORT
    timeout: float = DEFAULT_TIMEOUT
    use_ssl: bool = True
    # Certificate hostname is not verified unless enabled
    check_hostname: bool = False
    auth_mechanism: str = "LOGIN"

    @property
    def is_oauth(self) -> bool:
        return self.auth_mechanism == "XOAUTH2"

    def ssl_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context()
        if not self.check_hostname:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context


def build_connection_options(host: str,
                             mode: AuthMode,
                             port: int = IMAP_SSL_PORT,
                             timeout: float = DEFAULT_TIMEOUT) -> ConnectionOptions:
    """Implicit TLS always; OAuth accounts log in with XOAUTH2 only"""
    if mode is AuthMode.IMAP_OAUTH:
        return ConnectionOptions(
            host=host,
            port=port,
            timeout=timeout,
            auth_mechanism="XOAUTH2",
        )
    return ConnectionOptions(host=host, port=port, timeout=timeout)


class MailboxFolder:
    """A folder selected on a connected client"""

    def __init__(self, client: IMAPClient, name: str = DEFAULT_FOLDER, readonly: bool = True):
        self.client = client
        self.name = name
        self.readonly = readonly
        self._open = False

    def open(self):
        self.client.select_folder(self.name, readonly=self.readonly)
        self._open = True

    def is_open(self) -> bool:
        return self._open

    def mark_closed(self):
        """Record that the server side went away (abort, socket error)"""
        self._open = False

    def close(self):
        if not self._open:
            return
        try:
            self.client.close_folder()
        finally:
            self._open = False


class Session:
    """Logged-in store + open folder, owned by one account"""

    def __init__(self,
                 email: str,
                 client: IMAPClient,
                 folder: MailboxFolder,
                 mode: AuthMode,
                 keep_alive: bool = True):
        self.email = email
        self.client = client
        self.folder = folder
        self.mode = mode
        self.keep_alive = keep_alive
        self.closed = False

    def is_reusable_for(self, email: str) -> bool:
        return not self.closed and self.email == email and self.folder.is_open()

    def close(self) -> bool:
        """
        Close the folder, then log out. Failures are logged, never raised.

        Returns:
            True if anything was actually closed
        """
        closed = False

        if self.folder.is_open():
            try:
                self.folder.close()
                closed = True
            except TRANSPORT_ERRORS as e:
                logger.warning(f"Error closing folder {self.folder.name} for {self.email}: {e}")

        if not self.closed:
            try:
                self.client.logout()
                closed = True
            except TRANSPORT_ERRORS as e:
                logger.warning(f"Error during logout for {self.email}: {e}")

        self.closed = True
        return closed


class SessionCache:
    """
    Owner of the reusable IMAP session.

    Sequential mode is not thread-safe: a single worker drives every
    acquire/release. In multi-threaded mode the cache holds no state and
    each acquire returns a dedicated session.
    """

    def __init__(self,
                 host_resolver: Optional[HostResolver] = None,
                 multi_threaded: bool = False,
                 port: int = IMAP_SSL_PORT,
                 timeout: float = DEFAULT_TIMEOUT,
                 folder: str = DEFAULT_FOLDER):
        self.host_resolver = host_resolver or HostResolver()
        self.multi_threaded = multi_threaded
        self.port = port
        self.timeout = timeout
        self.folder = folder
        self._current: Optional[Session] = None

    @property
    def current(self) -> Optional[Session]:
        return self._current

    def acquire(self, email: str, credential: Optional[str], mode: AuthMode) -> Session:
        """
        Get an open session for the account.

        Raises:
            AuthenticationFailed: Credential rejected (no cache entry is left behind)
            MailConnectionError: Any other failure while connecting
        """
        if self.multi_threaded:
            return self.open_session(email, credential, mode, keep_alive=False)

        if self._current is not None and self._current.is_reusable_for(email):
            logger.info(f"Using existing connection for {email}")
            return self._current

        self.evict()
        session = self.open_session(email, credential, mode, keep_alive=True)
        self._current = session
        return session

    def release(self, session: Session):
        """Close dedicated sessions; cached sessions stay open for reuse"""
        if session.keep_alive and session is self._current:
            return
        if session.close():
            logger.warning(f"{session.email} connection closed (dedicated session)")

    def invalidate(self, session: Session):
        """Drop a session that failed mid-use"""
        session.folder.mark_closed()
        if session is self._current:
            self.evict()
        else:
            session.close()

    def evict(self):
        """Close and forget the cached session, if any"""
        session, self._current = self._current, None
        if session is None:
            return
        if session.close():
            logger.warning(f"{session.email} connection closed")

    @contextmanager
    def session(self, email: str, credential: Optional[str], mode: AuthMode) -> Iterator[Session]:
        """Scoped acquire/release, released even when the body raises"""
        session = self.acquire(email, credential, mode)
        try:
            yield session
        finally:
            self.release(session)

    def open_session(self,
                     email: str,
                     credential: Optional[str],
                     mode: AuthMode,
                     keep_alive: bool = False,
                     readonly: bool = True) -> Session:
        """
        Connect, authenticate and select the folder.

        Raises:
            AuthenticationFailed: Missing or rejected credential
            MailConnectionError: Unresolvable address, connection, TLS or
                folder selection failure
        """
        if not credential:
            raise AuthenticationFailed(f"No credential available for {email} ({mode.value})", email=email)

        try:
            host = self.host_resolver.resolve_host(email)
        except ValueError as e:
            raise MailConnectionError(f"Cannot resolve IMAP host for {email!r}: {e}", email=email) from e
        options = build_connection_options(host, mode, port=self.port, timeout=self.timeout)
        logger.info(f"Connecting to IMAP server {options.host}:{options.port} for {email} "
                    f"({options.auth_mechanism}, timeout: {options.timeout}s)")

        try:
            client = IMAPClient(
                host=options.host,
                port=options.port,
                ssl=options.use_ssl,
                ssl_context=options.ssl_context(),
                timeout=options.timeout
            )
        except TRANSPORT_ERRORS as e:
            logger.error(f"Error connecting to IMAP server {options.host} for {email}: {e}")
            raise MailConnectionError(f"Cannot connect to {options.host}: {e}", email=email) from e

        try:
            if options.is_oauth:
                client.oauth2_login(email, credential, mech=options.auth_mechanism)
            else:
                client.login(email, credential)

            folder = MailboxFolder(client, self.folder, readonly=readonly)
            folder.open()
        except LoginError as e:
            logger.error(f"Authentication failed for {email}: {e}")
            self._discard_client(client, email)
            raise AuthenticationFailed(f"Authentication failed: {e}", email=email) from e
        except TRANSPORT_ERRORS as e:
            logger.error(f"Error opening {self.folder} on {options.host} for {email}: {e}")
            self._discard_client(client, email)
            raise MailConnectionError(f"Cannot open {self.folder} on {options.host}: {e}", email=email) from e

        logger.info(f"Successfully logged in as {email}")
        return Session(email, client, folder, mode, keep_alive=keep_alive)

    @staticmethod
    def _discard_client(client: IMAPClient, email: str):
        try:
            client.logout()
        except TRANSPORT_ERRORS as e:
            logger.debug(f"Ignoring logout error for {email}: {e}")
