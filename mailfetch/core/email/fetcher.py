"""
IMAP message fetching.

Only the newest `max_count` messages are loaded, newest first. Headers are
fetched in one batch; bodies are either downloaded right away (eager) or
wrapped in a LazyBody bound to the live session (lazy).
"""
from datetime import datetime
from email import message_from_bytes, policy
from email.message import Message
from email.utils import getaddresses
from typing import Any, Dict, List, Optional
import logging

from imapclient.exceptions import IMAPClientAbortError, IMAPClientError

from mailfetch.core.errors import ContentExtractionError, FolderClosedError, MailConnectionError
from .content import ExtractedContent, extract_content
from .imap_session import Session, TRANSPORT_ERRORS
from .lazy_body import LazyBody
from .models import MessageRecord, MessageSource, NO_SUBJECT, UNKNOWN_ADDRESS

logger = logging.getLogger(__name__)

DELETED_FLAG = b"\\Deleted"
HEADER_FIELDS = ['FLAGS', 'INTERNALDATE', 'BODY.PEEK[HEADER]']


def _as_bytes(value: Any) -> bytes:
    return value if isinstance(value, bytes) else str(value).encode()


def is_deleted(flags) -> bool:
    return any(_as_bytes(flag).lower() == DELETED_FLAG.lower() for flag in flags or ())


def first_address(values: Optional[List[Any]]) -> str:
    """Bare address of the first parseable entry, or 'Unknown'"""
    if not values:
        return UNKNOWN_ADDRESS
    for _name, address in getaddresses([str(value) for value in values]):
        if address:
            return address
    return UNKNOWN_ADDRESS


class ImapMessageHandle:
    """
    Reference to one message on the server.

    Only usable while the session's folder stays open.
    """

    def __init__(self, session: Session, uid: int):
        self.session = session
        self.uid = uid

    def fetch_message(self) -> Message:
        """
        Download and parse the full message.

        Raises:
            FolderClosedError: Session folder is closed or the connection dropped
            ContentExtractionError: Server refused the fetch or the message vanished
        """
        if not self.session.folder.is_open():
            raise FolderClosedError(
                f"Folder {self.session.folder.name} is closed for {self.session.email}",
                email=self.session.email
            )

        try:
            response = self.session.client.fetch([self.uid], ['BODY.PEEK[]'])
        except (IMAPClientAbortError, OSError) as e:
            self.session.folder.mark_closed()
            raise FolderClosedError(f"Connection lost: {e}", email=self.session.email) from e
        except IMAPClientError as e:
            raise ContentExtractionError(f"Fetch of message {self.uid} failed: {e}",
                                         email=self.session.email) from e

        data = response.get(self.uid) or {}
        raw = data.get(b'BODY[]') or data.get(b'RFC822')
        if raw is None:
            raise ContentExtractionError(f"Message {self.uid} is no longer on the server",
                                         email=self.session.email)

        return message_from_bytes(raw, policy=policy.default)

    def load_content(self) -> ExtractedContent:
        return extract_content(self.fetch_message())


class MessageFetcher:
    """Reads the newest messages of an open IMAP session"""

    def fetch_window(self, session: Session, max_count: int, lazy: bool = True) -> List[MessageRecord]:
        """
        Load up to max_count newest messages.

        Messages expunged between listing and header fetch, or flagged
        \\Deleted, are skipped. An empty folder gives an empty list.

        Args:
            session: Open session (folder selected)
            max_count: Window size
            lazy: Defer body download until first access

        Returns:
            Records ordered newest first

        Raises:
            MailConnectionError: Listing or header fetch failed at the transport level
        """
        client = session.client

        try:
            message_ids = sorted(client.search(['ALL']))
        except TRANSPORT_ERRORS as e:
            session.folder.mark_closed()
            raise MailConnectionError(f"Failed to list {session.folder.name}: {e}", email=session.email) from e

        total = len(message_ids)
        start = max(0, total - max_count)
        logger.info(f"{session.email}: {total} messages in {session.folder.name}, loading {total - start}")

        # (ordinal position, uid) newest first
        window = [(index + 1, message_ids[index]) for index in range(total - 1, start - 1, -1)]
        if not window:
            return []

        try:
            response = client.fetch([uid for _, uid in window], HEADER_FIELDS)
        except TRANSPORT_ERRORS as e:
            session.folder.mark_closed()
            raise MailConnectionError(f"Failed to fetch headers: {e}", email=session.email) from e

        records = []
        for position, uid in window:
            data = response.get(uid)
            if data is None:
                logger.info(f"Message {position} has been expunged, skipping")
                continue
            if is_deleted(data.get(b'FLAGS')):
                logger.info(f"Message {position} is marked for deletion, skipping")
                continue

            records.append(self._build_record(session, uid, position, data, lazy))

        return records

    def _build_record(self,
                      session: Session,
                      uid: int,
                      position: int,
                      data: Dict[bytes, Any],
                      lazy: bool) -> MessageRecord:
        headers = message_from_bytes(data.get(b'BODY[HEADER]') or b"", policy=policy.default)

        subject = str(headers.get('Subject') or "").strip() or NO_SUBJECT
        recipients = (headers.get_all('To') or []) + (headers.get_all('Cc') or []) + (headers.get_all('Bcc') or [])
        received_at = data.get(b'INTERNALDATE')

        record = MessageRecord(
            id=str(headers.get('Message-ID') or "").strip() or str(position),
            subject=subject,
            sender=first_address(headers.get_all('From')),
            recipient=first_address(recipients),
            received_at=received_at if isinstance(received_at, datetime) else None,
            source=MessageSource.IMAP,
        )
        logger.debug(f"Loading subject: {subject}")

        handle = ImapMessageHandle(session, uid)
        body = LazyBody(handle.load_content, label=subject)
        if not lazy:
            body.ensure_loaded()
        return record.attach_body(body)

    def delete_message(self, session: Session, message_id: str) -> bool:
        """
        Flag a message \\Deleted and expunge it.

        The session must have its folder opened read-write.

        Returns:
            True if a message was found and removed
        """
        client = session.client
        try:
            uids = client.search(['HEADER', 'Message-ID', message_id])
            if not uids and message_id.isdigit():
                message_ids = sorted(client.search(['ALL']))
                position = int(message_id) - 1
                if 0 <= position < len(message_ids):
                    uids = [message_ids[position]]

            if not uids:
                logger.warning(f"Message {message_id} not found for {session.email}")
                return False

            client.add_flags(uids, [DELETED_FLAG])
            client.expunge()
        except TRANSPORT_ERRORS as e:
            session.folder.mark_closed()
            raise MailConnectionError(f"Failed to delete message {message_id}: {e}", email=session.email) from e

        logger.info(f"Deleted message {message_id} for {session.email}")
        return True
