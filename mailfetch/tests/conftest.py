"""
Shared fixtures for mailfetch tests.

IMAP servers are simulated with MagicMock clients; HTTP endpoints by
patching httpx.Client methods.
"""
from datetime import datetime, timezone, timedelta
from unittest.mock import MagicMock

import pytest

from mailfetch.core.accounts.models import Account, AuthMode
from mailfetch.core.email.imap_session import MailboxFolder, Session


def build_raw_email(uid: int, subject: str = None, body: str = None) -> bytes:
    subject = subject or f"Message {uid}"
    body = body or f"Body of message {uid}"
    return (
        f"From: Sender {uid} <sender{uid}@example.com>\r\n"
        f"To: Me <me@example.com>\r\n"
        f"Subject: {subject}\r\n"
        f"Message-ID: <msg{uid}@example.com>\r\n"
        f"Content-Type: text/plain; charset=utf-8\r\n"
        f"\r\n"
        f"{body}\r\n"
    ).encode()


class FakeMailbox:
    """
    In-memory IMAP folder behind a MagicMock client.

    search() lists every uid; fetch() answers header and body requests the
    way imapclient does (dict keyed by uid, byte-string item names).
    """

    def __init__(self, count: int = 0):
        self.messages = {uid: build_raw_email(uid) for uid in range(1, count + 1)}
        self.flags = {uid: () for uid in self.messages}
        self.body_fetches = []
        self.client = MagicMock()
        self.client.search.side_effect = self.search
        self.client.fetch.side_effect = self.fetch

    def add(self, uid: int, raw: bytes, flags=()):
        self.messages[uid] = raw
        self.flags[uid] = flags

    def search(self, criteria=None):
        return sorted(self.messages)

    def fetch(self, uids, data):
        response = {}
        for uid in uids:
            if uid not in self.messages:
                continue
            raw = self.messages[uid]
            if 'BODY.PEEK[]' in data:
                self.body_fetches.append(uid)
                response[uid] = {b'BODY[]': raw, b'SEQ': uid}
            else:
                header = raw.split(b"\r\n\r\n", 1)[0] + b"\r\n\r\n"
                response[uid] = {
                    b'FLAGS': self.flags[uid],
                    b'INTERNALDATE': datetime(2024, 1, 1, 12, 0) + timedelta(minutes=uid),
                    b'BODY[HEADER]': header,
                    b'SEQ': uid,
                }
        return response


@pytest.fixture
def mock_imap_client():
    """Mock IMAP client for testing"""
    mock = MagicMock()
    mock.search.return_value = []
    mock.fetch.return_value = {}
    return mock


@pytest.fixture
def fake_mailbox():
    """Factory for FakeMailbox instances"""
    return FakeMailbox


@pytest.fixture
def make_session():
    """Build an open Session around a client without connecting"""
    def _make(client, email="user@example.com", mode=AuthMode.IMAP_BASIC, keep_alive=True):
        folder = MailboxFolder(client, "INBOX", readonly=True)
        folder.open()
        return Session(email, client, folder, mode, keep_alive=keep_alive)
    return _make


@pytest.fixture
def graph_account():
    """OAuth account with a valid Graph token"""
    return Account(
        email="user@outlook.com",
        client_id="client-123",
        refresh_token="refresh-abc",
        access_token="access-xyz",
        expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        mode=AuthMode.GRAPH,
    )


@pytest.fixture
def basic_account():
    """Password account"""
    return Account(email="user@example.com", password="secret")


@pytest.fixture
def raw_email_simple():
    """Plain text email"""
    return b"""From: sender@example.com
To: recipient@example.com
Subject: Test Email
Message-ID: <test@example.com>
Date: Mon, 1 Jan 2024 12:00:00 +0000
Content-Type: text/plain; charset=utf-8

This is a test email body.
"""


@pytest.fixture
def raw_email_html():
    """HTML email with a plain-text alternative"""
    return b"""From: sender@example.com
To: recipient@example.com
Subject: HTML Test
Message-ID: <html@example.com>
MIME-Version: 1.0
Content-Type: multipart/alternative; boundary="boundary123"

--boundary123
Content-Type: text/plain; charset=utf-8

Plain text version

--boundary123
Content-Type: text/html; charset=utf-8

<html><body><p>HTML version</p></body></html>

--boundary123--
"""
