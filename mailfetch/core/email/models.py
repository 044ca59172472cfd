"""
Message records returned by an inbox fetch.

Graph messages arrive with their body; IMAP messages carry a LazyBody that
downloads the body on first access.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, PrivateAttr

from .content import CONTENT_TEXT, ExtractedContent, normalize_preview
from .lazy_body import LazyBody

UNKNOWN_ADDRESS = "Unknown"
NO_SUBJECT = "No Subject"


class MessageSource(str, Enum):
    GRAPH = "graph"
    IMAP = "imap"


class MessageRecord(BaseModel):
    """One inbox message"""
    id: str = Field(..., description="Provider message id, Message-ID header or IMAP position")
    subject: str = NO_SUBJECT
    sender: str = UNKNOWN_ADDRESS
    recipient: str = UNKNOWN_ADDRESS
    received_at: Optional[datetime] = None
    source: MessageSource = MessageSource.IMAP

    _content: LazyBody = PrivateAttr(default_factory=lambda: LazyBody.loaded(
        ExtractedContent(body="", content_type=CONTENT_TEXT, preview="")
    ))

    def attach_body(self, content: LazyBody) -> "MessageRecord":
        self._content = content
        return self

    @property
    def lazy_body(self) -> LazyBody:
        return self._content

    @property
    def body(self) -> str:
        return self._content.body

    @property
    def content_type(self) -> str:
        return self._content.content_type

    @property
    def preview(self) -> str:
        return self._content.preview

    @classmethod
    def from_graph(cls, payload: Dict[str, Any]) -> "MessageRecord":
        """Build a record from a Graph API message object"""
        sender = ((payload.get("from") or {}).get("emailAddress") or {}).get("address") or UNKNOWN_ADDRESS

        recipient = UNKNOWN_ADDRESS
        recipients = payload.get("toRecipients") or []
        if recipients:
            recipient = (recipients[0].get("emailAddress") or {}).get("address") or UNKNOWN_ADDRESS

        body = payload.get("body") or {}
        content = ExtractedContent(
            body=body.get("content") or "",
            content_type=(body.get("contentType") or CONTENT_TEXT).lower(),
            preview=normalize_preview(payload.get("bodyPreview") or ""),
        )

        record = cls(
            id=payload.get("id") or "",
            subject=payload.get("subject") or NO_SUBJECT,
            sender=sender,
            recipient=recipient,
            received_at=payload.get("receivedDateTime") or None,
            source=MessageSource.GRAPH,
        )
        return record.attach_body(LazyBody.loaded(content))

    def summary(self) -> str:
        """Console block: subject, sender and preview (loads the body)"""
        self._content.ensure_loaded()
        return f"Subject: {self.subject}\nFrom: {self.sender}\nPreview: {self.preview}"

    def to_dict(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json")
        data.update(body=self.body, content_type=self.content_type, preview=self.preview)
        return data
