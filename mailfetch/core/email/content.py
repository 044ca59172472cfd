"""
Message content extraction.

Walks the MIME tree depth-first. HTML is preferred for the body; inside a
multipart/alternative the HTML branch wins over plain text. The preview is
built from the plain-text part (or from the HTML text when there is none).
"""
from dataclasses import dataclass
from email.message import Message
from typing import Optional
import logging
import re

from bs4 import BeautifulSoup

from mailfetch.core.errors import ContentExtractionError

logger = logging.getLogger(__name__)

CONTENT_HTML = "html"
CONTENT_TEXT = "text"

LINE_BREAK_MARKER = "⏎"
PREVIEW_LENGTH = 200
NO_PREVIEW = "No preview available"

_NEWLINES = re.compile(r"[\r\n]+")
_MARKER_RUN = re.compile(f"{LINE_BREAK_MARKER}+")
_LEADING_MARKERS = re.compile(f"^{LINE_BREAK_MARKER}+")
_LEADING_DASHES = re.compile(r"^-+")


@dataclass(frozen=True)
class ExtractedContent:
    """Body, content type and preview of one message"""
    body: str
    content_type: str
    preview: str


def normalize_preview(preview: str) -> str:
    """
    Flatten a preview onto one line.

    A dash separator at the start is dropped, every CR/LF run becomes a
    single marker, marker runs collapse, and leading markers are removed.
    """
    if preview.startswith("--"):
        preview = _LEADING_DASHES.sub("", preview)
    preview = _NEWLINES.sub(LINE_BREAK_MARKER, preview)
    preview = _MARKER_RUN.sub(LINE_BREAK_MARKER, preview)
    return _LEADING_MARKERS.sub("", preview)


def build_preview(text: Optional[str], length: int = PREVIEW_LENGTH) -> str:
    """Truncated, normalized preview of a plain-text body"""
    if not text:
        return NO_PREVIEW
    preview = text[:length] + "..." if len(text) > length else text
    return normalize_preview(preview)


def html_to_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    return soup.get_text("\n", strip=True)


def _content_type(part: Message) -> str:
    return part.get_content_type().lower()


def _is_attachment(part: Message) -> bool:
    return "attachment" in str(part.get("Content-Disposition", "")).lower()


def _subparts(part: Message):
    payload = part.get_payload()
    return payload if isinstance(payload, list) else []


def decode_part(part: Message) -> str:
    """Decode a leaf part's payload with its charset (utf-8 fallback)"""
    payload = part.get_payload(decode=True)
    if payload is None:
        return ""
    charset = part.get_content_charset() or "utf-8"
    try:
        return payload.decode(charset, errors="replace")
    except LookupError:
        logger.debug(f"Unknown charset {charset!r}, decoding as utf-8")
        return payload.decode("utf-8", errors="replace")


def extract_html(part: Message) -> Optional[str]:
    """First HTML body found depth-first, or None"""
    content_type = _content_type(part)

    if content_type == "text/html" and not _is_attachment(part):
        return decode_part(part)

    if part.is_multipart():
        if content_type == "multipart/alternative":
            return _html_from_alternative(part)
        for sub in _subparts(part):
            html = extract_html(sub)
            if html is not None:
                return html

    return None


def _html_from_alternative(part: Message) -> Optional[str]:
    html = None
    for sub in _subparts(part):
        sub_type = _content_type(sub)
        if sub_type == "text/html":
            return decode_part(sub)
        if sub.is_multipart():
            nested = extract_html(sub)
            if nested is not None:
                html = nested
    return html


def extract_plain_text(part: Message) -> Optional[str]:
    """First text/plain body found depth-first, or None"""
    if _content_type(part) == "text/plain" and not _is_attachment(part):
        return decode_part(part)

    if part.is_multipart():
        for sub in _subparts(part):
            text = extract_plain_text(sub)
            if text is not None:
                return text

    return None


def extract_content(message: Message) -> ExtractedContent:
    """
    Extract body, content type and preview from a parsed message.

    Raises:
        ContentExtractionError: If the MIME structure cannot be decoded
    """
    try:
        text = extract_plain_text(message)
        html = extract_html(message)
    except (AttributeError, TypeError, ValueError) as e:
        raise ContentExtractionError(f"Failed to decode message body: {e}") from e

    preview_source = text
    if not preview_source and html:
        preview_source = html_to_text(html)

    return ExtractedContent(
        body=html if html is not None else (text or ""),
        content_type=CONTENT_HTML if html is not None else CONTENT_TEXT,
        preview=build_preview(preview_source),
    )
