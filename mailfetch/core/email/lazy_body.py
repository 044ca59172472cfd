"""
Deferred message body loading.

IMAP bodies are only downloaded and parsed when first read. The load runs
at most once per message, even when the UI thread and a worker read the
body at the same time, and a failed load is never retried.
"""
from enum import Enum
from typing import Callable, Optional
import logging
import threading

from mailfetch.core.errors import FolderClosedError
from .content import CONTENT_HTML, CONTENT_TEXT, ExtractedContent

logger = logging.getLogger(__name__)

LOADING_CONTENT = ExtractedContent(
    body="Loading content...",
    content_type=CONTENT_TEXT,
    preview="Click to load content...",
)

FOLDER_CLOSED_CONTENT = ExtractedContent(
    body=(
        "<p><i>Cannot load content - the email connection was closed. "
        "Please refresh or select a different account.</i></p>"
    ),
    content_type=CONTENT_HTML,
    preview="Content unavailable - folder closed",
)

ERROR_CONTENT = ExtractedContent(
    body="Error retrieving message content",
    content_type=CONTENT_TEXT,
    preview="Error retrieving message content",
)


class LoadState(str, Enum):
    UNLOADED = "unloaded"
    LOADED = "loaded"
    FAILED = "failed"


class LazyBody:
    """
    Single-load guarded cache for a message's content.

    The loader usually closes over a provider message handle; it is dropped
    after the first load attempt since IMAP handles die with their folder.
    """

    def __init__(self, loader: Optional[Callable[[], ExtractedContent]], label: str = ""):
        self._loader = loader
        self._label = label
        self._lock = threading.Lock()
        self._content = LOADING_CONTENT
        self._state = LoadState.UNLOADED if loader is not None else LoadState.LOADED

    @classmethod
    def loaded(cls, content: ExtractedContent) -> "LazyBody":
        """Already-materialized content (Graph messages)"""
        body = cls(None)
        body._content = content
        return body

    @property
    def state(self) -> LoadState:
        return self._state

    @property
    def is_loaded(self) -> bool:
        return self._state is not LoadState.UNLOADED

    def ensure_loaded(self) -> ExtractedContent:
        """Run the loader once; every later call returns the cached content"""
        if self._state is not LoadState.UNLOADED:
            return self._content

        with self._lock:
            if self._state is LoadState.UNLOADED:
                self._load()
        return self._content

    def _load(self):
        loader, self._loader = self._loader, None
        try:
            logger.debug(f"Loading body: {self._label}")
            content = loader()
            self._content = content
            self._state = LoadState.LOADED
        except FolderClosedError as e:
            logger.warning(f"Folder closed, cannot load message content: {e}")
            self._content = FOLDER_CLOSED_CONTENT
            self._state = LoadState.FAILED
        except Exception as e:
            logger.error(f"Error retrieving message content for {self._label!r}: {e}", exc_info=True)
            self._content = ERROR_CONTENT
            self._state = LoadState.FAILED

    @property
    def body(self) -> str:
        return self.ensure_loaded().body

    @property
    def content_type(self) -> str:
        return self.ensure_loaded().content_type

    @property
    def preview(self) -> str:
        """Current preview; does not trigger a load"""
        return self._content.preview
