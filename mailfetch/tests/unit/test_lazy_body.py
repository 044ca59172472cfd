"""
Test deferred body loading.
"""
import threading
import time

from mailfetch.core.email.content import ExtractedContent
from mailfetch.core.email.lazy_body import (
    ERROR_CONTENT,
    FOLDER_CLOSED_CONTENT,
    LazyBody,
    LoadState,
)
from mailfetch.core.errors import FolderClosedError

CONTENT = ExtractedContent(body="<p>hello</p>", content_type="html", preview="hello")


class CountingLoader:
    """Loader that counts calls and can be slowed down or made to fail"""

    def __init__(self, result=CONTENT, error=None, delay=0.0):
        self.result = result
        self.error = error
        self.delay = delay
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


class TestLazyBody:
    """Test LazyBody state machine"""

    def test_placeholder_before_load(self):
        body = LazyBody(CountingLoader())

        assert body.state is LoadState.UNLOADED
        assert body.preview == "Click to load content..."

    def test_preview_does_not_trigger_load(self):
        loader = CountingLoader()
        body = LazyBody(loader)

        _ = body.preview
        assert loader.calls == 0

    def test_first_access_loads(self):
        loader = CountingLoader()
        body = LazyBody(loader)

        assert body.body == "<p>hello</p>"
        assert body.content_type == "html"
        assert body.preview == "hello"
        assert body.state is LoadState.LOADED

    def test_loads_exactly_once(self):
        loader = CountingLoader()
        body = LazyBody(loader)

        for _ in range(5):
            _ = body.body
            _ = body.content_type
        assert loader.calls == 1

    def test_concurrent_access_loads_once(self):
        loader = CountingLoader(delay=0.05)
        body = LazyBody(loader)
        start = threading.Barrier(8)
        results = []

        def read():
            start.wait()
            results.append(body.body)

        threads = [threading.Thread(target=read) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert loader.calls == 1
        assert results == ["<p>hello</p>"] * 8

    def test_folder_closed_placeholder(self):
        body = LazyBody(CountingLoader(error=FolderClosedError("closed")))

        assert body.body == FOLDER_CLOSED_CONTENT.body
        assert body.content_type == "html"
        assert body.preview == "Content unavailable - folder closed"
        assert body.state is LoadState.FAILED

    def test_other_error_placeholder(self):
        body = LazyBody(CountingLoader(error=RuntimeError("boom")))

        assert body.body == "Error retrieving message content"
        assert body.preview == ERROR_CONTENT.preview
        assert body.state is LoadState.FAILED

    def test_failed_load_not_retried(self):
        loader = CountingLoader(error=FolderClosedError("closed"))
        body = LazyBody(loader)

        _ = body.body
        _ = body.body
        assert loader.calls == 1

    def test_loader_released_after_load(self):
        body = LazyBody(CountingLoader())
        body.ensure_loaded()
        assert body._loader is None

    def test_loaded_content(self):
        body = LazyBody.loaded(CONTENT)
        assert body.is_loaded
        assert body.body == "<p>hello</p>"
