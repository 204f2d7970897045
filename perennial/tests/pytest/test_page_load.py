"""Tests for the throwaway static server and headless page loads."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

import pytest
import requests

from perennial.common import page_load as page_load_module
from perennial.common.page_load import PageLoadError, page_load, with_server


@pytest.mark.evergreen
class TestWithServer:
    """with_server serves a directory for the duration of the block."""

    def test_serves_files(self, tmp_path: Path) -> None:
        (tmp_path / "molarity_en.html").write_text("<html>molarity</html>")
        with with_server(tmp_path) as port:
            response = requests.get(f"http://localhost:{port}/molarity_en.html", timeout=5)
        assert response.status_code == 200
        assert "molarity" in response.text

    def test_missing_file_is_404(self, tmp_path: Path) -> None:
        with with_server(tmp_path) as port:
            assert requests.get(f"http://localhost:{port}/nope.html", timeout=5).status_code == 404

    def test_shut_down_after_error(self, tmp_path: Path) -> None:
        with pytest.raises(RuntimeError):
            with with_server(tmp_path) as port:
                raise RuntimeError("boom")
        with pytest.raises(requests.ConnectionError):
            requests.get(f"http://localhost:{port}/", timeout=1)


# =============================================================================
# Fake Browser
# =============================================================================


class FakeResponse:
    def __init__(self, status: int, url: str):
        self.status = status
        self.url = url


class FakePage:
    def __init__(self, script: Callable[["FakePage"], None]):
        self.handlers: dict[str, Callable[[Any], None]] = {}
        self.script = script
        self.visited: Optional[str] = None

    def on(self, event: str, handler: Callable[[Any], None]) -> None:
        self.handlers[event] = handler

    def goto(self, url: str, timeout: int, wait_until: str) -> None:
        self.visited = url
        self.script(self)

    def wait_for_timeout(self, ms: int) -> None:
        pass


class FakeBrowser:
    def __init__(self, page: FakePage):
        self.page = page
        self.closed = False

    def new_page(self) -> FakePage:
        return self.page

    def close(self) -> None:
        self.closed = True


class FakeBrowserType:
    def __init__(self, browser: FakeBrowser):
        self.browser = browser

    def launch(self, headless: bool) -> FakeBrowser:
        return self.browser


@pytest.fixture
def fake_browser(monkeypatch: pytest.MonkeyPatch):
    """Install a scripted browser; returns a function taking the page script."""

    def install(script: Callable[[FakePage], None]) -> FakeBrowser:
        browser = FakeBrowser(FakePage(script))

        class FakePlaywright:
            firefox = FakeBrowserType(browser)

        @contextmanager
        def fake_sync_playwright() -> Iterator[FakePlaywright]:
            yield FakePlaywright()

        monkeypatch.setattr(page_load_module, "sync_playwright", fake_sync_playwright)
        return browser

    return install


@pytest.mark.evergreen
class TestPageLoad:
    """page_load collects errors reported by the browser."""

    def test_clean_load(self, fake_browser) -> None:
        browser = fake_browser(lambda page: page.handlers["response"](FakeResponse(200, "http://x/sim.html")))
        page_load("http://x/sim.html", wait_after_load=0)
        assert browser.page.visited == "http://x/sim.html"
        assert browser.closed

    def test_page_error(self, fake_browser) -> None:
        fake_browser(lambda page: page.handlers["pageerror"]("TypeError: x is undefined"))
        with pytest.raises(PageLoadError, match="x is undefined"):
            page_load("http://x/sim.html", wait_after_load=0)

    def test_missing_strings_file_is_ignored(self, fake_browser) -> None:
        def load(page: FakePage) -> None:
            page.handlers["response"](FakeResponse(200, "http://x/sim.html"))
            page.handlers["response"](FakeResponse(404, "http://x/babel/molarity/molarity-strings_es.json"))

        browser = fake_browser(load)
        page_load("http://x/sim.html", wait_after_load=0)
        assert browser.closed

    def test_failed_dependency_is_logged(
        self, fake_browser, capsys: pytest.CaptureFixture[str]
    ) -> None:
        fake_browser(lambda page: page.handlers["response"](FakeResponse(500, "http://x/sherpa/lib/lodash.js")))
        page_load("http://x/sim.html", wait_after_load=0)
        out = capsys.readouterr().out
        assert "status 500" in out
        assert "http://x/sherpa/lib/lodash.js" in out

    def test_failed_document(self, fake_browser) -> None:
        fake_browser(lambda page: page.handlers["response"](FakeResponse(404, "http://x/sim.html")))
        with pytest.raises(PageLoadError, match="could not load http://x/sim.html, status 404"):
            page_load("http://x/sim.html", wait_after_load=0)

    def test_browser_error_is_wrapped(self, fake_browser) -> None:
        def timeout(page: FakePage) -> None:
            raise page_load_module.PlaywrightError("Timeout 40000ms exceeded")

        browser = fake_browser(timeout)
        with pytest.raises(PageLoadError, match="Timeout"):
            page_load("http://x/sim.html", wait_after_load=0)
        assert browser.closed
