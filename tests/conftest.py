"""
Pytest configuration and shared fixtures.
"""

from typing import List, Optional, Tuple

import pytest

from tracker.fetcher import FetchResponse
from tracker.models import Target
from tracker.state_store import FileStateStore, MemoryStateStore


ORACLE_URL = "https://www.oracle.com/security-alerts/"
ORACLE_PATTERN = r"Critical Patch Update - (\w+ \d{4})"


class FakeFetch:
    """Async fetch double returning canned documents and recording calls."""

    def __init__(self, content: str = "", status_code: int = 200, error: Optional[Exception] = None):
        self.content = content
        self.status_code = status_code
        self.error = error
        self.calls: List[Tuple[str, int, Optional[str]]] = []

    async def __call__(self, locator: str, timeout_ms: int, user_agent: Optional[str] = None) -> FetchResponse:
        self.calls.append((locator, timeout_ms, user_agent))
        if self.error is not None:
            raise self.error
        return FetchResponse(content=self.content, status_code=self.status_code, url=locator)


def oracle_page(release: str) -> str:
    """Advisory index page naming the latest release."""
    return f"""
    <html>
        <body>
            <h2>Critical Patch Updates</h2>
            <ul>
                <li><a href="/security-alerts/cpu.html">Critical Patch Update - {release}</a></li>
                <li><a href="/security-alerts/cpuold.html">Critical Patch Update - October 2023</a></li>
            </ul>
        </body>
    </html>
    """


@pytest.fixture
def sample_target():
    """Regex target tracking the latest Oracle CPU release."""
    return Target(
        id="oracle-cpu",
        name="Oracle Critical Patch Update",
        locator=ORACLE_URL,
        extraction_rule={"kind": "regex", "pattern": ORACLE_PATTERN},
        timeout_ms=5000
    )


@pytest.fixture
def json_target():
    """JSON target tracking a release version."""
    return Target(
        id="tool-release",
        locator="https://example.com/releases.json",
        extraction_rule={"kind": "json", "path": "releases.0.version"}
    )


@pytest.fixture
def memory_store():
    """Empty in-memory state store."""
    return MemoryStateStore()


@pytest.fixture
def file_store(tmp_path):
    """JSON file state store in a temporary directory."""
    return FileStateStore(tmp_path / "state")


@pytest.fixture
def make_fetch():
    """Factory for fetch doubles."""
    def factory(content: str = "", status_code: int = 200, error: Optional[Exception] = None) -> FakeFetch:
        return FakeFetch(content=content, status_code=status_code, error=error)
    return factory


@pytest.fixture(name="oracle_page")
def oracle_page_fixture():
    """Renders the advisory index page for a release."""
    return oracle_page
