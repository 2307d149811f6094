"""
Pytest configuration and fixtures.
Adds the repo root to sys.path so tests can import swapcache and tests.fakes
without an editable install.
"""

import sys
from pathlib import Path

import pytest
import pytest_asyncio

repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from tests.fakes import FakeClock, build_stack, settle  # noqa: E402


@pytest_asyncio.fixture
async def stack():
    s = build_stack()
    yield s
    s.preloader.scheduler.cancel()
    await settle()


@pytest.fixture
def clock():
    return FakeClock()
