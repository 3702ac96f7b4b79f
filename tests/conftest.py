from __future__ import annotations

from pathlib import Path

import pytest

from tests.fakes import FIXTURE_SRC, FakeDocker


@pytest.fixture
def fake_docker() -> FakeDocker:
    return FakeDocker()


@pytest.fixture
def source_tree() -> Path:
    return FIXTURE_SRC
