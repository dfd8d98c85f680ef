from __future__ import annotations

import pytest

from frame_factory import build_frame


@pytest.fixture
def sample_frame() -> bytes:
    return build_frame()
