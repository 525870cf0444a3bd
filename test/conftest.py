import os
import sys

import pytest

# test/ directory on path so _helper is found (no package here: "test" would shadow stdlib)
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from _helper import make_context  # noqa: E402


@pytest.fixture
def ctx():
    return make_context()
