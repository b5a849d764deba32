import os
import tempfile

import pytest

os.environ.setdefault("PAYMEE_DATA_DIR", tempfile.mkdtemp(prefix="paymee-test-"))
os.environ["PAYMEE_TIMEZONE"] = "Africa/Lagos"

from hooks import fetch_cache  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_fetch_cache():
    fetch_cache.clear()
    yield
    fetch_cache.clear()
