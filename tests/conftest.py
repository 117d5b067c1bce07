import logging

import pytest


@pytest.fixture(autouse=True)
def arcl_home(tmp_path, monkeypatch):
    """Point the state directory at a per-test location."""
    home = tmp_path / "arcl-state"
    monkeypatch.setenv("ARCL_HOME", str(home))
    monkeypatch.delenv("ARCL_ALLOW_FULL_REWRITES", raising=False)
    yield home
    app_logger = logging.getLogger("arcl")
    for handler in list(app_logger.handlers):
        if getattr(handler, "_arcl_handler", False):
            app_logger.removeHandler(handler)
            handler.close()


@pytest.fixture
def sample_file(tmp_path):
    """A small three-line file named foo.py."""
    path = tmp_path / "foo.py"
    path.write_bytes(b"a\nb\nc\n")
    return path


@pytest.fixture
def simple_diff():
    """Replaces line 2 of foo.py."""
    return "--- a/foo.py\n+++ b/foo.py\n@@ -2,1 +2,1 @@\n-b\n+B\n"
