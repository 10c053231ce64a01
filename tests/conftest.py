import shlex
import sys
import textwrap

import pytest
from web_fetch.core.config import settings
from web_fetch.fetch import extractor

_TOUCHED_SETTINGS = (
    "PROCESS_GRACE_SECONDS",
    "EXTRACTOR_COMMAND",
    "ANSWER_COMMAND",
    "ANSWER_MODEL",
    "ANSWER_THINKING_LEVEL",
    "BROWSER_EXECUTABLE_PATH",
    "CONTENT_SIZE_THRESHOLD",
)

@pytest.fixture(autouse=True)
def setup_test_environment():
    """Reset extractor runner detection and restore settings changed by a test"""
    original = {name: getattr(settings, name) for name in _TOUCHED_SETTINGS}
    extractor._detected_runner = None
    extractor._detection_done = False

    yield

    for name, value in original.items():
        setattr(settings, name, value)
    extractor._detected_runner = None
    extractor._detection_done = False

@pytest.fixture
def python_script(tmp_path):
    """Write a throwaway Python script and return its path"""
    counter = {"n": 0}

    def write(source: str) -> str:
        counter["n"] += 1
        path = tmp_path / f"tool_{counter['n']}.py"
        path.write_text(textwrap.dedent(source), encoding="utf-8")
        return str(path)

    return write

@pytest.fixture
def python_command():
    """Build a shell-style command line running a script with the current interpreter"""
    def build(script_path: str) -> str:
        return f"{shlex.quote(sys.executable)} {shlex.quote(script_path)}"

    return build
