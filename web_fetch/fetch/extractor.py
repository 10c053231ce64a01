"""
Boilerplate removal through the trafilatura command line tool.

trafilatura runs in an ephemeral environment through whichever Python tool
runner is installed, so the service itself never imports it.
"""

import asyncio
import shlex
from dataclasses import dataclass
from typing import Optional, Tuple

from web_fetch.core.config import settings
from web_fetch.core.errors import OperationAborted, ProcessLaunchFailure
from web_fetch.core.outcomes import Extracted, ExtractionOutcome, Failed, FailureKind
from web_fetch.core.process import CancelToken, spawn

TRAFILATURA_FLAGS = ("--markdown", "--formatting")


@dataclass(frozen=True)
class ToolRunner:
    command: str
    args: Tuple[str, ...]
    label: str


# Priority order
TOOL_RUNNERS = [
    ToolRunner("uvx", ("trafilatura",) + TRAFILATURA_FLAGS, "uvx (uv)"),
    ToolRunner("uv", ("run", "--with", "trafilatura", "trafilatura") + TRAFILATURA_FLAGS, "uv run"),
    ToolRunner("pipx", ("run", "trafilatura") + TRAFILATURA_FLAGS, "pipx"),
    ToolRunner("pip-run", ("trafilatura", "--", "-m", "trafilatura") + TRAFILATURA_FLAGS, "pip-run"),
]

NO_RUNNER_MESSAGE = "No Python tool runner found. Install one of: uv (recommended), pipx, or pip-run."

_detected_runner: Optional[ToolRunner] = None
_detection_done = False


async def detect_runner(force: bool = False) -> Optional[ToolRunner]:
    """Pick the extraction command once: EXTRACTOR_COMMAND if set, else the first runner answering --version."""
    global _detected_runner, _detection_done
    if _detection_done and not force:
        return _detected_runner

    runner = None
    if settings.EXTRACTOR_COMMAND:
        parts = shlex.split(settings.EXTRACTOR_COMMAND)
        runner = ToolRunner(parts[0], tuple(parts[1:]) + TRAFILATURA_FLAGS, "configured")
    else:
        for candidate in TOOL_RUNNERS:
            if await _probe(candidate.command):
                runner = candidate
                break

    _detected_runner = runner
    _detection_done = True
    if runner:
        print(f"EXTRACTOR RUNNER: {runner.label} ({runner.command})")
    else:
        print(f"EXTRACTOR RUNNER MISSING: {NO_RUNNER_MESSAGE}")
    return runner


async def _probe(command: str) -> bool:
    try:
        handle = await spawn(command, ["--version"])
    except ProcessLaunchFailure:
        return False
    try:
        result = await asyncio.wait_for(handle.output(), settings.RUNNER_PROBE_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        return False
    finally:
        handle.cancel()
    return result.returncode == 0


async def extract_content(markup: str, token: CancelToken) -> ExtractionOutcome:
    """
    Convert rendered HTML into markdown text.

    The markup is written to the tool's stdin in full; stdout is collected
    until exit. Nonzero exit and empty output are failures; cancellation
    terminates the tool and discards any partial output.
    """
    if token.cancelled:
        return Failed.aborted()

    runner = await detect_runner()
    if runner is None:
        return Failed(FailureKind.LAUNCH, NO_RUNNER_MESSAGE)
    if token.cancelled:
        return Failed.aborted()

    try:
        handle = await spawn(runner.command, runner.args, input=markup)
    except ProcessLaunchFailure as e:
        return Failed(FailureKind.LAUNCH, f"Failed to run {runner.label} trafilatura: {e}")

    deregister = token.register(handle.cancel)
    try:
        result = await token.guard(handle.output())
    except OperationAborted:
        print("EXTRACTION ABORTED")
        return Failed.aborted()
    finally:
        deregister()
        handle.cancel()

    stderr = result.stderr_text.strip()
    if result.returncode != 0:
        return Failed(
            FailureKind.EXIT,
            f"Trafilatura extraction failed (exit code {result.returncode}): {stderr or '(no error output)'}",
            diagnostic=stderr,
        )

    text = result.stdout_text.strip()
    if not text:
        return Failed(
            FailureKind.EMPTY,
            "No content extracted from the page. The page may be empty or use a format that trafilatura cannot parse.",
            diagnostic=stderr,
        )
    return Extracted(text=text)
