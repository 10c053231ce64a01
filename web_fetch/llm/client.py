import json
from typing import List

from web_fetch.core.config import settings
from web_fetch.core.errors import OperationAborted, ProcessLaunchFailure
from web_fetch.core.outcomes import Answered, AnswerOutcome, Failed, FailureKind
from web_fetch.core.process import CancelToken, spawn


class EventStreamParser:
    """
    Incremental parser for the answerer's newline-delimited JSON events.

    Bytes are buffered until a newline arrives; each complete line is parsed
    on its own and lines that are not JSON are skipped. The text of the most
    recent assistant ``message_end`` event is kept in ``answer``.
    """

    def __init__(self):
        self._buffer = b""
        self.answer = ""
        self.events_seen = 0
        self.lines_skipped = 0

    def feed(self, chunk: bytes) -> None:
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split(b"\n")
        for line in lines:
            self._process_line(line)

    def close(self) -> None:
        """Parse whatever is left after the stream ends without a trailing newline."""
        remaining, self._buffer = self._buffer, b""
        self._process_line(remaining)

    def _process_line(self, raw: bytes) -> None:
        line = raw.decode("utf-8", errors="replace").strip()
        if not line:
            return
        try:
            event = json.loads(line)
        except json.JSONDecodeError:
            self.lines_skipped += 1
            return
        if not isinstance(event, dict):
            self.lines_skipped += 1
            return

        self.events_seen += 1
        if event.get("type") != "message_end":
            return
        message = event.get("message")
        if not isinstance(message, dict) or message.get("role") != "assistant":
            return

        texts = _text_parts(message.get("content"))
        if texts:
            self.answer = "".join(texts)


def _text_parts(content) -> List[str]:
    if isinstance(content, str):
        return [content]
    if not isinstance(content, list):
        return []
    return [
        part["text"]
        for part in content
        if isinstance(part, dict) and part.get("type") == "text" and isinstance(part.get("text"), str)
    ]


def build_prompt(content: str, instruction: str) -> str:
    return f"Web page content:\n---\n{content}\n---\n\n{instruction}"


def build_args(model: str, thinking_level: str, prompt: str) -> List[str]:
    return [
        "--mode", "json",
        "-p",
        "--no-session",
        "--no-tools",
        "--model", model,
        "--thinking", thinking_level,
        prompt,
    ]


async def run_answerer(
    content: str,
    instruction: str,
    model: str,
    thinking_level: str,
    token: CancelToken
) -> AnswerOutcome:
    """
    Ask the answering sub-process about ``content``.

    Any assistant text salvaged from the event stream counts as an answer,
    even when the process exits nonzero.
    """
    if token.cancelled:
        return Failed.aborted()

    args = build_args(model, thinking_level, build_prompt(content, instruction))
    try:
        handle = await spawn(settings.ANSWER_COMMAND, args)
    except ProcessLaunchFailure as e:
        return Failed(FailureKind.LAUNCH, f"Failed to spawn answer sub-process: {e}")

    print(f"ANSWERER STARTED: model={model} thinking={thinking_level} content_len={len(content)}")
    parser = EventStreamParser()
    deregister = token.register(handle.cancel)
    try:
        result = await token.guard(handle.output(on_stdout=parser.feed))
    except OperationAborted:
        print("ANSWERER ABORTED")
        return Failed.aborted()
    finally:
        deregister()
        handle.cancel()

    parser.close()
    if parser.lines_skipped:
        print(f"ANSWERER skipped {parser.lines_skipped} unparsable lines")

    if parser.answer:
        if result.returncode != 0:
            print(f"ANSWERER exited with code {result.returncode}, using salvaged answer")
        return Answered(text=parser.answer)

    stderr = result.stderr_text.strip()
    if result.returncode != 0:
        return Failed(
            FailureKind.EXIT,
            f"Answer sub-process failed (exit code {result.returncode}): {stderr or '(no output)'}",
            diagnostic=stderr,
        )
    return Failed(FailureKind.EMPTY, "Answer sub-process returned no response", diagnostic=stderr)
