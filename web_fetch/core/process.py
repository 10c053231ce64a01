"""
Lifecycle management for external processes.

Every process-bearing stage of the pipeline spawns through :func:`spawn` and
registers the handle's :meth:`ProcessHandle.cancel` on the invocation's
:class:`CancelToken`, so a single cancellation reaches whichever process is
active at the time.
"""

import asyncio
import os
import signal
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence, Union

from web_fetch.core.config import settings
from web_fetch.core.errors import OperationAborted, ProcessLaunchFailure

_READ_CHUNK_BYTES = 64 * 1024
_SIGKILL = getattr(signal, "SIGKILL", signal.SIGTERM)


class CancelToken:
    """One cancellation signal per invocation, fanned out to registered handlers."""

    def __init__(self):
        self._event = asyncio.Event()
        self._handlers: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        if self._event.is_set():
            return
        self._event.set()
        handlers, self._handlers = self._handlers, []
        for handler in handlers:
            handler()

    def register(self, handler: Callable[[], None]) -> Callable[[], None]:
        """Run ``handler`` when the token fires. Returns a callable that deregisters it."""
        if self.cancelled:
            handler()
            return lambda: None

        self._handlers.append(handler)

        def deregister() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return deregister

    async def wait(self) -> None:
        await self._event.wait()

    async def guard(self, awaitable: Awaitable):
        """
        Await ``awaitable`` unless the token fires first.

        If the token fires, the awaitable is cancelled and ``OperationAborted``
        is raised, even when the awaitable happened to finish at the same time.
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise OperationAborted()

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if self.cancelled:
            if not task.done():
                task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise OperationAborted()
        return task.result()


@dataclass
class ProcessOutput:
    returncode: int
    stdout: bytes
    stderr: bytes

    @property
    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")


class ProcessHandle:
    def __init__(self, process: asyncio.subprocess.Process, input_data: Optional[bytes] = None, label: str = ""):
        self.process = process
        self.label = label
        self._input = input_data
        self._kill_timer: Optional[asyncio.TimerHandle] = None

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self.process.returncode

    async def output(self, on_stdout: Optional[Callable[[bytes], None]] = None) -> ProcessOutput:
        """
        Feed the input, collect stdout/stderr until the process exits.

        ``on_stdout`` receives each stdout chunk as it arrives; the full output
        is still buffered and returned.
        """
        stdout, stderr, _ = await asyncio.gather(
            _drain(self.process.stdout, on_stdout),
            _drain(self.process.stderr),
            self._feed_input(),
        )
        returncode = await self.process.wait()
        return ProcessOutput(returncode, stdout, stderr)

    async def _feed_input(self) -> None:
        stdin = self.process.stdin
        if stdin is None:
            return
        try:
            if self._input:
                stdin.write(self._input)
                await stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            # exited before reading everything; the exit code tells the rest
            print(f"PROCESS {self.label or self.pid} closed its input early")
        finally:
            stdin.close()

    def cancel(self) -> None:
        """Send SIGTERM now and SIGKILL after the grace period if still running. Idempotent."""
        if self.process.returncode is not None or self._kill_timer is not None:
            return
        self._signal(signal.SIGTERM)
        loop = asyncio.get_running_loop()
        self._kill_timer = loop.call_later(settings.PROCESS_GRACE_SECONDS, self._kill)

    async def terminate(self) -> int:
        """Awaitable form of :meth:`cancel`: returns once the process is gone."""
        if self.process.returncode is None:
            self._signal(signal.SIGTERM)
            try:
                await asyncio.wait_for(self.process.wait(), settings.PROCESS_GRACE_SECONDS)
            except asyncio.TimeoutError:
                self._signal(_SIGKILL)
        return await self.process.wait()

    def _kill(self) -> None:
        if self.process.returncode is None:
            print(f"PROCESS {self.label or self.pid} ignored SIGTERM, killing")
            self._signal(_SIGKILL)

    def _signal(self, sig: int) -> None:
        try:
            if os.name == "posix":
                # spawned as a session leader, so this reaches runner grandchildren too
                os.killpg(self.process.pid, sig)
            elif sig == signal.SIGTERM:
                self.process.terminate()
            else:
                self.process.kill()
        except ProcessLookupError:
            pass


async def spawn(command: str, args: Sequence[str] = (), input: Union[bytes, str, None] = None) -> ProcessHandle:
    """Start ``command`` with pipes for stdout/stderr (and stdin when ``input`` is given)."""
    if isinstance(input, str):
        input = input.encode("utf-8")
    try:
        process = await asyncio.create_subprocess_exec(
            command,
            *args,
            stdin=asyncio.subprocess.PIPE if input is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=os.name == "posix",
        )
    except (OSError, ValueError) as e:
        raise ProcessLaunchFailure(f"Failed to run {command}: {e}") from e
    return ProcessHandle(process, input, label=os.path.basename(command))


async def _drain(stream: Optional[asyncio.StreamReader], on_chunk: Optional[Callable[[bytes], None]] = None) -> bytes:
    if stream is None:
        return b""
    chunks = []
    while True:
        chunk = await stream.read(_READ_CHUNK_BYTES)
        if not chunk:
            break
        chunks.append(chunk)
        if on_chunk is not None:
            on_chunk(chunk)
    return b"".join(chunks)
