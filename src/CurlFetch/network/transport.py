# === NAVMAP v1 ===
# {
#   "module": "CurlFetch.network.transport",
#   "purpose": "Spawn and supervise the transport process for buffered and streaming requests",
#   "sections": [
#     {"id": "transportinvoker", "name": "TransportInvoker", "anchor": "class-transportinvoker", "kind": "class"},
#     {"id": "transportstream", "name": "TransportStream", "anchor": "class-transportstream", "kind": "class"},
#     {"id": "subprocessinvoker", "name": "SubprocessInvoker", "anchor": "class-subprocessinvoker", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Transport invocation.

One request is one process. :class:`SubprocessInvoker` spawns the binary
with the argument vector produced by the command builder, writes the
request payload (if any) to its stdin, captures stdout and stderr
separately, and turns its exit into either raw output bytes or a
:class:`~CurlFetch.errors.TransportError`.

Cancellation is cooperative: a token that is already cancelled prevents
the spawn entirely; a token cancelled later kills the process and the call
raises :class:`~CurlFetch.errors.AbortedError`, even if the output had
already been read in full.

Streaming requests return a :class:`TransportStream` as soon as the
process is running. Its stderr is drained in the background into a
bounded ring buffer that only surfaces when the stream ends in failure.

Failures are never retried here; the transport owns its own timeouts.
"""

from __future__ import annotations

import asyncio
import logging
import re
import subprocess
from typing import Any, Optional, Protocol, Sequence

from CurlFetch.cancellation import CancellationToken
from CurlFetch.errors import AbortedError, TransportError
from CurlFetch.network.policy import STDERR_RING_BYTES, STREAM_CHUNK_SIZE

logger = logging.getLogger(__name__)

_TOOL_PREFIX = re.compile(r"^[\w.-]+:\s*\(\d+\)\s*")


def clean_error_message(stderr: bytes, exit_code: Optional[int]) -> str:
    """Return the transport's diagnostic without its ``tool: (N)`` prefix.

    Example:
        >>> clean_error_message(b"curl: (6) Could not resolve host: nowhere\\n", 6)
        'Could not resolve host: nowhere'
    """
    text = stderr.decode("utf-8", errors="replace").strip()
    text = _TOOL_PREFIX.sub("", text)
    return text or f"Transport exited with code {exit_code}"


class TransportInvoker(Protocol):
    """Narrow interface the orchestrator uses to run a command."""

    async def invoke(
        self,
        argv: Sequence[str],
        *,
        input: Optional[bytes] = None,
        cancel: Optional[CancellationToken] = None,
        request: Optional[Any] = None,
    ) -> bytes:
        """Run ``argv`` with ``input`` on stdin to completion and return its stdout."""
        ...

    async def open_stream(
        self,
        argv: Sequence[str],
        *,
        input: Optional[bytes] = None,
        cancel: Optional[CancellationToken] = None,
        request: Optional[Any] = None,
    ) -> "ByteStream":
        """Start ``argv`` and return its stdout as an incremental stream."""
        ...


class ByteStream(Protocol):
    """Incremental byte source consumed by the streaming frame parser."""

    async def read(self, size: int = STREAM_CHUNK_SIZE) -> bytes:
        """Return up to ``size`` bytes; ``b""`` signals a clean end of stream."""
        ...

    async def aclose(self) -> None:
        ...


async def _terminate(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await process.wait()


async def _discard(task: "asyncio.Future[None]") -> None:
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


class TransportStream:
    """Stdout of a running transport process, read incrementally.

    Reading past the end waits for the process and raises
    :class:`~CurlFetch.errors.TransportError` on a non-zero exit, carrying
    the tail of stderr. Cancelling the token kills the process; the next
    read raises :class:`~CurlFetch.errors.AbortedError`. A request payload
    is written to stdin in the background while stdout is being read.
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        *,
        input: Optional[bytes] = None,
        cancel: Optional[CancellationToken] = None,
        request: Optional[Any] = None,
    ) -> None:
        self._process = process
        self._cancel = cancel
        self._request = request
        self._stderr = bytearray()
        self._closed = False
        self._loop = asyncio.get_running_loop()
        self._stderr_task = asyncio.ensure_future(self._drain_stderr())
        self._stdin_task = asyncio.ensure_future(self._feed_stdin(input))
        self._remove_callback = (
            cancel.add_callback(self._on_cancel) if cancel is not None else (lambda: None)
        )

    @property
    def stderr(self) -> bytes:
        """Most recent stderr output, at most ``STDERR_RING_BYTES`` long."""
        return bytes(self._stderr)

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode

    def _on_cancel(self) -> None:
        self._loop.call_soon_threadsafe(self._kill)

    def _kill(self) -> None:
        if self._process.returncode is None:
            try:
                self._process.kill()
            except ProcessLookupError:
                pass

    async def _feed_stdin(self, payload: Optional[bytes]) -> None:
        stdin = self._process.stdin
        if stdin is None:
            return
        try:
            if payload:
                stdin.write(payload)
                await stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            logger.debug("Transport stopped reading its payload", extra={"error": str(exc)})
        finally:
            stdin.close()

    async def _drain_stderr(self) -> None:
        stderr = self._process.stderr
        if stderr is None:
            return
        while True:
            chunk = await stderr.read(STREAM_CHUNK_SIZE)
            if not chunk:
                return
            self._stderr += chunk
            overflow = len(self._stderr) - STDERR_RING_BYTES
            if overflow > 0:
                del self._stderr[:overflow]

    def _check_cancelled(self) -> None:
        if self._cancel is not None and self._cancel.is_cancelled():
            raise AbortedError(request=self._request)

    async def read(self, size: int = STREAM_CHUNK_SIZE) -> bytes:
        stdout = self._process.stdout
        if self._closed or stdout is None:
            return b""
        self._check_cancelled()
        try:
            chunk = await stdout.read(size)
        except BaseException:
            await self.aclose()
            raise
        if self._cancel is not None and self._cancel.is_cancelled():
            await self.aclose()
            raise AbortedError(request=self._request)
        if chunk:
            return chunk
        await self._finish()
        return b""

    async def _finish(self) -> None:
        returncode = await self._process.wait()
        await self._stdin_task
        await self._stderr_task
        self._release()
        if returncode != 0:
            message = clean_error_message(self.stderr, returncode)
            logger.debug(
                "Streaming transport failed",
                extra={"exit_code": returncode, "error": message},
            )
            raise TransportError(message, exit_code=returncode, request=self._request)

    def _release(self) -> None:
        if not self._closed:
            self._closed = True
            self._remove_callback()

    async def aclose(self) -> None:
        """Kill the process if it is still running and release resources."""
        if self._closed and self._process.returncode is not None:
            return
        await _terminate(self._process)
        await _discard(self._stdin_task)
        await _discard(self._stderr_task)
        self._release()


class SubprocessInvoker:
    """Run the transport binary as a child process per request."""

    async def _spawn(
        self,
        argv: Sequence[str],
        request: Optional[Any],
        *,
        with_stdin: bool = False,
    ) -> asyncio.subprocess.Process:
        logger.debug(
            "Spawning transport",
            extra={"binary": argv[0] if argv else None, "arg_count": len(argv)},
        )
        try:
            return await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE if with_stdin else subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (OSError, ValueError) as exc:
            raise TransportError(
                f"Failed to start transport {argv[0]!r}: {exc}",
                exit_code=None,
                request=request,
            ) from exc

    async def invoke(
        self,
        argv: Sequence[str],
        *,
        input: Optional[bytes] = None,
        cancel: Optional[CancellationToken] = None,
        request: Optional[Any] = None,
    ) -> bytes:
        """Run ``argv`` to completion, writing ``input`` to its stdin.

        Returns:
            Everything the process wrote to stdout.

        Raises:
            AbortedError: If ``cancel`` was or becomes cancelled.
            TransportError: If the process cannot start or exits non-zero.
        """
        if cancel is not None and cancel.is_cancelled():
            raise AbortedError(request=request)

        process = await self._spawn(argv, request, with_stdin=input is not None)
        communicate = asyncio.ensure_future(process.communicate(input))
        try:
            if cancel is None:
                stdout, stderr = await communicate
            else:
                waiter = asyncio.ensure_future(cancel.wait())
                try:
                    await asyncio.wait(
                        {communicate, waiter},
                        return_when=asyncio.FIRST_COMPLETED,
                    )
                finally:
                    waiter.cancel()
                if cancel.is_cancelled():
                    raise AbortedError(request=request)
                stdout, stderr = communicate.result()
        except BaseException:
            communicate.cancel()
            await _terminate(process)
            raise

        if process.returncode != 0:
            message = clean_error_message(stderr, process.returncode)
            logger.debug(
                "Transport failed",
                extra={"exit_code": process.returncode, "error": message},
            )
            raise TransportError(message, exit_code=process.returncode, request=request)
        return stdout

    async def open_stream(
        self,
        argv: Sequence[str],
        *,
        input: Optional[bytes] = None,
        cancel: Optional[CancellationToken] = None,
        request: Optional[Any] = None,
    ) -> TransportStream:
        """Start ``argv`` and return its stdout without waiting for exit."""
        if cancel is not None and cancel.is_cancelled():
            raise AbortedError(request=request)
        process = await self._spawn(argv, request, with_stdin=input is not None)
        return TransportStream(process, input=input, cancel=cancel, request=request)


__all__ = [
    "ByteStream",
    "SubprocessInvoker",
    "TransportInvoker",
    "TransportStream",
    "clean_error_message",
]
