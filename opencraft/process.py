"""Supervision of the single game process: spawn, stream output, wait, stop."""
import asyncio
import logging
import pathlib
from typing import Callable, List, Optional, Union

from .errors import AlreadyRunning, ProcessStartFailure

log = logging.getLogger(__name__)

OutputSink = Callable[[str], None]
DEFAULT_GRACE_SECONDS = 5.0


async def read_line(stream: asyncio.StreamReader) -> bytes:
    """
    Next line including its newline, or the trailing partial line at EOF.
    Lines longer than the stream limit are read in pieces and joined.
    """
    parts = []
    while True:
        try:
            parts.append(await stream.readuntil(b'\n'))
            break
        except asyncio.IncompleteReadError as e:
            parts.append(e.partial)
            break
        except asyncio.LimitOverrunError as e:
            parts.append(await stream.read(max(e.consumed, 1)))
    return b''.join(parts)


class ProcessSupervisor:
    """
    Idle -> Running -> Idle. At most one process is alive per supervisor and
    every change of the current process handle happens under one lock.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._process: Optional[asyncio.subprocess.Process] = None
        self._reader: Optional[asyncio.Task] = None

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process is not None else None

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode if self._process is not None else None

    def _alive(self) -> bool:
        return self._process is not None and self._process.returncode is None

    def is_running(self) -> bool:
        """Non-blocking liveness check."""
        return self._alive()

    async def start(self, command: List[str], output_sink: Optional[OutputSink] = None,
                    cwd: Optional[Union[str, pathlib.Path]] = None) -> int:
        """Spawns command with stderr merged into stdout. Returns the pid."""
        async with self._lock:
            if self._alive():
                raise AlreadyRunning(f"A process is already running (PID: {self._process.pid})")
            try:
                process = await asyncio.create_subprocess_exec(
                    *command,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.STDOUT,
                    cwd=str(cwd) if cwd is not None else None,
                )
            except OSError as e:
                raise ProcessStartFailure(command, e) from e

            self._process = process
            self._reader = asyncio.create_task(self._forward_output(process, output_sink))
            log.info(f"Process started (PID: {process.pid})")
            return process.pid

    async def _forward_output(self, process: asyncio.subprocess.Process, sink: Optional[OutputSink]) -> None:
        while True:
            line = await read_line(process.stdout)
            if not line:
                break
            text = line.decode('utf-8', errors='replace').rstrip('\r\n')
            if sink is not None:
                try:
                    sink(text)
                except Exception:
                    log.exception("Output sink raised; continuing to drain process output")
            else:
                log.info(text)

    async def wait(self) -> Optional[int]:
        """Waits for the current process to exit and its output to drain."""
        process, reader = self._process, self._reader
        if process is None:
            return None
        return_code = await process.wait()
        if reader is not None:
            await reader
        log.info(f"Process exited with code {return_code}.")
        return return_code

    async def stop(self, grace: float = DEFAULT_GRACE_SECONDS) -> Optional[int]:
        """Terminates, waits up to grace seconds, then kills. Returns once the process is dead."""
        async with self._lock:
            process = self._process
            if process is None or process.returncode is not None:
                return self.returncode
            log.info(f"Stopping process {process.pid}...")
            try:
                process.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(process.wait(), timeout=grace)
            except asyncio.TimeoutError:
                log.warning(f"Process {process.pid} did not exit within {grace}s; killing it")
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()
            if self._reader is not None:
                await self._reader
            return process.returncode

    def monitor(self, on_exit: Callable[[Optional[int]], None]) -> asyncio.Task:
        """
        Waits for exit in a background task and reports the exit code.
        The task may be cancelled; cancelling it leaves the process alone.
        """
        async def _watch():
            on_exit(await self.wait())

        return asyncio.create_task(_watch())
