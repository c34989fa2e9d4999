"""External process lifecycle with incrementally captured output."""

from __future__ import annotations

import asyncio
import os
import signal
from contextlib import AsyncExitStack
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

from proxy_resync.errors import SpawnError
from proxy_resync.observability import get_logger

logger = get_logger("proxy_resync.process")

# etcd emits long JSON log lines; the asyncio default of 64 KiB is too small.
STREAM_LIMIT = 1024 * 1024


class OutputLog:
    """Append-only sequence of output lines that readers can wait on."""

    def __init__(self) -> None:
        self._lines: List[str] = []
        self._closed = False
        self._changed = asyncio.Condition()

    def __len__(self) -> int:
        return len(self._lines)

    def __getitem__(self, index: int) -> str:
        return self._lines[index]

    @property
    def closed(self) -> bool:
        return self._closed

    def snapshot(self) -> List[str]:
        return list(self._lines)

    async def append(self, line: str) -> None:
        async with self._changed:
            self._lines.append(line)
            self._changed.notify_all()

    async def close(self) -> None:
        async with self._changed:
            self._closed = True
            self._changed.notify_all()

    async def wait_beyond(self, cursor: int) -> None:
        """Block until more than ``cursor`` lines exist or the log is closed."""
        async with self._changed:
            await self._changed.wait_for(lambda: len(self._lines) > cursor or self._closed)


class ProcessHandle:
    """A running external process and its captured stdout/stderr."""

    def __init__(self, name: str, command: List[str], process: asyncio.subprocess.Process) -> None:
        self.name = name
        self.command = command
        self.output = OutputLog()
        # Lines before this index were consumed by earlier expectations.
        self.expect_cursor = 0
        self._process = process
        self._stop_lock = asyncio.Lock()
        self._stopped = False
        self._reader = asyncio.create_task(self._read_output(), name=f"{name}-output")

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode

    @property
    def is_alive(self) -> bool:
        return self._process.returncode is None

    def lines(self) -> List[str]:
        return self.output.snapshot()

    def tail(self, count: int = 20) -> List[str]:
        return self.output.snapshot()[-count:]

    async def _read_output(self) -> None:
        stream = self._process.stdout
        assert stream is not None
        try:
            while True:
                try:
                    raw = await stream.readline()
                except ValueError:
                    # The oversized line is discarded by the stream; keep reading.
                    logger.warning("Dropped output line over the stream limit", process=self.name)
                    continue
                if not raw:
                    break
                await self.output.append(raw.decode("utf-8", errors="replace").rstrip("\r\n"))
        finally:
            await self.output.close()

    def signal(self, sig: int) -> None:
        if self.is_alive:
            self._process.send_signal(sig)

    async def wait(self) -> int:
        return await self._process.wait()

    async def stop(self, grace: float = 5.0) -> Optional[int]:
        """Terminate the process, escalating to SIGKILL after ``grace`` seconds.

        Safe to call any number of times; later calls wait for the first one
        and return the same exit code.
        """
        async with self._stop_lock:
            if self._stopped:
                return self._process.returncode

            if self._process.returncode is None:
                try:
                    self._process.send_signal(signal.SIGTERM)
                except ProcessLookupError:
                    pass
                try:
                    await asyncio.wait_for(self._process.wait(), timeout=grace)
                except asyncio.TimeoutError:
                    logger.warning("Process ignored SIGTERM, killing", process=self.name, pid=self.pid)
                    try:
                        self._process.kill()
                    except ProcessLookupError:
                        pass
                    await self._process.wait()

            try:
                await asyncio.wait_for(self._reader, timeout=grace)
            except asyncio.TimeoutError:
                # A forked grandchild can keep the pipe open after the process exits.
                logger.warning("Output reader did not finish", process=self.name)

            self._stopped = True
            logger.info("Stopped process", process=self.name, pid=self.pid,
                        returncode=self._process.returncode)
            return self._process.returncode


Spawner = Callable[..., Awaitable[ProcessHandle]]


async def spawn(command: str,
                args: Sequence[str] = (),
                env: Optional[Mapping[str, str]] = None,
                name: Optional[str] = None) -> ProcessHandle:
    """Start ``command`` with ``args``; ``env`` is layered over the current environment."""
    argv = [command, *args]
    process_env = {**os.environ, **env} if env else None

    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            env=process_env,
            limit=STREAM_LIMIT,
        )
    except OSError as e:
        raise SpawnError(argv, e) from e

    handle = ProcessHandle(name or Path(command).name, argv, process)
    logger.info("Spawned process", process=handle.name, pid=handle.pid, command=" ".join(argv))
    return handle


class ProcessGroup:
    """Processes registered for release in reverse start order on every exit path."""

    def __init__(self, spawner: Spawner = spawn, grace: float = 5.0) -> None:
        self._spawner = spawner
        self._grace = grace
        self._handles: List[ProcessHandle] = []
        self._stack = AsyncExitStack()

    async def __aenter__(self) -> "ProcessGroup":
        await self._stack.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return await self._stack.__aexit__(exc_type, exc_val, exc_tb)

    @property
    def handles(self) -> List[ProcessHandle]:
        return list(self._handles)

    async def spawn(self,
                    command: str,
                    args: Sequence[str] = (),
                    env: Optional[Mapping[str, str]] = None,
                    name: Optional[str] = None) -> ProcessHandle:
        handle = await self._spawner(command, args, env=env, name=name)
        self._handles.append(handle)
        self._stack.push_async_callback(handle.stop, self._grace)
        return handle

    def outputs(self) -> Dict[str, List[str]]:
        """Captured output of every process started through this group."""
        return {handle.name: handle.lines() for handle in self._handles}

    async def aclose(self) -> None:
        await self._stack.aclose()
