# noqa: D401
"""Platform process-control primitives for the supervised service.

Only the four primitives (find, start, graceful stop, forced stop) differ
between platforms. Escalation policy lives in the service manager.
"""

from __future__ import annotations

import asyncio
import csv
import logging
import os
import shlex
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import IO, List, Optional, Sequence, Set, Tuple

import psutil

from .errors import ProcessError
from .models import ProcessInfo

logger = logging.getLogger(__name__)

# Child output lands here unless a log file is configured
DEFAULT_LOG_FILE = Path.home() / ".service-supervisor" / "logs" / "service.log"

# taskkill exit code when no process matches the image name
TASKKILL_NOT_FOUND = 128

# Windows creation flags (not defined by subprocess on other platforms)
CREATE_NEW_PROCESS_GROUP = getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0x00000200)
CREATE_NO_WINDOW = getattr(subprocess, "CREATE_NO_WINDOW", 0x08000000)


class ProcessControl(ABC):
    """Find, start and stop a named OS process."""

    def __init__(
        self,
        log_file: Optional[Path] = None,
        graceful_stop_timeout: float = 5.0,
        drain_output: bool = False,
    ) -> None:
        """Initialize process control.

        Child output goes to the log file by default. Drained output stops
        with the event loop, so the child must not outlive it.

        Args:
            log_file: Append child output here (defaults to ~/.service-supervisor/logs/service.log)
            graceful_stop_timeout: Seconds to wait for a process to exit after a graceful stop
            drain_output: Pipe child output into the debug log instead of the log file
        """
        self.log_file = log_file or DEFAULT_LOG_FILE
        self.graceful_stop_timeout = graceful_stop_timeout
        self.drain_output = drain_output
        self._drain_tasks: Set[asyncio.Task] = set()

    @abstractmethod
    async def find_process(self, name: str) -> Optional[ProcessInfo]:
        """Find a running process by name."""

    @abstractmethod
    async def start_process(self, command: str, args: Optional[Sequence[str]] = None) -> None:
        """Spawn a detached process."""

    @abstractmethod
    async def stop_process(self, name: str) -> None:
        """Ask a process to exit."""

    @abstractmethod
    async def force_stop_process(self, name: str) -> None:
        """Kill a process unconditionally."""

    async def is_process_running(self, name: str) -> bool:
        """Check if a process with this name is running."""
        return (await self.find_process(name)) is not None

    async def close(self) -> None:
        """Stop draining child output."""
        for task in list(self._drain_tasks):
            task.cancel()
        if self._drain_tasks:
            await asyncio.gather(*self._drain_tasks, return_exceptions=True)
        self._drain_tasks.clear()

    def _open_output(self) -> Tuple[int, int, Optional[IO[bytes]]]:
        """Return (stdout, stderr, handle) for a new child."""
        if self.drain_output:
            return asyncio.subprocess.PIPE, asyncio.subprocess.PIPE, None

        self.log_file.parent.mkdir(parents=True, exist_ok=True)
        handle = open(self.log_file, "ab")
        return handle.fileno(), asyncio.subprocess.STDOUT, handle

    def _attach_output(self, process: asyncio.subprocess.Process, label: str) -> None:
        """Drain child pipes into the log while the event loop runs."""
        for stream, stream_name in ((process.stdout, "stdout"), (process.stderr, "stderr")):
            if stream is None:
                continue
            task = asyncio.create_task(self._drain(stream, f"{label} {stream_name}"))
            self._drain_tasks.add(task)
            task.add_done_callback(self._drain_tasks.discard)

    @staticmethod
    async def _drain(stream: asyncio.StreamReader, label: str) -> None:
        """Forward each line of a child stream to the debug log."""
        while True:
            try:
                raw = await stream.readline()
            except ValueError:
                # Line exceeded the reader limit; readline already discarded it
                continue
            if not raw:
                break
            line = raw.decode(errors="replace").rstrip()
            if line:
                logger.debug(f"{label}: {line}")


class UnixProcessControl(ProcessControl):
    """Process control for Linux and macOS, addressing processes by PID."""

    async def find_process(self, name: str) -> Optional[ProcessInfo]:
        """Find a running process by exact name.

        Args:
            name: Process name (e.g. ``ollama``)

        Returns:
            ProcessInfo or None if no process matches

        Raises:
            ProcessError: If the process table cannot be read
        """
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._scan, name)
        except psutil.Error as e:
            raise ProcessError(f"Failed to look up process {name}: {e}", name, "find", e) from e

    @staticmethod
    def _scan(name: str) -> Optional[ProcessInfo]:
        """Blocking scan of the process table."""
        own_pid = os.getpid()
        for process in psutil.process_iter(["pid", "name"]):
            info = process.info
            if info["pid"] == own_pid:
                continue
            if info.get("name") == name:
                return ProcessInfo(pid=info["pid"], name=name)
        return None

    async def start_process(self, command: str, args: Optional[Sequence[str]] = None) -> None:
        """Spawn the command in its own session.

        Args:
            command: Command line (e.g. ``ollama serve``)
            args: Extra arguments appended to the command

        Raises:
            ProcessError: If the binary cannot be executed
        """
        argv: List[str] = shlex.split(command) + list(args or [])
        name = Path(argv[0]).name
        stdout, stderr, handle = self._open_output()

        logger.info(f"Starting process: {' '.join(argv)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=stdout,
                stderr=stderr,
                start_new_session=True,  # Detach from our terminal and signals
            )
        except FileNotFoundError as e:
            raise ProcessError(f"Binary not found: {argv[0]}", name, "start", e) from e
        except PermissionError as e:
            raise ProcessError(f"Permission denied: {argv[0]}", name, "start", e) from e
        except OSError as e:
            raise ProcessError(f"Failed to start {argv[0]}: {e}", name, "start", e) from e
        finally:
            if handle is not None:
                handle.close()

        self._attach_output(process, name)
        logger.info(f"Process {name} started with PID {process.pid}")

    async def stop_process(self, name: str) -> None:
        """Send SIGTERM and wait for the process to exit.

        Raises:
            ProcessError: If the signal is refused or the process outlives the grace period
        """
        info = await self.find_process(name)
        if info is None:
            logger.debug(f"No {name} process to stop")
            return

        loop = asyncio.get_running_loop()
        try:
            process = psutil.Process(info.pid)
            process.terminate()
            logger.info(f"Sent SIGTERM to {name} (PID {info.pid})")
            await loop.run_in_executor(None, process.wait, self.graceful_stop_timeout)
        except psutil.NoSuchProcess:
            logger.info(f"Process {name} (PID {info.pid}) already exited")
        except psutil.TimeoutExpired as e:
            raise ProcessError(
                f"Process {name} (PID {info.pid}) did not exit within "
                f"{self.graceful_stop_timeout}s",
                name,
                "stop",
                e,
            ) from e
        except psutil.Error as e:
            raise ProcessError(f"Failed to stop {name}: {e}", name, "stop", e) from e

    async def force_stop_process(self, name: str) -> None:
        """Send SIGKILL to the process.

        Raises:
            ProcessError: If the signal is refused
        """
        info = await self.find_process(name)
        if info is None:
            logger.debug(f"No {name} process to kill")
            return

        loop = asyncio.get_running_loop()
        try:
            process = psutil.Process(info.pid)
            process.kill()
            logger.warning(f"Sent SIGKILL to {name} (PID {info.pid})")
            await loop.run_in_executor(None, process.wait, self.graceful_stop_timeout)
        except psutil.NoSuchProcess:
            logger.info(f"Process {name} (PID {info.pid}) already exited")
        except psutil.Error as e:
            raise ProcessError(f"Failed to kill {name}: {e}", name, "stop", e) from e


class WindowsProcessControl(ProcessControl):
    """Process control for Windows, addressing processes by image name."""

    poll_interval = 0.5

    async def _run(self, *argv: str) -> Tuple[int, str]:
        """Run a system command and capture its combined output."""
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        output, _ = await process.communicate()
        return process.returncode, output.decode(errors="replace")

    async def find_process(self, name: str) -> Optional[ProcessInfo]:
        """Find a running process by image name via ``tasklist``.

        Args:
            name: Image name (e.g. ``ollama.exe``)

        Returns:
            ProcessInfo or None if no process matches

        Raises:
            ProcessError: If tasklist cannot be run
        """
        try:
            returncode, output = await self._run(
                "tasklist", "/FI", f"IMAGENAME eq {name}", "/FO", "CSV", "/NH"
            )
        except OSError as e:
            raise ProcessError(f"Failed to run tasklist: {e}", name, "find", e) from e

        if returncode != 0:
            raise ProcessError(
                f"tasklist exited with code {returncode}: {output.strip()}", name, "find"
            )
        return self._parse_tasklist(output, name)

    @staticmethod
    def _parse_tasklist(output: str, name: str) -> Optional[ProcessInfo]:
        """Extract the first matching PID from tasklist CSV output."""
        for row in csv.reader(output.splitlines()):
            # "INFO: No tasks are running..." parses as a single column
            if len(row) < 2 or row[0].lower() != name.lower():
                continue
            try:
                return ProcessInfo(pid=int(row[1]), name=row[0])
            except ValueError:
                continue
        return None

    async def start_process(self, command: str, args: Optional[Sequence[str]] = None) -> None:
        """Spawn the command in a new process group without a console window.

        Raises:
            ProcessError: If the command cannot be launched
        """
        command_line = command
        if args:
            command_line = f"{command} {subprocess.list2cmdline(list(args))}"
        name = Path(shlex.split(command, posix=False)[0].strip('"')).name
        stdout, stderr, handle = self._open_output()

        logger.info(f"Starting process: {command_line}")
        try:
            process = await asyncio.create_subprocess_shell(
                command_line,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=stdout,
                stderr=stderr,
                creationflags=CREATE_NEW_PROCESS_GROUP | CREATE_NO_WINDOW,
            )
        except OSError as e:
            raise ProcessError(f"Failed to start {command_line}: {e}", name, "start", e) from e
        finally:
            if handle is not None:
                handle.close()

        self._attach_output(process, name)
        logger.info(f"Process {name} started with PID {process.pid}")

    async def stop_process(self, name: str) -> None:
        """Ask the image to close via ``taskkill /IM`` and wait for it to go away.

        Raises:
            ProcessError: If taskkill fails or the process outlives the grace period
        """
        await self._taskkill(name, force=False)

        waited = 0.0
        while await self.is_process_running(name):
            if waited >= self.graceful_stop_timeout:
                raise ProcessError(
                    f"Process {name} did not exit within {self.graceful_stop_timeout}s",
                    name,
                    "stop",
                )
            await asyncio.sleep(self.poll_interval)
            waited += self.poll_interval

    async def force_stop_process(self, name: str) -> None:
        """Kill the image via ``taskkill /F /IM``.

        Raises:
            ProcessError: If taskkill fails
        """
        await self._taskkill(name, force=True)

    async def _taskkill(self, name: str, force: bool) -> None:
        """Run taskkill, treating 'no such process' as success."""
        argv = ["taskkill", "/IM", name]
        if force:
            argv.insert(1, "/F")

        try:
            returncode, output = await self._run(*argv)
        except OSError as e:
            raise ProcessError(f"Failed to run taskkill: {e}", name, "stop", e) from e

        if returncode == TASKKILL_NOT_FOUND:
            logger.debug(f"No {name} process to stop")
            return
        if returncode != 0:
            raise ProcessError(
                f"taskkill exited with code {returncode}: {output.strip()}", name, "stop"
            )
        logger.info(f"{'Killed' if force else 'Stopped'} {name} via taskkill")


__all__ = [
    "DEFAULT_LOG_FILE",
    "ProcessControl",
    "UnixProcessControl",
    "WindowsProcessControl",
]
