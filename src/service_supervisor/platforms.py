# noqa: D401
"""Platform strategies for the service manager."""

from __future__ import annotations

from .manager import BaseServiceManager
from .process import ProcessControl, UnixProcessControl, WindowsProcessControl


class UnixServiceManager(BaseServiceManager):
    """Service manager for Linux and macOS."""

    platform = "unix"

    def _create_process_control(self) -> ProcessControl:
        return UnixProcessControl(
            log_file=self.config.log_file,
            graceful_stop_timeout=self.config.graceful_stop_timeout,
        )

    def _default_process_name(self) -> str:
        return self.config.executable_name


class WindowsServiceManager(BaseServiceManager):
    """Service manager for Windows.

    Processes are addressed by image name, so the executable name always
    carries its ``.exe`` suffix (``ollama serve`` -> ``ollama.exe``).
    """

    platform = "windows"

    def _create_process_control(self) -> ProcessControl:
        return WindowsProcessControl(
            log_file=self.config.log_file,
            graceful_stop_timeout=self.config.graceful_stop_timeout,
        )

    def _default_process_name(self) -> str:
        name = self.config.executable_name
        if not name.lower().endswith(".exe"):
            name = f"{name}.exe"
        return name


__all__ = ["UnixServiceManager", "WindowsServiceManager"]
