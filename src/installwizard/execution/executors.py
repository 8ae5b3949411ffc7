"""
Privilege-elevation strategies, one per host OS.

Each executor runs a command with administrator rights through the native
elevation dialog and returns the raw ProcessOutcome. The strategy is chosen
once with ``select_executor`` so the execution service stays OS-agnostic.

On Unix-like systems the command is written into a temporary file that the
elevation tool executes, so the command text never has to survive the
quoting rules of the tool's own command line. The temporary file is removed
before ``run`` returns, on every path.
"""

from __future__ import annotations

import logging
import os
import shlex
import sys
import tempfile
from typing import Awaitable, Callable, Optional, Protocol, Sequence

from installwizard.errors import UnsupportedPlatformError
from installwizard.execution.process import ProcessOutcome, run_process

logger = logging.getLogger(__name__)

__all__ = [
    "PrivilegedExecutor",
    "MacOSPrivilegedExecutor",
    "LinuxPrivilegedExecutor",
    "WindowsPrivilegedExecutor",
    "select_executor",
    "applescript_quote",
    "powershell_quote",
    "ERROR_SENTINEL",
]

# Prefix the AppleScript wrapper prints when the elevated command fails
ERROR_SENTINEL = "ERROR:"

Runner = Callable[..., Awaitable[ProcessOutcome]]


class PrivilegedExecutor(Protocol):
    """Runs a command with elevated privileges on one OS."""

    platform: str

    async def run(self, command: Sequence[str], timeout: float, max_output_bytes: int) -> ProcessOutcome:
        ...

    async def check_privileges(self) -> bool:
        ...


def applescript_quote(text: str) -> str:
    """Quote ``text`` as an AppleScript string literal."""
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


def powershell_quote(text: str) -> str:
    """Quote ``text`` as a PowerShell single-quoted string."""
    return "'" + text.replace("'", "''") + "'"


class _TempFileExecutor:
    """Shared temp-file handling for the Unix strategies."""

    platform = ""
    suffix = ""

    def __init__(self, app_name: str, prompt: str, runner: Runner = run_process):
        self.app_name = app_name
        self.prompt = prompt
        self._runner = runner

    def _temp_prefix(self) -> str:
        slug = "".join(c if c.isalnum() else "-" for c in self.app_name.lower()).strip("-")
        return f"{slug or 'install'}-"

    def render(self, command: Sequence[str]) -> str:
        raise NotImplementedError

    def launcher(self, temp_path: str) -> Sequence[str]:
        raise NotImplementedError

    async def run(self, command: Sequence[str], timeout: float, max_output_bytes: int) -> ProcessOutcome:
        fd, temp_path = tempfile.mkstemp(prefix=self._temp_prefix(), suffix=self.suffix)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(self.render(command))
            logger.debug(f"Wrote elevation wrapper {temp_path}")
            return await self._runner(
                list(self.launcher(temp_path)),
                timeout=timeout,
                max_output_bytes=max_output_bytes,
            )
        finally:
            try:
                os.unlink(temp_path)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"Failed to remove temporary file {temp_path}: {e}")


class MacOSPrivilegedExecutor(_TempFileExecutor):
    """
    Elevates through ``osascript`` and the administrator password dialog.

    The AppleScript catches its own errors and prints
    ``ERROR:<number>:<message>`` instead of failing, so dialog failures
    (e.g. -128 user cancelled) are distinguishable from the wrapped script's
    exit status.
    """

    platform = "darwin"
    suffix = ".scpt"

    def render(self, command: Sequence[str]) -> str:
        shell_command = shlex.join(command)
        return "\n".join([
            "on run",
            "  try",
            f"    do shell script {applescript_quote(shell_command)} "
            f"with administrator privileges with prompt {applescript_quote(self.prompt)}",
            "  on error errMsg number errNum",
            f'    return "{ERROR_SENTINEL}" & errNum & ":" & errMsg',
            "  end try",
            "end run",
            "",
        ])

    def launcher(self, temp_path: str) -> Sequence[str]:
        return ["osascript", temp_path]

    async def check_privileges(self) -> bool:
        return os.access("/usr/local/bin", os.W_OK)


class LinuxPrivilegedExecutor(_TempFileExecutor):
    """Elevates through ``pkexec`` and the polkit authentication agent."""

    platform = "linux"
    suffix = ".sh"

    def render(self, command: Sequence[str]) -> str:
        return f"#!/bin/sh\nexec {shlex.join(command)}\n"

    def launcher(self, temp_path: str) -> Sequence[str]:
        return ["pkexec", "/bin/sh", temp_path]

    async def check_privileges(self) -> bool:
        try:
            outcome = await self._runner(["sudo", "-n", "true"], timeout=10, max_output_bytes=1024 * 1024)
        except OSError:
            return False
        return outcome.ok


class WindowsPrivilegedExecutor:
    """Relaunches an elevated PowerShell (UAC prompt) and waits for it."""

    platform = "win32"

    def __init__(self, app_name: str, prompt: str, runner: Runner = run_process):
        self.app_name = app_name
        self.prompt = prompt
        self._runner = runner

    def build_command(self, command: Sequence[str]) -> str:
        script, *args = command
        inner = " ".join(
            ["-NoProfile", "-ExecutionPolicy", "Bypass", "-File", f'"{script}"']
            + [f'"{a}"' for a in args]
        )
        return (
            f"$p = Start-Process PowerShell -ArgumentList {powershell_quote(inner)} "
            f"-Verb RunAs -Wait -PassThru; exit $p.ExitCode"
        )

    async def run(self, command: Sequence[str], timeout: float, max_output_bytes: int) -> ProcessOutcome:
        argv = ["powershell", "-NoProfile", "-NonInteractive", "-Command", self.build_command(command)]
        return await self._runner(argv, timeout=timeout, max_output_bytes=max_output_bytes)

    async def check_privileges(self) -> bool:
        try:
            outcome = await self._runner(["net", "session"], timeout=10, max_output_bytes=1024 * 1024)
        except OSError:
            return False
        return outcome.ok


def select_executor(
    platform: Optional[str] = None,
    app_name: str = "Install Assistant",
    prompt: str = "",
    runner: Runner = run_process,
) -> PrivilegedExecutor:
    """
    Pick the executor for ``platform`` (defaults to ``sys.platform``).

    Raises:
        UnsupportedPlatformError: For any OS other than macOS, Linux or Windows.
    """
    platform = platform or sys.platform
    prompt = prompt or f"{app_name} needs administrator privileges to continue."
    if platform == "darwin":
        return MacOSPrivilegedExecutor(app_name, prompt, runner)
    if platform.startswith("linux"):
        return LinuxPrivilegedExecutor(app_name, prompt, runner)
    if platform == "win32":
        return WindowsPrivilegedExecutor(app_name, prompt, runner)
    raise UnsupportedPlatformError(f"Unsupported platform: {platform}")
