"""
Script execution service.

Runs an installer script with elevated privileges and turns the raw process
outcome into an immutable ScriptExecutionResult. The service holds no
session state; the one-script-at-a-time rule is enforced by the navigation
controller.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Optional, Sequence, Union

from installwizard.errors import ErrorKind
from installwizard.execution.executors import ERROR_SENTINEL, PrivilegedExecutor
from installwizard.execution.process import ProcessOutcome
from installwizard.models import ExecutionError, ScriptExecutionResult

logger = logging.getLogger(__name__)

__all__ = ["ScriptExecutionService", "find_error_sentinel"]

DEFAULT_TIMEOUT_SECONDS = 300.0
DEFAULT_MAX_OUTPUT_BYTES = 1024 * 1024

_SENTINEL_RE = re.compile(rf"^{re.escape(ERROR_SENTINEL)}(-?\d+):(.*)$", re.MULTILINE)


def find_error_sentinel(stdout: str) -> Optional[ExecutionError]:
    """Return the elevation wrapper's own error report, if ``stdout`` holds one."""
    match = _SENTINEL_RE.search(stdout or "")
    if match is None:
        return None
    code, message = match.group(1), match.group(2).strip()
    return ExecutionError(message=message or f"error {code}", native_code=code)


class ScriptExecutionService:
    """
    Executes installer scripts through a PrivilegedExecutor.

    Args:
        executor: OS strategy chosen once at startup
        timeout: Hard timeout per invocation in seconds
        max_output_bytes: Capture bound for each output stream
    """

    def __init__(
        self,
        executor: PrivilegedExecutor,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
    ):
        self.executor = executor
        self.timeout = timeout
        self.max_output_bytes = max_output_bytes

    async def execute(
        self,
        script_path: Union[str, Path],
        args: Sequence[str] = (),
    ) -> ScriptExecutionResult:
        """
        Run ``script_path`` with ``args`` under elevated privileges.

        Never raises for script or elevation failures; they are reported in
        the returned result.
        """
        path = Path(script_path)
        logger.info(f"Executing privileged script: {path} {' '.join(args)}".rstrip())

        if not self.validate_script_path(path):
            logger.error(f"Script file missing or unreadable: {path}")
            return ScriptExecutionResult(
                success=False,
                stderr=f"No such file or not readable: {path}",
                error=ExecutionError(message="Invalid script path", kind=ErrorKind.SCRIPT_MISSING),
            )

        command = self.build_command(path, args)
        try:
            outcome = await self.executor.run(
                command,
                timeout=self.timeout,
                max_output_bytes=self.max_output_bytes,
            )
        except FileNotFoundError as e:
            logger.error(f"Elevation helper not available: {e}")
            return ScriptExecutionResult(
                success=False,
                error=ExecutionError(
                    message=f"Elevation helper not available: {e.filename or e}",
                    kind=ErrorKind.COMMAND_NOT_FOUND,
                ),
            )
        except OSError as e:
            logger.error(f"Failed to launch privileged script: {e}")
            return ScriptExecutionResult(
                success=False,
                error=ExecutionError(message=str(e), native_code=str(e.errno) if e.errno else None),
            )

        result = self.interpret(outcome)
        logger.info(
            f"Script finished: success={result.success} "
            f"stdout={len(result.stdout)}B stderr={len(result.stderr)}B"
        )
        return result

    def interpret(self, outcome: ProcessOutcome) -> ScriptExecutionResult:
        """Map a raw process outcome onto a ScriptExecutionResult."""
        if outcome.timed_out:
            return ScriptExecutionResult(
                success=False,
                stdout=outcome.stdout,
                stderr=outcome.stderr,
                error=ExecutionError(
                    message=f"Script timed out after {self.timeout:g} seconds",
                    kind=ErrorKind.TIMEOUT,
                ),
            )

        sentinel = find_error_sentinel(outcome.stdout)
        if sentinel is not None:
            logger.warning(f"Elevation wrapper reported error {sentinel.native_code}: {sentinel.message}")
            return ScriptExecutionResult(
                success=False,
                stdout="",
                stderr=sentinel.message,
                error=ExecutionError(
                    message=f"elevation error {sentinel.native_code}: {sentinel.message}",
                    native_code=sentinel.native_code,
                ),
            )

        if outcome.returncode != 0:
            return ScriptExecutionResult(
                success=False,
                stdout=outcome.stdout,
                stderr=outcome.stderr,
                error=ExecutionError(
                    message=f"Script exited with status {outcome.returncode}",
                    native_code=str(outcome.returncode),
                ),
            )

        return ScriptExecutionResult(success=True, stdout=outcome.stdout, stderr=outcome.stderr)

    @staticmethod
    def validate_script_path(path: Path) -> bool:
        return path.is_file() and os.access(path, os.R_OK)

    @staticmethod
    def build_command(path: Path, args: Sequence[str]) -> list:
        # Shell scripts are run through bash so the executable bit is not required
        if path.suffix == ".sh":
            return ["/bin/bash", str(path), *args]
        return [str(path), *args]

    async def check_privileges(self) -> bool:
        """True if the process already runs with administrator rights."""
        return await self.executor.check_privileges()
