"""
Privileged script execution.

    from installwizard.execution import ScriptExecutionService, select_executor

    service = ScriptExecutionService(select_executor(app_name="Install Assistant"))
    result = await service.execute("/path/to/install-nodejs-with-progress.sh")
"""

from installwizard.execution.executors import (
    LinuxPrivilegedExecutor,
    MacOSPrivilegedExecutor,
    PrivilegedExecutor,
    WindowsPrivilegedExecutor,
    select_executor,
)
from installwizard.execution.process import ProcessOutcome, run_process
from installwizard.execution.resolver import ScriptResolver
from installwizard.execution.service import ScriptExecutionService

__all__ = [
    "PrivilegedExecutor",
    "MacOSPrivilegedExecutor",
    "LinuxPrivilegedExecutor",
    "WindowsPrivilegedExecutor",
    "select_executor",
    "ProcessOutcome",
    "run_process",
    "ScriptResolver",
    "ScriptExecutionService",
]
