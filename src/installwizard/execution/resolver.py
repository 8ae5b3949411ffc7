"""Resolution of installer script paths per platform and build type."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional, Union

from installwizard.errors import ScriptMissingError, UnsupportedPlatformError

logger = logging.getLogger(__name__)

__all__ = ["ScriptResolver", "script_extension"]


def script_extension(platform: str) -> str:
    """``.sh`` on macOS and Linux, ``.ps1`` on Windows."""
    if platform == "darwin" or platform.startswith("linux"):
        return ".sh"
    if platform == "win32":
        return ".ps1"
    raise UnsupportedPlatformError(f"No installer scripts for platform: {platform}")


class ScriptResolver:
    """
    Finds the platform script for a component.

    Development builds read from ``scripts_dir``; packaged builds read from
    ``<resources_dir>/scripts``.
    """

    def __init__(self, scripts_dir: Union[str, Path], resources_dir: Optional[Union[str, Path]] = None):
        self.scripts_dir = Path(scripts_dir)
        self.resources_dir = Path(resources_dir) if resources_dir else None

    def base_dir(self, packaged: bool) -> Path:
        if packaged:
            if self.resources_dir is None:
                raise ScriptMissingError("Packaged build has no resources directory configured")
            return self.resources_dir / "scripts"
        return self.scripts_dir

    def resolve(self, basename: str, platform: Optional[str] = None, packaged: bool = False) -> Path:
        """
        Return the existing script path for ``basename``.

        Raises:
            UnsupportedPlatformError: No script flavour for the platform.
            ScriptMissingError: The resolved file does not exist.
        """
        platform = platform or sys.platform
        path = self.base_dir(packaged) / f"{basename}{script_extension(platform)}"
        logger.debug(f"Resolved script for {basename} on {platform} (packaged={packaged}): {path}")
        if not path.is_file():
            raise ScriptMissingError(f"Installer script not found: {path}")
        return path
