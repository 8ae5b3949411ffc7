"""
Classification of raw script failures into the canonical error taxonomy.

Rules are checked in a fixed order and only the first match applies. Some
phrases appear inside the context of others (an elevation dialog that was
cancelled during a download still reports "download"), so precedence is part
of the contract:

1. cancellation
2. authentication failure
3. network / download
4. missing file
5. permission denied
6. missing command
7. native error message
8. raw stderr
9. generic message

Matching is case-sensitive, as the phrases come verbatim from the OS tools.

Usage:
    from installwizard.classifier import ErrorClassifier

    classified = ErrorClassifier().classify("sudo: Permission denied")
    assert classified.kind is ErrorKind.PERMISSION_DENIED
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from installwizard.errors import ErrorKind
from installwizard.models import ClassifiedError, ExecutionError

__all__ = ["ErrorClassifier", "ClassificationRule", "DEFAULT_RULES", "GENERIC_MESSAGE"]

GENERIC_MESSAGE = "Installation failed. Please check your network connection and try again."


@dataclass(frozen=True)
class ClassificationRule:
    """A pattern rule: any phrase in stderr or any native code selects ``kind``."""
    kind: ErrorKind
    phrases: Tuple[str, ...]
    user_message: str
    native_codes: Tuple[str, ...] = ()

    def matches(self, stderr: str, native_code: Optional[str]) -> bool:
        if native_code is not None and native_code in self.native_codes:
            return True
        return any(phrase in stderr for phrase in self.phrases)


# osascript error numbers: -128 user cancelled, -1712 auth failed,
# -1743 not authorized to send Apple events. pkexec reports "Request dismissed"
# and "Not authorized".
DEFAULT_RULES: List[ClassificationRule] = [
    ClassificationRule(
        kind=ErrorKind.USER_CANCELLED,
        phrases=("User canceled", "User cancelled", "Request dismissed"),
        native_codes=("-128",),
        user_message="Administrator authorization was cancelled. Installation stopped.",
    ),
    ClassificationRule(
        kind=ErrorKind.AUTHENTICATION_FAILED,
        phrases=("authentication failed", "Not authorized"),
        native_codes=("-1712",),
        user_message="Password verification failed. Please try again.",
    ),
    ClassificationRule(
        kind=ErrorKind.NETWORK_FAILURE,
        phrases=("network", "download"),
        user_message="Network connection failed. Check your network settings and try again.",
    ),
    ClassificationRule(
        kind=ErrorKind.SCRIPT_MISSING,
        phrases=("No such file",),
        user_message="The installer script is missing. Please download the application again.",
    ),
    ClassificationRule(
        kind=ErrorKind.PERMISSION_DENIED,
        phrases=("Permission denied", "not allowed"),
        native_codes=("-1743",),
        user_message="Insufficient permissions. Make sure you run the installer as an administrator.",
    ),
    ClassificationRule(
        kind=ErrorKind.COMMAND_NOT_FOUND,
        phrases=("command not found",),
        user_message="A required system command is missing. Please check your system environment.",
    ),
]


class ErrorClassifier:
    """Pure mapping from (stderr, native error) to a ClassifiedError."""

    def __init__(self, rules: Optional[List[ClassificationRule]] = None):
        self.rules = list(rules) if rules is not None else list(DEFAULT_RULES)

    def classify(self, stderr: str, native_error: Optional[ExecutionError] = None) -> ClassifiedError:
        stderr = stderr or ""
        native_code = native_error.native_code if native_error else None
        details = self._details(stderr, native_error)

        for rule in self.rules:
            if rule.matches(stderr, native_code):
                return ClassifiedError(kind=rule.kind, user_message=rule.user_message, details=details)

        if native_error is not None:
            return ClassifiedError(
                kind=native_error.kind or ErrorKind.UNKNOWN,
                user_message=f"Installation failed: {native_error.message}",
                details=details,
            )

        if stderr.strip():
            return ClassifiedError(
                kind=ErrorKind.UNKNOWN,
                user_message=f"Installation failed: {stderr.strip()}",
                details=details,
            )

        return ClassifiedError(kind=ErrorKind.UNKNOWN, user_message=GENERIC_MESSAGE, details=details)

    def classify_exception(self, exc: BaseException) -> ClassifiedError:
        """Classify an exception raised while running a step action."""
        kind = getattr(exc, "kind", None)
        native = ExecutionError(
            message=str(exc) or type(exc).__name__,
            kind=kind if isinstance(kind, ErrorKind) else None,
        )
        return self.classify("", native)

    @staticmethod
    def _details(stderr: str, native_error: Optional[ExecutionError]) -> Optional[str]:
        parts = []
        if stderr.strip():
            parts.append(stderr.strip())
        if native_error is not None:
            code = f" (code {native_error.native_code})" if native_error.native_code else ""
            parts.append(f"{native_error.message}{code}")
        return "\n".join(parts) or None
