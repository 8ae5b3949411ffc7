"""
installwizard - Guided, step-by-step installer engine.

Walks a user through installing Node.js and the Claude CLI one step at a
time. Installer scripts run with elevated privileges through the host OS's
native dialog and report progress as JSON lines on stdout.

Key Features:
- Step state machine gating back/next/skip/retry on step outcomes
- Privileged script execution on macOS, Linux and Windows
- Progress protocol parsing with a simulated fallback sequence
- Classification of raw failures into a stable error taxonomy

Example usage:
    import asyncio
    from installwizard import EventChannel, create_installer

    async def main():
        channel = EventChannel()
        engine = create_installer(channel=channel)
        result = await engine.start_install("nodejs")
        await engine.close()
        return result

    asyncio.run(main())
"""

__version__ = "0.1.0"
__all__ = [
    "create_installer",
    "InstallerEngine",
    "NavigationController",
    "EventChannel",
    "ErrorClassifier",
    "__version__",
]


# Lazy imports to avoid loading the execution stack at import time
def __getattr__(name: str):
    if name == "create_installer":
        from installwizard.installer import create_installer
        return create_installer
    if name == "InstallerEngine":
        from installwizard.installer import InstallerEngine
        return InstallerEngine
    if name == "NavigationController":
        from installwizard.navigation import NavigationController
        return NavigationController
    if name == "EventChannel":
        from installwizard.channel import EventChannel
        return EventChannel
    if name == "ErrorClassifier":
        from installwizard.classifier import ErrorClassifier
        return ErrorClassifier
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
