"""Install, uninstall and clean up runtime versions."""

from .installer import CleanupReport, InstallAttempt, Installer, InstallState

__all__ = ["CleanupReport", "InstallAttempt", "Installer", "InstallState"]
