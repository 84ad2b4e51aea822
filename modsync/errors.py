class ModsyncError(Exception):
    """Base error for modsync."""


class ConfigError(ModsyncError):
    """Invalid or missing configuration."""


class RegistryError(ModsyncError):
    """The remote repository could not be queried."""


class InstallError(ModsyncError):
    """A package version could not be installed."""


class UpdateError(InstallError):
    """A registry-sourced package could not be updated."""


class RemovalError(ModsyncError):
    """A version directory could not be removed."""


class SafetyCheckError(RemovalError):
    """A version directory does not look like the version it claims to hold."""
