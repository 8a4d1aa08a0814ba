"""
Exception hierarchy for NuVet.
"""


class NuVetError(Exception):
    """Base class for all NuVet errors."""


class RegistryError(NuVetError):
    """The package registry was unreachable or returned malformed data."""


class FeedError(NuVetError):
    """The vulnerability feed was unreachable or returned malformed data."""


class ProjectReadError(NuVetError):
    """A project, solution or package configuration file could not be read."""


class PackageVersionNotFoundError(NuVetError):
    """The requested package version does not exist in the registry."""

    def __init__(self, package_id: str, version: str) -> None:
        super().__init__(
            f"Target version {version} does not exist for package {package_id}"
        )
        self.package_id = package_id
        self.version = version


class MutationError(NuVetError):
    """A project file could not be rewritten."""


class BuildValidationError(NuVetError):
    """The build validator reported a failure."""


class BackupError(NuVetError):
    """A backup could not be created, loaded or restored."""


class OperationCancelled(NuVetError):
    """The operation was cancelled by the caller."""
