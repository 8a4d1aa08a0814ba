"""
Interfaces for the collaborators the core depends on.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from .models import (
    BreakingChange,
    PackageDependency,
    PackageMetadata,
    PackageReference,
    ProjectInfo,
    Vulnerability,
)
from .versioning import SemVersion


class ProjectReader(Protocol):
    """Discover projects and read their declared package references."""

    def list_projects(self, path: str) -> List[str]:
        ...

    def read_project(self, project_path: str) -> ProjectInfo:
        ...

    def read_references(self, project_path: str) -> List[PackageReference]:
        ...


class RegistryClient(Protocol):
    """Query a package registry."""

    def get_dependencies(
        self, package_id: str, version: str, target_framework: Optional[str] = None
    ) -> List[PackageDependency]:
        ...

    def version_exists(self, package_id: str, version: str) -> bool:
        ...

    def get_versions(self, package_id: str) -> List[SemVersion]:
        ...

    def search_metadata(self, package_id: str) -> Optional[PackageMetadata]:
        ...


class VulnerabilityFeed(Protocol):
    """Provide known advisories for package ids."""

    def get_vulnerabilities(self, package_ids: Iterable[str]) -> Dict[str, List[Vulnerability]]:
        ...


class BuildValidator(Protocol):
    """Build a project and report the exit code with its output."""

    def validate(self, project_path: str) -> Tuple[int, str, str]:
        ...


class BreakingChangePolicy(Protocol):
    """Decide which breaking changes an update is likely to carry."""

    def assess(self, current: SemVersion, target: SemVersion) -> List[BreakingChange]:
        ...
