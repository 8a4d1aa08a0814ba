"""
Core data models for NuVet.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum, IntEnum
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .time_utils import utcnow
from .versioning import SemVersion


class Severity(IntEnum):
    """Vulnerability severity, ordered by rank."""

    UNKNOWN = 0
    LOW = 1
    MODERATE = 2
    HIGH = 3
    CRITICAL = 4

    @classmethod
    def parse(cls, value: Optional[str]) -> "Severity":
        if not value:
            return cls.UNKNOWN
        text = str(value).strip().upper()
        if text == "MEDIUM":
            return cls.MODERATE
        try:
            return cls[text]
        except KeyError:
            return cls.UNKNOWN

    @property
    def label(self) -> str:
        return self.name.capitalize()


class ReferenceSource(str, Enum):
    """Where a package reference was declared."""

    DECLARED_REFERENCE = "declared-reference"
    LEGACY_CONFIG = "legacy-config"
    CENTRAL_MANAGEMENT = "central-management"


def package_key(package_id: str, version: SemVersion) -> str:
    """Identity key of a package version: ``{id}_{version}`` with the id case-folded."""
    return f"{package_id.casefold()}_{version}"


@dataclass(eq=False)
class PackageReference:
    """A package version used by a project."""

    id: str
    version: SemVersion
    project_path: str
    target_framework: Optional[str] = None
    is_direct_dependency: bool = True
    source: ReferenceSource = ReferenceSource.DECLARED_REFERENCE
    dependencies: List["PackageReference"] = field(default_factory=list, repr=False)

    @property
    def key(self) -> str:
        return package_key(self.id, self.version)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PackageReference):
            return NotImplemented
        return self.id.casefold() == other.id.casefold() and self.version == other.version

    def __hash__(self) -> int:
        return hash((self.id.casefold(), self.version))

    def __str__(self) -> str:
        return f"{self.id} {self.version}"


class ProjectType(str, Enum):
    CLASS_LIBRARY = "class-library"
    CONSOLE_APPLICATION = "console-application"
    WEB_APPLICATION = "web-application"
    TEST_PROJECT = "test-project"
    WINDOWS_APPLICATION = "windows-application"
    OTHER = "other"


@dataclass
class ProjectInfo:
    """Information about a .NET project."""

    name: str
    path: str
    target_framework: str
    type: ProjectType = ProjectType.OTHER
    output_type: Optional[str] = None
    target_frameworks: List[str] = field(default_factory=list)
    package_references: List[PackageReference] = field(default_factory=list)


@dataclass
class DependencyGraph:
    """Packages used by one or more projects, with their dependency edges."""

    root_path: str
    projects: List[ProjectInfo]
    all_packages: List[PackageReference]
    created_at: datetime = field(default_factory=utcnow)
    warnings: List[str] = field(default_factory=list)

    def get_unique_packages(self) -> List[PackageReference]:
        """One representative per (id, version); the first occurrence wins."""
        seen: Set[str] = set()
        unique = []
        for package in self.all_packages:
            if package.key in seen:
                continue
            seen.add(package.key)
            unique.append(package)
        return unique

    def get_direct_dependencies(self, project_path: str) -> List[PackageReference]:
        return [
            p for p in self.all_packages
            if p.project_path == project_path and p.is_direct_dependency
        ]

    def get_transitive_dependencies(self, package: PackageReference) -> List[PackageReference]:
        """Every package reachable from ``package``, each returned once.

        The starting package is included only when a cycle leads back to it.
        """
        visited: Set[str] = set()
        result = []
        stack = list(reversed(package.dependencies))
        while stack:
            current = stack.pop()
            if current.key in visited:
                continue
            visited.add(current.key)
            result.append(current)
            stack.extend(reversed(current.dependencies))
        return result

    def find_dependents(self, package_id: str) -> List[PackageReference]:
        """Packages that declare a dependency on ``package_id``."""
        folded = package_id.casefold()
        return [
            p for p in self.all_packages
            if any(d.id.casefold() == folded for d in p.dependencies)
        ]

    def find_packages(self, package_id: str) -> List[PackageReference]:
        folded = package_id.casefold()
        return [p for p in self.all_packages if p.id.casefold() == folded]


@dataclass(frozen=True)
class PackageDependency:
    """A dependency edge as reported by the registry."""

    id: str
    version_range: str
    target_framework: Optional[str] = None


@dataclass
class PackageVersionInfo:
    version: SemVersion
    published: Optional[datetime] = None
    download_count: int = 0
    is_prerelease: bool = False
    dependencies: List[PackageDependency] = field(default_factory=list)
    release_notes: Optional[str] = None


@dataclass
class PackageMetadata:
    """Registry metadata for a package."""

    id: str
    title: str
    description: str = ""
    authors: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    project_url: Optional[str] = None
    license_url: Optional[str] = None
    published: Optional[datetime] = None
    download_count: int = 0
    is_prerelease: bool = False
    latest_version: Optional[SemVersion] = None
    latest_stable_version: Optional[SemVersion] = None
    versions: List[PackageVersionInfo] = field(default_factory=list)


@dataclass
class Vulnerability:
    """A published advisory against a package."""

    id: str
    title: str
    severity: Severity
    package_id: str
    description: str = ""
    affected_versions: List[SemVersion] = field(default_factory=list)
    patched_versions: List[SemVersion] = field(default_factory=list)
    advisory_url: Optional[str] = None
    published_at: Optional[datetime] = None


@dataclass
class VulnerablePackage:
    """A package version together with every advisory that affects it."""

    package: PackageReference
    vulnerabilities: List[Vulnerability]
    affected_projects: List[str]

    @property
    def highest_severity(self) -> Severity:
        if not self.vulnerabilities:
            return Severity.UNKNOWN
        return max(v.severity for v in self.vulnerabilities)

    def get_suggested_update_versions(self) -> List[SemVersion]:
        """Patched versions that clear every advisory on this package, ascending."""
        candidates = sorted({pv for v in self.vulnerabilities for pv in v.patched_versions})
        return [
            candidate for candidate in candidates
            if all(
                any(pv <= candidate for pv in vuln.patched_versions)
                for vuln in self.vulnerabilities
            )
        ]


@dataclass(frozen=True)
class ScanSummary:
    """Counts computed once over the vulnerable packages a scan reports."""

    total_projects: int
    total_packages: int
    vulnerable_packages: int
    critical_vulnerabilities: int = 0
    high_vulnerabilities: int = 0
    moderate_vulnerabilities: int = 0
    low_vulnerabilities: int = 0
    unknown_vulnerabilities: int = 0

    @property
    def total_vulnerabilities(self) -> int:
        return (
            self.critical_vulnerabilities
            + self.high_vulnerabilities
            + self.moderate_vulnerabilities
            + self.low_vulnerabilities
            + self.unknown_vulnerabilities
        )

    @classmethod
    def from_packages(
        cls,
        vulnerable_packages: Iterable[VulnerablePackage],
        total_projects: int,
        total_packages: int,
    ) -> "ScanSummary":
        counts: Dict[Severity, int] = {severity: 0 for severity in Severity}
        package_count = 0
        for vulnerable in vulnerable_packages:
            package_count += 1
            for vulnerability in vulnerable.vulnerabilities:
                counts[vulnerability.severity] += 1
        return cls(
            total_projects=total_projects,
            total_packages=total_packages,
            vulnerable_packages=package_count,
            critical_vulnerabilities=counts[Severity.CRITICAL],
            high_vulnerabilities=counts[Severity.HIGH],
            moderate_vulnerabilities=counts[Severity.MODERATE],
            low_vulnerabilities=counts[Severity.LOW],
            unknown_vulnerabilities=counts[Severity.UNKNOWN],
        )


@dataclass
class ScanResult:
    """Output of one vulnerability scan."""

    solution_path: str
    scan_date: datetime
    vulnerable_packages: List[VulnerablePackage]
    scanned_projects: List[ProjectInfo]
    summary: ScanSummary
    scan_duration: timedelta = timedelta(0)
    scan_version: Optional[str] = None

    @property
    def has_vulnerabilities(self) -> bool:
        return self.summary.vulnerable_packages > 0

    @property
    def has_critical_vulnerabilities(self) -> bool:
        return self.summary.critical_vulnerabilities > 0

    def get_vulnerable_packages_by_severity(self, severity: Severity) -> List[VulnerablePackage]:
        return [
            vp for vp in self.vulnerable_packages
            if any(v.severity == severity for v in vp.vulnerabilities)
        ]

    def get_highest_severity(self) -> Severity:
        if not self.vulnerable_packages:
            return Severity.UNKNOWN
        return max(vp.highest_severity for vp in self.vulnerable_packages)


class UpdateType(str, Enum):
    MAJOR = "major"
    MINOR = "minor"
    PATCH = "patch"
    SECURITY = "security"
    MANUAL = "manual"


class BreakingChangeSeverity(IntEnum):
    LOW = 0
    MEDIUM = 1
    HIGH = 2
    CRITICAL = 3


@dataclass(frozen=True)
class BreakingChange:
    type: str
    description: str
    severity: BreakingChangeSeverity
    mitigation: Optional[str] = None
    affected_api: Optional[str] = None


@dataclass
class PackageUpdate:
    """A planned move of one package to a target version."""

    current_package: PackageReference
    target_version: SemVersion
    affected_projects: List[str]
    vulnerabilities_fixed: List[Vulnerability]
    update_type: UpdateType
    update_reason: Optional[str] = None
    potential_breaking_changes: List[BreakingChange] = field(default_factory=list)
    requires_manual_review: bool = False

    @property
    def package_id(self) -> str:
        return self.current_package.id

    @property
    def is_major_version_update(self) -> bool:
        return self.current_package.version.major != self.target_version.major

    @property
    def is_minor_version_update(self) -> bool:
        return (
            not self.is_major_version_update
            and self.current_package.version.minor != self.target_version.minor
        )

    @property
    def is_patch_version_update(self) -> bool:
        return (
            not self.is_major_version_update
            and not self.is_minor_version_update
            and self.current_package.version.patch != self.target_version.patch
        )


class UpdateStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"
    REQUIRES_MANUAL_INTERVENTION = "requires-manual-intervention"


@dataclass(frozen=True)
class BackupFile:
    original_path: str
    content: str
    backed_up_at: datetime = field(default_factory=utcnow)


def new_backup_id() -> str:
    return uuid.uuid4().hex[:8]


@dataclass(frozen=True)
class UpdateBackup:
    """Snapshot of project files taken before any write."""

    backup_id: str
    created_at: datetime
    files: Tuple[BackupFile, ...]
    description: str

    @property
    def paths(self) -> List[str]:
        return [f.original_path for f in self.files]


@dataclass
class UpdateResult:
    """Outcome of executing one PackageUpdate."""

    update: PackageUpdate
    status: UpdateStatus
    error_message: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    updated_at: datetime = field(default_factory=utcnow)
    duration: timedelta = timedelta(0)
    backup: Optional[UpdateBackup] = None

    @property
    def is_successful(self) -> bool:
        return self.status == UpdateStatus.SUCCESS

    @property
    def requires_rollback(self) -> bool:
        return self.status == UpdateStatus.FAILED and self.backup is not None


@dataclass
class ValidationResult:
    """Result of building projects after an update."""

    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    duration: timedelta = timedelta(0)
