"""
Match installed package versions against published advisories.
"""

from __future__ import annotations

import fnmatch
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from .config import ScanOptions
from .models import (
    DependencyGraph,
    PackageReference,
    ScanResult,
    ScanSummary,
    Vulnerability,
    VulnerablePackage,
)
from .time_utils import utcnow
from .versioning import SemVersion


logger = logging.getLogger(__name__)


def is_affected(version: SemVersion, vulnerability: Vulnerability) -> bool:
    """Whether ``version`` falls inside the vulnerable range of ``vulnerability``.

    An explicitly listed affected version always matches. Otherwise a patch on the
    same major line bounds the range: versions below the lowest such patch are
    affected. Without one, any newer patched version marks ``version`` affected.
    An advisory that lists neither affected nor patched versions affects all
    versions.
    """
    if version in vulnerability.affected_versions:
        return True

    patched = vulnerability.patched_versions
    if not patched:
        return not vulnerability.affected_versions

    same_line = [p for p in patched if p.major == version.major]
    if same_line:
        return version < min(same_line)
    return any(p > version for p in patched)


def matches_exclusion(package_id: str, patterns: Iterable[str]) -> bool:
    """Case-insensitive wildcard match, or substring match for plain patterns."""
    folded = package_id.casefold()
    for pattern in patterns:
        if not pattern:
            continue
        lowered = pattern.casefold()
        if "*" in lowered or "?" in lowered:
            if fnmatch.fnmatchcase(folded, lowered):
                return True
        elif lowered in folded:
            return True
    return False


class VulnerabilityMatcher:
    """Pure matching of packages against advisories."""

    def match(
        self,
        packages: Iterable[PackageReference],
        vulnerabilities_by_id: Dict[str, List[Vulnerability]],
        options: Optional[ScanOptions] = None,
    ) -> List[VulnerablePackage]:
        options = options or ScanOptions()
        advisories = {k.casefold(): v for k, v in vulnerabilities_by_id.items()}

        grouped: Dict[str, VulnerablePackage] = {}
        for package in packages:
            if matches_exclusion(package.id, options.exclude_packages):
                continue
            vulnerable = grouped.get(package.key)
            if vulnerable is not None:
                if package.is_direct_dependency and not vulnerable.package.is_direct_dependency:
                    vulnerable.package = package
                if package.project_path not in vulnerable.affected_projects:
                    vulnerable.affected_projects.append(package.project_path)
                continue

            found = [
                v for v in advisories.get(package.id.casefold(), [])
                if is_affected(package.version, v)
            ]
            if not found:
                continue
            grouped[package.key] = VulnerablePackage(
                package=package,
                vulnerabilities=found,
                affected_projects=[package.project_path],
            )

        result = [
            vp for vp in grouped.values()
            if vp.highest_severity >= options.minimum_severity
        ]
        result.sort(key=lambda vp: (-vp.highest_severity, vp.package.id.casefold(), vp.package.version))
        logger.debug("%s of %s package versions are vulnerable", len(result), len(grouped))
        return result

    def build_result(
        self,
        graph: DependencyGraph,
        vulnerable_packages: List[VulnerablePackage],
        scanned_packages: int,
        started: Optional[datetime] = None,
        scan_version: Optional[str] = None,
    ) -> ScanResult:
        now = utcnow()
        started = started or now
        return ScanResult(
            solution_path=graph.root_path,
            scan_date=now,
            vulnerable_packages=vulnerable_packages,
            scanned_projects=list(graph.projects),
            summary=ScanSummary.from_packages(
                vulnerable_packages,
                total_projects=len(graph.projects),
                total_packages=scanned_packages,
            ),
            scan_duration=now - started,
            scan_version=scan_version,
        )
