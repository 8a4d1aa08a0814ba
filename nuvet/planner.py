"""
Decide which vulnerable packages get updated and to which version.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .config import UpdateOptions
from .interfaces import BreakingChangePolicy
from .matcher import matches_exclusion
from .models import (
    BreakingChange,
    BreakingChangeSeverity,
    PackageReference,
    PackageUpdate,
    ScanResult,
    UpdateType,
    VulnerablePackage,
)
from .versioning import SemVersion


logger = logging.getLogger(__name__)

SKIP_EXCLUDED = "excluded by package filter"
SKIP_BELOW_THRESHOLD = "below minimum severity to update"
SKIP_NO_SAFE_VERSION = "no safe version available"
SKIP_NO_NEWER_VERSION = "no safe version newer than the installed one"
SKIP_BAD_OVERRIDE = "version override is not a valid version"
SKIP_TRANSITIVE = "transitive dependency not declared by any project"


def classify_update(current: SemVersion, target: SemVersion) -> UpdateType:
    if current.major != target.major:
        return UpdateType.MAJOR
    if current.minor != target.minor:
        return UpdateType.MINOR
    if current.patch != target.patch:
        return UpdateType.PATCH
    return UpdateType.SECURITY


class MajorVersionPolicy(BreakingChangePolicy):
    """Flag every major version bump as a potential breaking change."""

    def assess(self, current: SemVersion, target: SemVersion) -> List[BreakingChange]:
        if target.major <= current.major:
            return []
        return [BreakingChange(
            type="major-version",
            description=f"Major version change from {current} to {target}",
            severity=BreakingChangeSeverity.HIGH,
            mitigation="Review the package release notes before updating",
        )]


@dataclass(frozen=True)
class SkippedPackage:
    package: PackageReference
    reason: str


@dataclass
class UpdatePlan:
    updates: List[PackageUpdate] = field(default_factory=list)
    skipped: List[SkippedPackage] = field(default_factory=list)


class UpdatePlanner:
    """Turn a scan result into update plans. No I/O; inputs are never mutated."""

    def __init__(self, breaking_change_policy: Optional[BreakingChangePolicy] = None) -> None:
        self.breaking_change_policy = breaking_change_policy or MajorVersionPolicy()

    def plan(self, scan_result: ScanResult, options: Optional[UpdateOptions] = None) -> UpdatePlan:
        options = options or UpdateOptions()
        overrides: Dict[str, str] = {
            k.casefold(): v for k, v in options.version_overrides.items()
        }
        plan = UpdatePlan()

        for vulnerable in scan_result.vulnerable_packages:
            package = vulnerable.package
            if matches_exclusion(package.id, options.exclude_packages):
                plan.skipped.append(SkippedPackage(package, SKIP_EXCLUDED))
                continue
            if vulnerable.highest_severity < options.minimum_severity_to_update:
                plan.skipped.append(SkippedPackage(package, SKIP_BELOW_THRESHOLD))
                continue
            if not package.is_direct_dependency:
                logger.warning(
                    "%s %s is only pulled in transitively; update the package that depends on it",
                    package.id, package.version,
                )
                plan.skipped.append(SkippedPackage(package, SKIP_TRANSITIVE))
                continue

            override = overrides.get(package.id.casefold())
            if override is not None:
                target = SemVersion.try_parse(override)
                if target is None:
                    logger.warning("Ignoring invalid version override %r for %s", override, package.id)
                    plan.skipped.append(SkippedPackage(package, SKIP_BAD_OVERRIDE))
                    continue
                plan.updates.append(self._build_update(
                    vulnerable, target, UpdateType.MANUAL,
                    f"Pinned to {target} by version override",
                ))
                continue

            suggested = vulnerable.get_suggested_update_versions()
            if not suggested:
                logger.warning(
                    "No safe version available for %s %s", package.id, package.version
                )
                plan.skipped.append(SkippedPackage(package, SKIP_NO_SAFE_VERSION))
                continue

            newer = [v for v in suggested if v > package.version]
            if not newer:
                plan.skipped.append(SkippedPackage(package, SKIP_NO_NEWER_VERSION))
                continue

            target = newer[-1] if options.prefer_latest else newer[0]
            plan.updates.append(self._build_update(
                vulnerable, target, classify_update(package.version, target),
                f"Fixes {len(vulnerable.vulnerabilities)} vulnerabilities "
                f"(highest severity: {vulnerable.highest_severity.label})",
            ))

        logger.info(
            "Planned %s updates, skipped %s packages", len(plan.updates), len(plan.skipped)
        )
        return plan

    def _build_update(
        self,
        vulnerable: VulnerablePackage,
        target: SemVersion,
        update_type: UpdateType,
        reason: str,
    ) -> PackageUpdate:
        current = vulnerable.package.version
        breaking = self.breaking_change_policy.assess(current, target)
        return PackageUpdate(
            current_package=vulnerable.package,
            target_version=target,
            affected_projects=list(vulnerable.affected_projects),
            vulnerabilities_fixed=list(vulnerable.vulnerabilities),
            update_type=update_type,
            update_reason=reason,
            potential_breaking_changes=breaking,
            requires_manual_review=current.major != target.major or bool(breaking),
        )
