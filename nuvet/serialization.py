"""
JSON-ready dictionaries for graphs, scan results, update results and backups.

Keys mirror the dataclass fields. Dependency edges are written as
``{"id", "version"}`` pairs and resolved against the package list on load, so
cyclic graphs round-trip.
"""

from __future__ import annotations

import json
from datetime import timedelta
from typing import Any, Dict, List, Optional

from .models import (
    BackupFile,
    BreakingChange,
    BreakingChangeSeverity,
    DependencyGraph,
    PackageReference,
    PackageUpdate,
    ProjectInfo,
    ProjectType,
    ReferenceSource,
    ScanResult,
    ScanSummary,
    Severity,
    UpdateBackup,
    UpdateResult,
    UpdateStatus,
    UpdateType,
    Vulnerability,
    VulnerablePackage,
    package_key,
)
from .time_utils import format_timestamp, parse_timestamp
from .versioning import SemVersion


def _seconds(value: timedelta) -> float:
    return value.total_seconds()


def reference_to_dict(package: PackageReference, include_edges: bool = True) -> Dict[str, Any]:
    data = {
        "id": package.id,
        "version": str(package.version),
        "project_path": package.project_path,
        "target_framework": package.target_framework,
        "is_direct_dependency": package.is_direct_dependency,
        "source": package.source.value,
    }
    if include_edges:
        data["dependencies"] = [
            {"id": d.id, "version": str(d.version)} for d in package.dependencies
        ]
    return data


def reference_from_dict(data: Dict[str, Any]) -> PackageReference:
    return PackageReference(
        id=data["id"],
        version=SemVersion.parse(data["version"]),
        project_path=data["project_path"],
        target_framework=data.get("target_framework"),
        is_direct_dependency=data.get("is_direct_dependency", True),
        source=ReferenceSource(data.get("source", ReferenceSource.DECLARED_REFERENCE.value)),
    )


def project_to_dict(project: ProjectInfo) -> Dict[str, Any]:
    return {
        "name": project.name,
        "path": project.path,
        "target_framework": project.target_framework,
        "type": project.type.value,
        "output_type": project.output_type,
        "target_frameworks": list(project.target_frameworks),
        "package_references": [
            reference_to_dict(p, include_edges=False) for p in project.package_references
        ],
    }


def project_from_dict(data: Dict[str, Any], known: Optional[Dict[tuple, PackageReference]] = None) -> ProjectInfo:
    known = known or {}
    references = []
    for item in data.get("package_references", []):
        reference = reference_from_dict(item)
        references.append(known.get((reference.key, reference.project_path), reference))
    return ProjectInfo(
        name=data["name"],
        path=data["path"],
        target_framework=data["target_framework"],
        type=ProjectType(data.get("type", ProjectType.OTHER.value)),
        output_type=data.get("output_type"),
        target_frameworks=list(data.get("target_frameworks", [])),
        package_references=references,
    )


def graph_to_dict(graph: DependencyGraph) -> Dict[str, Any]:
    return {
        "root_path": graph.root_path,
        "created_at": format_timestamp(graph.created_at),
        "projects": [project_to_dict(p) for p in graph.projects],
        "all_packages": [reference_to_dict(p) for p in graph.all_packages],
        "warnings": list(graph.warnings),
    }


def graph_from_dict(data: Dict[str, Any]) -> DependencyGraph:
    packages = []
    index: Dict[str, PackageReference] = {}
    by_project: Dict[tuple, PackageReference] = {}
    for item in data.get("all_packages", []):
        package = reference_from_dict(item)
        packages.append(package)
        index.setdefault(package.key, package)
        by_project.setdefault((package.key, package.project_path), package)

    for package, item in zip(packages, data.get("all_packages", [])):
        for edge in item.get("dependencies", []):
            target = index.get(package_key(edge["id"], SemVersion.parse(edge["version"])))
            if target is not None:
                package.dependencies.append(target)

    return DependencyGraph(
        root_path=data["root_path"],
        projects=[project_from_dict(p, by_project) for p in data.get("projects", [])],
        all_packages=packages,
        created_at=parse_timestamp(data.get("created_at")),
        warnings=list(data.get("warnings", [])),
    )


def vulnerability_to_dict(vulnerability: Vulnerability) -> Dict[str, Any]:
    return {
        "id": vulnerability.id,
        "title": vulnerability.title,
        "description": vulnerability.description,
        "severity": vulnerability.severity.name.lower(),
        "package_id": vulnerability.package_id,
        "affected_versions": [str(v) for v in vulnerability.affected_versions],
        "patched_versions": [str(v) for v in vulnerability.patched_versions],
        "advisory_url": vulnerability.advisory_url,
        "published_at": format_timestamp(vulnerability.published_at),
    }


def vulnerability_from_dict(data: Dict[str, Any]) -> Vulnerability:
    return Vulnerability(
        id=data["id"],
        title=data.get("title", ""),
        description=data.get("description", ""),
        severity=Severity.parse(data.get("severity")),
        package_id=data["package_id"],
        affected_versions=[SemVersion.parse(v) for v in data.get("affected_versions", [])],
        patched_versions=[SemVersion.parse(v) for v in data.get("patched_versions", [])],
        advisory_url=data.get("advisory_url"),
        published_at=parse_timestamp(data.get("published_at")),
    )


def vulnerable_package_to_dict(vulnerable: VulnerablePackage) -> Dict[str, Any]:
    return {
        "package": reference_to_dict(vulnerable.package, include_edges=False),
        "vulnerabilities": [vulnerability_to_dict(v) for v in vulnerable.vulnerabilities],
        "affected_projects": list(vulnerable.affected_projects),
        "highest_severity": vulnerable.highest_severity.name.lower(),
        "suggested_update_versions": [str(v) for v in vulnerable.get_suggested_update_versions()],
    }


def vulnerable_package_from_dict(data: Dict[str, Any]) -> VulnerablePackage:
    return VulnerablePackage(
        package=reference_from_dict(data["package"]),
        vulnerabilities=[vulnerability_from_dict(v) for v in data.get("vulnerabilities", [])],
        affected_projects=list(data.get("affected_projects", [])),
    )


def summary_to_dict(summary: ScanSummary) -> Dict[str, Any]:
    return {
        "total_projects": summary.total_projects,
        "total_packages": summary.total_packages,
        "vulnerable_packages": summary.vulnerable_packages,
        "critical_vulnerabilities": summary.critical_vulnerabilities,
        "high_vulnerabilities": summary.high_vulnerabilities,
        "moderate_vulnerabilities": summary.moderate_vulnerabilities,
        "low_vulnerabilities": summary.low_vulnerabilities,
        "unknown_vulnerabilities": summary.unknown_vulnerabilities,
        "total_vulnerabilities": summary.total_vulnerabilities,
    }


def summary_from_dict(data: Dict[str, Any]) -> ScanSummary:
    fields = {k: v for k, v in data.items() if k != "total_vulnerabilities"}
    return ScanSummary(**fields)


def scan_result_to_dict(result: ScanResult) -> Dict[str, Any]:
    return {
        "solution_path": result.solution_path,
        "scan_date": format_timestamp(result.scan_date),
        "scan_duration": _seconds(result.scan_duration),
        "scan_version": result.scan_version,
        "summary": summary_to_dict(result.summary),
        "scanned_projects": [project_to_dict(p) for p in result.scanned_projects],
        "vulnerable_packages": [vulnerable_package_to_dict(v) for v in result.vulnerable_packages],
    }


def scan_result_from_dict(data: Dict[str, Any]) -> ScanResult:
    return ScanResult(
        solution_path=data["solution_path"],
        scan_date=parse_timestamp(data.get("scan_date")),
        vulnerable_packages=[vulnerable_package_from_dict(v) for v in data.get("vulnerable_packages", [])],
        scanned_projects=[project_from_dict(p) for p in data.get("scanned_projects", [])],
        summary=summary_from_dict(data["summary"]),
        scan_duration=timedelta(seconds=data.get("scan_duration", 0)),
        scan_version=data.get("scan_version"),
    )


def breaking_change_to_dict(change: BreakingChange) -> Dict[str, Any]:
    return {
        "type": change.type,
        "description": change.description,
        "severity": change.severity.name.lower(),
        "mitigation": change.mitigation,
        "affected_api": change.affected_api,
    }


def update_to_dict(update: PackageUpdate) -> Dict[str, Any]:
    return {
        "current_package": reference_to_dict(update.current_package, include_edges=False),
        "target_version": str(update.target_version),
        "affected_projects": list(update.affected_projects),
        "vulnerabilities_fixed": [vulnerability_to_dict(v) for v in update.vulnerabilities_fixed],
        "update_type": update.update_type.value,
        "update_reason": update.update_reason,
        "potential_breaking_changes": [
            breaking_change_to_dict(c) for c in update.potential_breaking_changes
        ],
        "requires_manual_review": update.requires_manual_review,
    }


def update_from_dict(data: Dict[str, Any]) -> PackageUpdate:
    return PackageUpdate(
        current_package=reference_from_dict(data["current_package"]),
        target_version=SemVersion.parse(data["target_version"]),
        affected_projects=list(data.get("affected_projects", [])),
        vulnerabilities_fixed=[vulnerability_from_dict(v) for v in data.get("vulnerabilities_fixed", [])],
        update_type=UpdateType(data["update_type"]),
        update_reason=data.get("update_reason"),
        potential_breaking_changes=[
            BreakingChange(
                type=c["type"],
                description=c["description"],
                severity=BreakingChangeSeverity[c["severity"].upper()],
                mitigation=c.get("mitigation"),
                affected_api=c.get("affected_api"),
            )
            for c in data.get("potential_breaking_changes", [])
        ],
        requires_manual_review=data.get("requires_manual_review", False),
    )


def backup_to_dict(backup: UpdateBackup) -> Dict[str, Any]:
    return {
        "backup_id": backup.backup_id,
        "created_at": format_timestamp(backup.created_at),
        "description": backup.description,
        "files": [
            {
                "original_path": f.original_path,
                "content": f.content,
                "backed_up_at": format_timestamp(f.backed_up_at),
            }
            for f in backup.files
        ],
    }


def backup_from_dict(data: Dict[str, Any]) -> UpdateBackup:
    return UpdateBackup(
        backup_id=data["backup_id"],
        created_at=parse_timestamp(data["created_at"]),
        description=data.get("description", ""),
        files=tuple(
            BackupFile(
                original_path=f["original_path"],
                content=f["content"],
                backed_up_at=parse_timestamp(f.get("backed_up_at")),
            )
            for f in data.get("files", [])
        ),
    )


def update_result_to_dict(result: UpdateResult, include_backup_content: bool = False) -> Dict[str, Any]:
    backup = None
    if result.backup is not None:
        backup = backup_to_dict(result.backup)
        if not include_backup_content:
            backup["files"] = [{"original_path": p} for p in result.backup.paths]
    return {
        "update": update_to_dict(result.update),
        "status": result.status.value,
        "error_message": result.error_message,
        "warnings": list(result.warnings),
        "updated_at": format_timestamp(result.updated_at),
        "duration": _seconds(result.duration),
        "backup": backup,
    }


def update_result_from_dict(data: Dict[str, Any]) -> UpdateResult:
    backup = data.get("backup")
    return UpdateResult(
        update=update_from_dict(data["update"]),
        status=UpdateStatus(data["status"]),
        error_message=data.get("error_message"),
        warnings=list(data.get("warnings", [])),
        updated_at=parse_timestamp(data.get("updated_at")),
        duration=timedelta(seconds=data.get("duration", 0)),
        backup=backup_from_dict(backup) if backup and all("content" in f for f in backup["files"]) else None,
    )


def dumps(data: Dict[str, Any]) -> str:
    return json.dumps(data, indent=2)


def results_to_list(results: List[UpdateResult]) -> List[Dict[str, Any]]:
    return [update_result_to_dict(r) for r in results]
