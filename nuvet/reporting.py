"""
Reporting and export utilities.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set

import pandas as pd

from .models import DependencyGraph, PackageReference, ScanResult, Severity, UpdateResult, UpdateStatus
from .serialization import graph_to_dict, results_to_list, scan_result_to_dict


logger = logging.getLogger(__name__)

VULNERABILITY_COLUMNS = [
    "package_id",
    "version",
    "is_direct_dependency",
    "vulnerability_id",
    "severity",
    "title",
    "patched_versions",
    "suggested_version",
    "advisory_url",
    "published_at",
    "affected_projects",
]

UPDATE_COLUMNS = [
    "package_id",
    "current_version",
    "target_version",
    "update_type",
    "status",
    "requires_manual_review",
    "vulnerabilities_fixed",
    "error",
    "warnings",
    "backup_id",
    "duration_seconds",
]


def print_scan_summary(result: ScanResult) -> None:
    summary = result.summary
    logger.info("=" * 60)
    logger.info("VULNERABILITY SCAN RESULTS")
    logger.info("=" * 60)
    logger.info("Path: %s", result.solution_path)
    logger.info("Projects scanned: %s", summary.total_projects)
    logger.info("Packages scanned: %s", summary.total_packages)
    logger.info("Vulnerable packages: %s", summary.vulnerable_packages)
    logger.info("-" * 60)
    logger.info("Critical: %s", summary.critical_vulnerabilities)
    logger.info("High: %s", summary.high_vulnerabilities)
    logger.info("Moderate: %s", summary.moderate_vulnerabilities)
    logger.info("Low: %s", summary.low_vulnerabilities)
    if summary.unknown_vulnerabilities:
        logger.info("Unknown: %s", summary.unknown_vulnerabilities)
    logger.info("-" * 60)
    for vulnerable in result.vulnerable_packages:
        suggested = vulnerable.get_suggested_update_versions()
        logger.info(
            "[%s] %s %s (%s advisories)%s",
            vulnerable.highest_severity.label,
            vulnerable.package.id,
            vulnerable.package.version,
            len(vulnerable.vulnerabilities),
            f" -> {suggested[0]}" if suggested else "",
        )
        for vulnerability in vulnerable.vulnerabilities:
            logger.info("    %s %s", vulnerability.id, vulnerability.title)
    logger.info("Scan duration: %.2fs", result.scan_duration.total_seconds())
    logger.info("=" * 60)


def dependency_tree_lines(package: PackageReference) -> List[str]:
    """Render ``package`` and everything below it as an indented tree.

    A package already shown earlier in the tree is printed once more with a
    ``(*)`` marker and not expanded again, which also stops dependency cycles.
    """
    lines = [f"{package.id} {package.version}"]
    visited: Set[str] = {package.key}

    def walk(node: PackageReference, prefix: str) -> None:
        for index, child in enumerate(node.dependencies):
            last = index == len(node.dependencies) - 1
            branch = "`-- " if last else "|-- "
            if child.key in visited:
                lines.append(f"{prefix}{branch}{child.id} {child.version} (*)")
                continue
            visited.add(child.key)
            lines.append(f"{prefix}{branch}{child.id} {child.version}")
            walk(child, prefix + ("    " if last else "|   "))

    walk(package, "")
    return lines


def print_dependency_graph(graph: DependencyGraph, show_transitive: bool = False, tree: bool = False) -> None:
    logger.info("=" * 60)
    logger.info("DEPENDENCY ANALYSIS")
    logger.info("=" * 60)
    for project in graph.projects:
        direct = graph.get_direct_dependencies(project.path)
        logger.info("%s (%s): %s direct packages", project.name, project.target_framework, len(direct))
        for package in direct:
            if tree:
                lines = dependency_tree_lines(package)
                lines[0] += f" ({len(graph.get_transitive_dependencies(package))} transitive)"
                for line in lines:
                    logger.info("    %s", line)
                continue
            logger.info("    %s %s", package.id, package.version)
            if show_transitive:
                for dependency in graph.get_transitive_dependencies(package):
                    logger.info("        %s %s", dependency.id, dependency.version)
    logger.info("-" * 60)
    logger.info("Unique packages: %s", len(graph.get_unique_packages()))
    for warning in graph.warnings:
        logger.warning("%s", warning)
    logger.info("=" * 60)


def print_update_results(results: Iterable[UpdateResult]) -> None:
    results = list(results)
    counts = {status: 0 for status in UpdateStatus}
    logger.info("=" * 60)
    logger.info("UPDATE RESULTS")
    logger.info("=" * 60)
    for result in results:
        counts[result.status] += 1
        update = result.update
        line = f"[{result.status.value}] {update.package_id} {update.current_package.version} -> {update.target_version}"
        if result.error_message:
            line += f": {result.error_message}"
        if result.status == UpdateStatus.FAILED:
            logger.error("%s", line)
        else:
            logger.info("%s", line)
    logger.info("-" * 60)
    logger.info(
        "Succeeded: %s  Failed: %s  Skipped: %s  Manual intervention: %s",
        counts[UpdateStatus.SUCCESS],
        counts[UpdateStatus.FAILED],
        counts[UpdateStatus.SKIPPED],
        counts[UpdateStatus.REQUIRES_MANUAL_INTERVENTION],
    )
    logger.info("=" * 60)


def save_json(data: Any, output_file: Path) -> Path:
    output_file = Path(output_file)
    output_file.parent.mkdir(parents=True, exist_ok=True)
    with open(output_file, "w") as f:
        json.dump(data, f, indent=2, default=str)
    return output_file


def save_scan_json(result: ScanResult, output_file: Path) -> Path:
    return save_json(scan_result_to_dict(result), output_file)


def save_graph_json(graph: DependencyGraph, output_file: Path) -> Path:
    return save_json(graph_to_dict(graph), output_file)


def save_update_results_json(results: List[UpdateResult], output_file: Path) -> Path:
    return save_json(results_to_list(results), output_file)


def vulnerabilities_frame(result: ScanResult) -> pd.DataFrame:
    rows: List[Dict] = []
    for vulnerable in result.vulnerable_packages:
        suggested = vulnerable.get_suggested_update_versions()
        for vulnerability in vulnerable.vulnerabilities:
            rows.append({
                "package_id": vulnerable.package.id,
                "version": str(vulnerable.package.version),
                "is_direct_dependency": vulnerable.package.is_direct_dependency,
                "vulnerability_id": vulnerability.id,
                "severity": vulnerability.severity.label,
                "title": vulnerability.title,
                "patched_versions": ", ".join(str(v) for v in vulnerability.patched_versions),
                "suggested_version": str(suggested[0]) if suggested else None,
                "advisory_url": vulnerability.advisory_url,
                "published_at": vulnerability.published_at,
                "affected_projects": "; ".join(vulnerable.affected_projects),
            })
    df = pd.DataFrame(rows, columns=VULNERABILITY_COLUMNS)
    df["published_at"] = pd.to_datetime(df["published_at"], utc=True)
    return df


def update_results_frame(results: Iterable[UpdateResult]) -> pd.DataFrame:
    rows = [{
        "package_id": r.update.package_id,
        "current_version": str(r.update.current_package.version),
        "target_version": str(r.update.target_version),
        "update_type": r.update.update_type.value,
        "status": r.status.value,
        "requires_manual_review": r.update.requires_manual_review,
        "vulnerabilities_fixed": len(r.update.vulnerabilities_fixed),
        "error": r.error_message,
        "warnings": "; ".join(r.warnings),
        "backup_id": r.backup.backup_id if r.backup else None,
        "duration_seconds": r.duration.total_seconds(),
    } for r in results]
    return pd.DataFrame(rows, columns=UPDATE_COLUMNS)


def _strip_timezones(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    for col in df.columns:
        if isinstance(df[col].dtype, pd.DatetimeTZDtype):
            df[col] = df[col].dt.tz_convert("UTC").dt.tz_localize(None)
    return df


def export_scan_csv(result: ScanResult, output_dir: Path, name: str = "scan") -> Path:
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    csv_file = output_dir / f"{name}_vulnerabilities.csv"
    _strip_timezones(vulnerabilities_frame(result)).to_csv(csv_file, index=False)
    return csv_file


def export_update_results_csv(results: Iterable[UpdateResult], output_dir: Path, name: str = "update") -> Path:
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    csv_file = output_dir / f"{name}_results.csv"
    update_results_frame(results).to_csv(csv_file, index=False)
    return csv_file


def export_worksheets(result: ScanResult, output_dir: Path, name: str = "scan") -> Optional[Path]:
    """Write a workbook with a summary sheet, every advisory, and one sheet per severity."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    excel_file = output_dir / f"{name}_worksheets.xlsx"

    summary = scan_result_to_dict(result)["summary"]
    summary_df = pd.DataFrame({"metric": list(summary), "value": list(summary.values())})
    vulnerabilities = _strip_timezones(vulnerabilities_frame(result))

    with pd.ExcelWriter(excel_file, engine="openpyxl") as writer:
        summary_df.to_excel(writer, sheet_name="Summary", index=False)
        vulnerabilities.to_excel(writer, sheet_name="Vulnerabilities", index=False)
        for severity in sorted(Severity, reverse=True):
            subset = vulnerabilities[vulnerabilities["severity"] == severity.label]
            if len(subset) == 0:
                continue
            # Excel sheet names have a 31 character limit
            subset.to_excel(writer, sheet_name=severity.label[:31], index=False)
    return excel_file
