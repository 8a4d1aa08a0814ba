"""
Command-line interface for NuVet.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__, api
from .config import ScanOptions, Settings, UpdateOptions
from .exceptions import NuVetError
from .models import Severity, UpdateStatus
from .osv_builder import OSVBuilder
from .reporting import (
    export_scan_csv,
    export_update_results_csv,
    export_worksheets,
    print_dependency_graph,
    print_scan_summary,
    print_update_results,
    save_graph_json,
    save_scan_json,
    save_update_results_json,
)
from .serialization import scan_result_to_dict


logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_VULNERABLE = 1
EXIT_CRITICAL = 2
EXIT_ERROR = 1

SEVERITY_CHOICES = ["low", "moderate", "medium", "high", "critical"]


def _severity(value: str) -> Severity:
    severity = Severity.parse(value)
    if severity == Severity.UNKNOWN:
        raise argparse.ArgumentTypeError(f"invalid severity: {value}")
    return severity


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nuvet",
        description="Scan .NET projects for vulnerable NuGet packages and update them"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging"
    )
    parser.add_argument(
        "--offline",
        action="store_true",
        help="Use the local OSV database built with 'build-osv' instead of the OSV API"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    scan = subparsers.add_parser("scan", help="Scan for vulnerable packages")
    scan.add_argument("path", help="Path to solution, project, or directory to scan")
    scan.add_argument("--output", default=None, help="Write the scan result as JSON to this file")
    scan.add_argument("--json", action="store_true", help="Print the scan result as JSON")
    scan.add_argument(
        "--min-severity",
        type=_severity,
        default=Severity.LOW,
        help=f"Minimum severity level to report ({', '.join(SEVERITY_CHOICES)}). Default: low"
    )
    scan.add_argument(
        "--exclude",
        action="append",
        default=[],
        help="Package id or wildcard pattern to exclude (repeatable)"
    )
    scan.add_argument(
        "--no-transitive",
        action="store_true",
        help="Only scan direct dependencies"
    )
    scan.add_argument(
        "--project",
        action="append",
        default=[],
        help="Only scan projects whose path contains this text (repeatable)"
    )
    scan.add_argument("--csv", action="store_true", help="Export vulnerable packages to CSV")
    scan.add_argument(
        "--worksheets",
        action="store_true",
        help="Export the scan to an Excel file with multiple sheets"
    )
    scan.add_argument("--output-dir", default="./output", help="Directory for CSV and Excel exports. Default: ./output")

    analyze = subparsers.add_parser("analyze", help="Analyze project dependencies")
    analyze.add_argument("path", help="Path to solution, project, or directory to analyze")
    analyze.add_argument("--output", default=None, help="Write the dependency graph as JSON to this file")
    analyze.add_argument(
        "--show-transitive",
        action="store_true",
        help="List transitive dependencies under each direct package"
    )
    analyze.add_argument(
        "--tree",
        action="store_true",
        help="Print each direct package with its full dependency tree"
    )
    analyze.add_argument(
        "--no-transitive",
        action="store_true",
        help="Do not resolve transitive dependencies"
    )

    update = subparsers.add_parser("update", help="Update vulnerable packages to safe versions")
    update.add_argument("path", help="Path to solution, project, or directory to update")
    update.add_argument("--dry-run", action="store_true", help="Show what would be updated without making changes")
    update.add_argument(
        "--auto-approve",
        action="store_true",
        help="Approve major and minor updates as well as patch updates"
    )
    update.add_argument("--prefer-latest", action="store_true", help="Update to the newest safe version")
    update.add_argument("--min-severity", type=_severity, default=Severity.LOW, help="Minimum severity to update")
    update.add_argument("--exclude", action="append", default=[], help="Package to exclude from updates (repeatable)")
    update.add_argument(
        "--pin",
        action="append",
        default=[],
        metavar="ID=VERSION",
        help="Update a package to an explicit version (repeatable)"
    )
    update.add_argument("--no-backup", action="store_true", help="Skip the batch backup before updates")
    update.add_argument("--no-validation", action="store_true", help="Skip build validation after updates")
    update.add_argument("--no-rollback", action="store_true", help="Keep changes when an update fails")
    update.add_argument("--output", default=None, help="Write update results as JSON to this file")
    update.add_argument("--csv", action="store_true", help="Export update results to CSV")
    update.add_argument("--output-dir", default="./output", help="Directory for CSV exports. Default: ./output")

    restore = subparsers.add_parser("restore", help="Restore files from a backup")
    restore.add_argument("backup_id", help="Identifier of the backup to restore")

    subparsers.add_parser("backups", help="List available backups")

    build_osv = subparsers.add_parser("build-osv", help="Build the local OSV vulnerability database")
    build_osv.add_argument("--force", action="store_true", help="Rebuild even if a database exists")

    return parser


def _parse_pins(values: List[str], parser: argparse.ArgumentParser) -> dict:
    pins = {}
    for value in values:
        package_id, sep, version = value.partition("=")
        if not sep or not package_id.strip() or not version.strip():
            parser.error(f"--pin expects ID=VERSION, got {value!r}")
        pins[package_id.strip()] = version.strip()
    return pins


def scan_exit_code(result) -> int:
    if result.has_critical_vulnerabilities:
        return EXIT_CRITICAL
    if result.has_vulnerabilities:
        return EXIT_VULNERABLE
    return EXIT_OK


def run_scan(args, settings: Settings) -> int:
    options = ScanOptions(
        include_transitive_dependencies=not args.no_transitive,
        minimum_severity=args.min_severity,
        exclude_packages=args.exclude,
        include_only_projects=args.project,
    )
    result = api.scan(args.path, options, settings=settings, offline=args.offline)

    if args.json:
        print(json.dumps(scan_result_to_dict(result), indent=2))
    else:
        print_scan_summary(result)
    if args.output:
        logger.info("Results saved to: %s", save_scan_json(result, Path(args.output)))
    if args.csv:
        logger.info("CSV saved to: %s", export_scan_csv(result, Path(args.output_dir)))
    if args.worksheets:
        logger.info("Worksheets saved to: %s", export_worksheets(result, Path(args.output_dir)))
    return scan_exit_code(result)


def run_analyze(args, settings: Settings) -> int:
    graph = api.analyze(args.path, include_transitive=not args.no_transitive, settings=settings)
    print_dependency_graph(graph, show_transitive=args.show_transitive, tree=args.tree)
    if args.output:
        logger.info("Dependency graph saved to: %s", save_graph_json(graph, Path(args.output)))
    return EXIT_OK


def run_update(args, settings: Settings, parser: argparse.ArgumentParser) -> int:
    update_options = UpdateOptions(
        auto_approve_minor_updates=args.auto_approve,
        auto_approve_patch_updates=True,
        create_backup=not args.no_backup,
        validate_after_update=not args.no_validation,
        rollback_on_failure=not args.no_rollback,
        minimum_severity_to_update=args.min_severity,
        exclude_packages=args.exclude,
        prefer_latest=args.prefer_latest,
        version_overrides=_parse_pins(args.pin, parser),
        dry_run=args.dry_run,
    )
    scan_options = ScanOptions(
        minimum_severity=args.min_severity,
        exclude_packages=args.exclude,
    )
    scan_result = api.scan(args.path, scan_options, settings=settings, offline=args.offline)
    if not scan_result.has_vulnerabilities:
        logger.info("No vulnerable packages found")
        return EXIT_OK

    results = api.update_vulnerable_packages(scan_result, update_options, settings=settings)
    print_update_results(results)
    if args.output:
        logger.info("Results saved to: %s", save_update_results_json(results, Path(args.output)))
    if args.csv:
        logger.info("CSV saved to: %s", export_update_results_csv(results, Path(args.output_dir)))
    if any(r.status == UpdateStatus.FAILED for r in results):
        return EXIT_ERROR
    return EXIT_OK


def run_restore(args, settings: Settings) -> int:
    backup = api.restore_backup(args.backup_id, settings=settings)
    logger.info("Restored %s files from backup %s", len(backup.files), backup.backup_id)
    return EXIT_OK


def run_backups(args, settings: Settings) -> int:
    backups = api.list_backups(settings=settings)
    if not backups:
        logger.info("No backups found in %s", settings.backup_dir)
    for backup in backups:
        print(f"{backup.backup_id}  {backup.created_at:%Y-%m-%d %H:%M:%S}  {len(backup.files)} files  {backup.description}")
    return EXIT_OK


def run_build_osv(args, settings: Settings) -> int:
    logger.info("Building OSV vulnerability database...")
    osv_df = OSVBuilder(settings=settings).build_database(force=args.force)
    logger.info("OSV database built with %s records", len(osv_df))
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    settings = Settings.from_env()

    try:
        if args.command == "scan":
            return run_scan(args, settings)
        if args.command == "analyze":
            return run_analyze(args, settings)
        if args.command == "update":
            return run_update(args, settings, parser)
        if args.command == "restore":
            return run_restore(args, settings)
        if args.command == "backups":
            return run_backups(args, settings)
        if args.command == "build-osv":
            return run_build_osv(args, settings)
    except NuVetError as e:
        logger.error("Error: %s", e)
        return EXIT_ERROR
    except KeyboardInterrupt:
        logger.error("Interrupted")
        return EXIT_ERROR
    parser.error(f"unknown command {args.command}")
    return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
