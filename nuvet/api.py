"""
Entry points used by the CLI and by library callers.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from .backup import BackupStore
from .cancellation import CancellationToken
from .config import ScanOptions, Settings, UpdateOptions
from .executor import UpdateExecutor
from .graph_builder import DependencyGraphBuilder
from .interfaces import BuildValidator, VulnerabilityFeed
from .models import DependencyGraph, ScanResult, UpdateBackup, UpdateResult
from .osv_service import OSVService
from .project_reader import MSBuildProjectReader
from .registry import NuGetRegistryClient
from .scanner import VulnerabilityScanner
from .validator import DotNetBuildValidator


logger = logging.getLogger(__name__)


def _settings(settings: Optional[Settings]) -> Settings:
    return settings if settings is not None else Settings.from_env()


def build_graph_builder(settings: Optional[Settings] = None) -> DependencyGraphBuilder:
    settings = _settings(settings)
    return DependencyGraphBuilder(
        registry=NuGetRegistryClient(settings),
        project_reader=MSBuildProjectReader(settings),
        settings=settings,
    )


def build_feed(settings: Optional[Settings] = None, offline: bool = False) -> VulnerabilityFeed:
    settings = _settings(settings)
    if offline:
        return OSVService.offline(settings)
    return OSVService(settings)


def scan(
    path: str,
    options: Optional[ScanOptions] = None,
    settings: Optional[Settings] = None,
    offline: bool = False,
    cancellation: Optional[CancellationToken] = None,
) -> ScanResult:
    """Scan the solution, project or directory at ``path`` for vulnerable packages."""
    settings = _settings(settings)
    scanner = VulnerabilityScanner(build_graph_builder(settings), build_feed(settings, offline))
    return scanner.scan(path, options, cancellation)


def analyze(
    path: str,
    include_transitive: bool = True,
    settings: Optional[Settings] = None,
    cancellation: Optional[CancellationToken] = None,
) -> DependencyGraph:
    """Build the dependency graph for ``path``."""
    return build_graph_builder(settings).analyze(path, include_transitive, cancellation)


def update_vulnerable_packages(
    scan_result: ScanResult,
    options: Optional[UpdateOptions] = None,
    settings: Optional[Settings] = None,
    validator: Optional[BuildValidator] = None,
    cancellation: Optional[CancellationToken] = None,
) -> List[UpdateResult]:
    """Plan and apply updates for every vulnerable package in ``scan_result``."""
    settings = _settings(settings)
    executor = UpdateExecutor(
        registry=NuGetRegistryClient(settings),
        backup_store=BackupStore(settings.backup_dir),
        validator=validator or DotNetBuildValidator(settings),
    )
    return executor.update_vulnerable_packages(scan_result, options, cancellation)


def restore_backup(backup_id: str, settings: Optional[Settings] = None) -> UpdateBackup:
    """Restore every file of a persisted backup."""
    store = BackupStore(_settings(settings).backup_dir)
    backup = store.load(backup_id)
    store.restore(backup)
    return backup


def list_backups(settings: Optional[Settings] = None) -> List[UpdateBackup]:
    return BackupStore(_settings(settings).backup_dir).list_backups()
