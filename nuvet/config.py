"""
Settings and per-call options.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .models import Severity


def _default_registry_urls() -> Dict[str, str]:
    return {
        "service_index": "https://api.nuget.org/v3/index.json",
        "flat_container": "https://api.nuget.org/v3-flatcontainer",
        "registration": "https://api.nuget.org/v3/registration5-gz-semver2",
    }


def _default_state_dir() -> Path:
    return Path(tempfile.gettempdir()) / "nuvet"


@dataclass
class Settings:
    """Process-wide settings; ``from_env`` reads ``NUVET_*`` overrides."""

    registry_urls: Dict[str, str] = field(default_factory=_default_registry_urls)
    osv_api_url: str = "https://api.osv.dev/v1"
    osv_bulk_url: str = "https://osv-vulnerabilities.storage.googleapis.com/NuGet/all.zip"
    osv_ecosystem: str = "NuGet"
    request_timeout: float = 30.0
    max_workers: int = 8
    backup_dir: Path = field(default_factory=lambda: _default_state_dir() / "backups")
    osv_data_dir: Path = field(default_factory=lambda: _default_state_dir() / "osv")
    dotnet_path: Optional[str] = None
    build_timeout: float = 600.0
    default_target_framework: str = "net8.0"

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        settings = cls()

        for key in settings.registry_urls:
            value = env.get(f"NUVET_REGISTRY_{key.upper()}_URL")
            if value:
                settings.registry_urls[key] = value.rstrip("/")

        if env.get("NUVET_OSV_API_URL"):
            settings.osv_api_url = env["NUVET_OSV_API_URL"].rstrip("/")
        if env.get("NUVET_OSV_BULK_URL"):
            settings.osv_bulk_url = env["NUVET_OSV_BULK_URL"]
        if env.get("NUVET_REQUEST_TIMEOUT"):
            settings.request_timeout = float(env["NUVET_REQUEST_TIMEOUT"])
        if env.get("NUVET_MAX_WORKERS"):
            settings.max_workers = max(1, int(env["NUVET_MAX_WORKERS"]))
        if env.get("NUVET_BACKUP_DIR"):
            settings.backup_dir = Path(env["NUVET_BACKUP_DIR"])
        if env.get("NUVET_OSV_DATA_DIR"):
            settings.osv_data_dir = Path(env["NUVET_OSV_DATA_DIR"])
        if env.get("NUVET_DOTNET_PATH"):
            settings.dotnet_path = env["NUVET_DOTNET_PATH"]
        if env.get("NUVET_BUILD_TIMEOUT"):
            settings.build_timeout = float(env["NUVET_BUILD_TIMEOUT"])
        if env.get("NUVET_TARGET_FRAMEWORK"):
            settings.default_target_framework = env["NUVET_TARGET_FRAMEWORK"]
        return settings


@dataclass
class ScanOptions:
    include_transitive_dependencies: bool = True
    minimum_severity: Severity = Severity.LOW
    exclude_packages: List[str] = field(default_factory=list)
    include_only_projects: List[str] = field(default_factory=list)


@dataclass
class UpdateOptions:
    auto_approve_minor_updates: bool = True
    auto_approve_patch_updates: bool = True
    create_backup: bool = True
    validate_after_update: bool = True
    rollback_on_failure: bool = True
    minimum_severity_to_update: Severity = Severity.LOW
    exclude_packages: List[str] = field(default_factory=list)
    prefer_latest: bool = False
    version_overrides: Dict[str, str] = field(default_factory=dict)
    dry_run: bool = False
