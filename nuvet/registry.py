"""
NuGet v3 registry client.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import requests

from .config import Settings
from .exceptions import RegistryError
from .interfaces import RegistryClient
from .models import PackageDependency, PackageMetadata, PackageVersionInfo
from .time_utils import parse_timestamp
from .versioning import SemVersion


logger = logging.getLogger(__name__)

_FRAMEWORK_ALIASES = {
    ".netstandard": "netstandard",
    ".netcoreapp": "netcoreapp",
    "netcoreapp": "netcoreapp",
    "netstandard": "netstandard",
}
_FRAMEWORK_RE = re.compile(r"^(?P<name>\.?[a-z]+)(?P<version>[\d.]*)$")


def short_framework_name(framework: Optional[str]) -> str:
    """Normalize a target framework moniker (``.NETStandard2.0`` -> ``netstandard2.0``)."""
    if not framework:
        return ""
    text = framework.strip().lower()
    match = _FRAMEWORK_RE.match(text)
    if match is None:
        return text
    name, version = match.group("name"), match.group("version")
    if name in _FRAMEWORK_ALIASES:
        return _FRAMEWORK_ALIASES[name] + version
    if name == ".netframework":
        return "net" + version.replace(".", "")
    return text


def select_dependency_group(groups: List[Dict], target_framework: Optional[str]) -> Optional[Dict]:
    """Pick the dependency group that applies to ``target_framework``."""
    if not groups:
        return None
    wanted = short_framework_name(target_framework)
    if wanted:
        for group in groups:
            if short_framework_name(group.get("targetFramework")) == wanted:
                return group
    for group in groups:
        if not group.get("targetFramework"):
            return group

    def netstandard_key(group: Dict) -> SemVersion:
        name = short_framework_name(group.get("targetFramework"))
        return SemVersion.try_parse(name[len("netstandard"):]) or SemVersion(0)

    netstandard = [
        g for g in groups
        if short_framework_name(g.get("targetFramework")).startswith("netstandard")
    ]
    if netstandard:
        return max(netstandard, key=netstandard_key)
    return groups[0]


@dataclass
class RegistryCache:
    """Shared in-memory caches for registry operations."""

    versions_cache: Dict[str, List[SemVersion]] = field(default_factory=dict)
    catalog_cache: Dict[Tuple[str, str], Dict] = field(default_factory=dict)
    metadata_cache: Dict[str, Optional[PackageMetadata]] = field(default_factory=dict)
    session: requests.Session = field(default_factory=requests.Session)


class NuGetRegistryClient(RegistryClient):
    """Registry client for the NuGet v3 JSON API."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        cache: Optional[RegistryCache] = None,
    ) -> None:
        self.settings = settings or Settings()
        self.registry_urls = self.settings.registry_urls
        self.cache = cache or RegistryCache()

    def _get_json(self, url: str) -> Optional[Dict]:
        """GET ``url`` and decode JSON; None when the resource does not exist."""
        logger.debug("GET %s", url)
        try:
            with self.cache.session.get(url, timeout=self.settings.request_timeout) as response:
                if response.status_code == 404:
                    return None
                response.raise_for_status()
                return response.json()
        except requests.RequestException as e:
            raise RegistryError(f"Request to {url} failed: {e}") from e
        except ValueError as e:
            raise RegistryError(f"Malformed JSON from {url}: {e}") from e

    def get_versions(self, package_id: str) -> List[SemVersion]:
        lower_id = package_id.lower()
        if lower_id in self.cache.versions_cache:
            logger.debug("Cache hit: versions %s", package_id)
            return self.cache.versions_cache[lower_id]

        url = f"{self.registry_urls['flat_container']}/{lower_id}/index.json"
        data = self._get_json(url)
        versions = []
        for raw in (data or {}).get("versions", []):
            parsed = SemVersion.try_parse(raw)
            if parsed is not None:
                versions.append(parsed)
        versions.sort()
        self.cache.versions_cache[lower_id] = versions
        return versions

    def version_exists(self, package_id: str, version: str) -> bool:
        wanted = SemVersion.try_parse(version)
        if wanted is None:
            return False
        return wanted in self.get_versions(package_id)

    def get_dependencies(
        self, package_id: str, version: str, target_framework: Optional[str] = None
    ) -> List[PackageDependency]:
        entry = self._get_catalog_entry(package_id, version)
        group = select_dependency_group(entry.get("dependencyGroups") or [], target_framework)
        if group is None:
            return []

        dependencies = []
        for dep in group.get("dependencies") or []:
            dep_id = dep.get("id")
            if not dep_id:
                raise RegistryError(f"Dependency without id in {package_id} {version}")
            dependencies.append(PackageDependency(
                id=dep_id,
                version_range=dep.get("range") or "",
                target_framework=target_framework,
            ))
        return dependencies

    def _get_catalog_entry(self, package_id: str, version: str) -> Dict:
        normalized = str(SemVersion.parse(version)).lower()
        cache_key = (package_id.lower(), normalized)
        if cache_key in self.cache.catalog_cache:
            logger.debug("Cache hit: catalog %s %s", package_id, version)
            return self.cache.catalog_cache[cache_key]

        leaf_url = f"{self.registry_urls['registration']}/{cache_key[0]}/{normalized}.json"
        leaf = self._get_json(leaf_url)
        if leaf is None:
            raise RegistryError(f"Package {package_id} {version} not found in registry")

        entry = leaf.get("catalogEntry")
        if isinstance(entry, str):
            entry = self._get_json(entry)
        if not isinstance(entry, dict):
            raise RegistryError(f"Missing catalog entry for {package_id} {version}")

        self.cache.catalog_cache[cache_key] = entry
        return entry

    def search_metadata(self, package_id: str) -> Optional[PackageMetadata]:
        lower_id = package_id.lower()
        if lower_id in self.cache.metadata_cache:
            logger.debug("Cache hit: metadata %s", package_id)
            return self.cache.metadata_cache[lower_id]

        logger.info("Fetching metadata for %s", package_id)
        index = self._get_json(f"{self.registry_urls['registration']}/{lower_id}/index.json")
        if index is None:
            logger.warning("No metadata found for package %s", package_id)
            self.cache.metadata_cache[lower_id] = None
            return None

        entries = []
        for page in index.get("items", []):
            items = page.get("items")
            if items is None:
                page_data = self._get_json(page["@id"]) or {}
                items = page_data.get("items", [])
            for item in items:
                entry = item.get("catalogEntry")
                if isinstance(entry, dict):
                    entries.append(entry)

        metadata = self._build_metadata(package_id, entries)
        self.cache.metadata_cache[lower_id] = metadata
        return metadata

    @staticmethod
    def _build_metadata(package_id: str, entries: List[Dict]) -> Optional[PackageMetadata]:
        versions = []
        for entry in entries:
            parsed = SemVersion.try_parse(entry.get("version"))
            if parsed is None:
                continue
            groups = entry.get("dependencyGroups") or []
            versions.append((parsed, entry, PackageVersionInfo(
                version=parsed,
                published=parse_timestamp(entry.get("published")),
                is_prerelease=parsed.is_prerelease,
                dependencies=[
                    PackageDependency(
                        id=dep["id"],
                        version_range=dep.get("range") or "",
                        target_framework=group.get("targetFramework"),
                    )
                    for group in groups
                    for dep in group.get("dependencies") or []
                    if dep.get("id")
                ],
                release_notes=entry.get("releaseNotes") or None,
            )))
        if not versions:
            return None

        versions.sort(key=lambda item: item[0])
        latest, latest_entry, _ = versions[-1]
        stable = [v for v, _, _ in versions if not v.is_prerelease]

        def split_list(value) -> List[str]:
            if isinstance(value, list):
                return [str(v).strip() for v in value if str(v).strip()]
            return [part.strip() for part in str(value or "").split(",") if part.strip()]

        return PackageMetadata(
            id=latest_entry.get("id") or package_id,
            title=latest_entry.get("title") or latest_entry.get("id") or package_id,
            description=latest_entry.get("description") or "",
            authors=split_list(latest_entry.get("authors")),
            tags=split_list(latest_entry.get("tags")),
            project_url=latest_entry.get("projectUrl") or None,
            license_url=latest_entry.get("licenseUrl") or None,
            published=parse_timestamp(latest_entry.get("published")),
            is_prerelease=latest.is_prerelease,
            latest_version=latest,
            latest_stable_version=stable[-1] if stable else None,
            versions=[info for _, _, info in versions],
        )
