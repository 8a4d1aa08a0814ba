"""
Vulnerability feed backed by OSV.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional

import requests

from .config import Settings
from .exceptions import FeedError
from .interfaces import VulnerabilityFeed
from .models import Severity, Vulnerability
from .osv_builder import OSVBuilder
from .time_utils import parse_timestamp
from .versioning import SemVersion


logger = logging.getLogger(__name__)

OSV_VULNERABILITY_URL = "https://osv.dev/vulnerability/{id}"


def osv_severity(record: Dict) -> Severity:
    """Severity label of an advisory; GitHub advisories carry it in database_specific."""
    label = (record.get("database_specific") or {}).get("severity")
    if not label:
        for affected in record.get("affected", []):
            label = (affected.get("ecosystem_specific") or {}).get("severity") or (
                affected.get("database_specific") or {}
            ).get("severity")
            if label:
                break
    return Severity.parse(label)


def _advisory_url(record: Dict) -> str:
    references = record.get("references") or []
    for reference in references:
        if reference.get("type") == "ADVISORY" and reference.get("url"):
            return reference["url"]
    for reference in references:
        if reference.get("url"):
            return reference["url"]
    return OSV_VULNERABILITY_URL.format(id=record.get("id", ""))


def _versions(values: Iterable[Optional[str]]) -> List[SemVersion]:
    parsed = {SemVersion.try_parse(v) for v in values if v}
    return sorted(v for v in parsed if v is not None)


def vulnerability_from_osv(record: Dict, package_id: str, ecosystem: str = "NuGet") -> Optional[Vulnerability]:
    """Convert an OSV advisory to a Vulnerability against ``package_id``.

    Returns None when the advisory does not list the package.
    """
    wanted = package_id.casefold()
    affected_entries = [
        a for a in record.get("affected", [])
        if (a.get("package") or {}).get("name", "").casefold() == wanted
        and (a.get("package") or {}).get("ecosystem", "").lower() == ecosystem.lower()
    ]
    if not affected_entries:
        return None

    affected_versions = _versions(v for a in affected_entries for v in a.get("versions", []))
    patched_versions = _versions(
        event.get("fixed")
        for a in affected_entries
        for version_range in a.get("ranges", [])
        if version_range.get("type") in ("ECOSYSTEM", "SEMVER")
        for event in version_range.get("events", [])
    )

    return Vulnerability(
        id=record.get("id", ""),
        title=record.get("summary") or record.get("id", ""),
        description=record.get("details", ""),
        severity=osv_severity(record),
        package_id=package_id,
        affected_versions=affected_versions,
        patched_versions=patched_versions,
        advisory_url=_advisory_url(record),
        published_at=parse_timestamp(record.get("published")),
    )


class OSVService(VulnerabilityFeed):
    """Look up advisories through the OSV query API, or offline from a built database."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
        database: Optional[OSVBuilder] = None,
    ) -> None:
        self.settings = settings or Settings()
        self.session = session or requests.Session()
        self.database = database

    @classmethod
    def offline(cls, settings: Optional[Settings] = None) -> "OSVService":
        settings = settings or Settings()
        builder = OSVBuilder(settings=settings)
        builder.load_database()
        return cls(settings=settings, database=builder)

    def query_package(self, package_id: str) -> List[Dict]:
        """All advisories OSV has for ``package_id``, following pagination."""
        url = f"{self.settings.osv_api_url}/query"
        body: Dict = {"package": {"name": package_id, "ecosystem": self.settings.osv_ecosystem}}
        records: List[Dict] = []
        while True:
            try:
                with self.session.post(url, json=body, timeout=self.settings.request_timeout) as response:
                    response.raise_for_status()
                    data = response.json()
            except requests.RequestException as e:
                raise FeedError(f"OSV query for {package_id} failed: {e}") from e
            except ValueError as e:
                raise FeedError(f"Malformed OSV response for {package_id}: {e}") from e

            records.extend(data.get("vulns", []))
            token = data.get("next_page_token")
            if not token:
                return records
            body["page_token"] = token

    def _records_for(self, package_id: str) -> List[Dict]:
        if self.database is not None:
            return self.database.get_records(package_id)
        return self.query_package(package_id)

    def _lookup(self, package_id: str) -> List[Vulnerability]:
        vulnerabilities = []
        for record in self._records_for(package_id):
            vulnerability = vulnerability_from_osv(record, package_id, self.settings.osv_ecosystem)
            if vulnerability is not None:
                vulnerabilities.append(vulnerability)
        return vulnerabilities

    def get_vulnerabilities(self, package_ids: Iterable[str]) -> Dict[str, List[Vulnerability]]:
        ids = list(dict.fromkeys(package_ids))
        results: Dict[str, List[Vulnerability]] = {}
        if not ids:
            return results

        with ThreadPoolExecutor(max_workers=self.settings.max_workers) as pool:
            futures = {package_id: pool.submit(self._lookup, package_id) for package_id in ids}
            for package_id, future in futures.items():
                try:
                    results[package_id] = future.result()
                except FeedError as e:
                    logger.warning("Could not fetch vulnerabilities for %s: %s", package_id, e)
                    results[package_id] = []
        found = sum(len(v) for v in results.values())
        logger.info("Found %s advisories across %s packages", found, len(ids))
        return results
