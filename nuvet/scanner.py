"""
Vulnerability scanning over a dependency graph.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from . import __version__
from .cancellation import CancellationToken, check_cancelled
from .config import ScanOptions
from .graph_builder import DependencyGraphBuilder
from .interfaces import VulnerabilityFeed
from .matcher import VulnerabilityMatcher, matches_exclusion
from .models import DependencyGraph, PackageReference, ScanResult, Vulnerability
from .time_utils import utcnow


logger = logging.getLogger(__name__)


class VulnerabilityScanner:
    """Analyze projects, query the feed once, and match the results."""

    def __init__(
        self,
        graph_builder: DependencyGraphBuilder,
        feed: VulnerabilityFeed,
        matcher: Optional[VulnerabilityMatcher] = None,
    ) -> None:
        self.graph_builder = graph_builder
        self.feed = feed
        self.matcher = matcher or VulnerabilityMatcher()

    def scan(
        self,
        path: str,
        options: Optional[ScanOptions] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> ScanResult:
        options = options or ScanOptions()
        started = utcnow()
        logger.info("Starting vulnerability scan for %s", path)

        project_paths = self.graph_builder.project_reader.list_projects(path)
        if options.include_only_projects:
            wanted = [p.casefold() for p in options.include_only_projects]
            project_paths = [
                p for p in project_paths
                if any(w in p.casefold() for w in wanted)
            ]
        graph = self.graph_builder.analyze_projects(
            project_paths,
            include_transitive=options.include_transitive_dependencies,
            cancellation=cancellation,
        )
        return self.scan_dependency_graph(graph, options, cancellation, started)

    def scan_dependency_graph(
        self,
        graph: DependencyGraph,
        options: Optional[ScanOptions] = None,
        cancellation: Optional[CancellationToken] = None,
        started=None,
    ) -> ScanResult:
        options = options or ScanOptions()
        started = started or utcnow()

        packages = graph.get_unique_packages()
        if not options.include_transitive_dependencies:
            packages = [p for p in packages if p.is_direct_dependency]
        occurrences = [
            p for p in graph.all_packages
            if options.include_transitive_dependencies or p.is_direct_dependency
        ]
        check_cancelled(cancellation)

        advisories = self.scan_packages(packages, options.exclude_packages)
        check_cancelled(cancellation)

        vulnerable = self.matcher.match(occurrences, advisories, options)
        result = self.matcher.build_result(
            graph, vulnerable, scanned_packages=len(packages),
            started=started, scan_version=__version__,
        )
        logger.info(
            "Scan completed: %s vulnerable packages, %s vulnerabilities",
            result.summary.vulnerable_packages,
            result.summary.total_vulnerabilities,
        )
        return result

    def scan_packages(
        self,
        packages: Iterable[PackageReference],
        exclude_packages: Iterable[str] = (),
    ) -> Dict[str, List[Vulnerability]]:
        """Fetch advisories for the distinct package ids in one batched feed call."""
        exclude_packages = list(exclude_packages)
        ids: Dict[str, str] = {}
        for package in packages:
            if matches_exclusion(package.id, exclude_packages):
                continue
            ids.setdefault(package.id.casefold(), package.id)
        if not ids:
            return {}
        logger.debug("Querying vulnerability feed for %s packages", len(ids))
        return self.feed.get_vulnerabilities(list(ids.values()))
