"""
Build the dependency graph of one or more projects.
"""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional, Tuple

from .cancellation import CancellationToken, check_cancelled
from .config import Settings
from .exceptions import NuVetError
from .interfaces import ProjectReader, RegistryClient
from .models import (
    DependencyGraph,
    PackageDependency,
    PackageReference,
    ProjectInfo,
    package_key,
)
from .time_utils import utcnow
from .versioning import SemVersion, VersionRange


logger = logging.getLogger(__name__)


def common_root(paths: Iterable[str]) -> str:
    """Longest common ancestor directory of ``paths``; cwd when empty."""
    directories = [os.path.dirname(os.path.abspath(p)) for p in paths]
    if not directories:
        return os.getcwd()
    if len(directories) == 1:
        return directories[0]
    return os.path.commonpath(directories)


class DependencyGraphBuilder:
    """Assemble direct references and their transitive dependencies into a graph.

    Registry lookups for one wave of newly discovered packages run concurrently.
    The working index maps ``{id}_{version}`` to the first instance seen and is
    the only place new nodes are created, so each (id, version) appears once
    per index and edges share instances.
    """

    def __init__(
        self,
        registry: RegistryClient,
        project_reader: ProjectReader,
        settings: Optional[Settings] = None,
        max_workers: Optional[int] = None,
    ) -> None:
        self.registry = registry
        self.project_reader = project_reader
        self.settings = settings or Settings()
        self.max_workers = max_workers or self.settings.max_workers
        self._lock = threading.Lock()

    def analyze(
        self,
        path: str,
        include_transitive: bool = True,
        cancellation: Optional[CancellationToken] = None,
    ) -> DependencyGraph:
        logger.info("Analyzing dependencies for %s", path)
        project_paths = self.project_reader.list_projects(path)
        return self.analyze_projects(project_paths, include_transitive, cancellation)

    def analyze_projects(
        self,
        project_paths: Iterable[str],
        include_transitive: bool = True,
        cancellation: Optional[CancellationToken] = None,
    ) -> DependencyGraph:
        projects: List[ProjectInfo] = []
        all_packages: List[PackageReference] = []
        warnings: List[str] = []

        for project_path in project_paths:
            check_cancelled(cancellation)
            logger.debug("Analyzing project %s", project_path)
            try:
                info = self.project_reader.read_project(project_path)
            except NuVetError as e:
                logger.error("Error analyzing project %s: %s", project_path, e)
                warnings.append(f"Could not analyze project {project_path}: {e}")
                continue
            projects.append(info)
            all_packages.extend(info.package_references)

        if include_transitive:
            warnings.extend(self.build_transitive_dependencies(all_packages, cancellation))

        return DependencyGraph(
            root_path=common_root(p.path for p in projects),
            projects=projects,
            all_packages=all_packages,
            created_at=utcnow(),
            warnings=warnings,
        )

    def build_transitive_dependencies(
        self,
        packages: List[PackageReference],
        cancellation: Optional[CancellationToken] = None,
    ) -> List[str]:
        """Expand ``packages`` in place with transitive dependencies.

        Returns the warnings for packages whose dependencies could not be resolved.
        """
        index: Dict[str, PackageReference] = {}
        instances: Dict[str, List[PackageReference]] = {}
        for package in packages:
            index.setdefault(package.key, package)
            instances.setdefault(package.key, []).append(package)

        warnings: List[str] = []
        resolved = set()
        frontier = [index[key] for key in instances]

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            while frontier:
                check_cancelled(cancellation)
                wave = [p for p in frontier if p.key not in resolved]
                resolved.update(p.key for p in wave)
                futures = [(p, pool.submit(self._fetch_dependencies, p)) for p in wave]

                frontier = []
                for package, future in futures:
                    check_cancelled(cancellation)
                    try:
                        edges = future.result()
                    except NuVetError as e:
                        message = f"Could not resolve dependencies for {package.id} {package.version}: {e}"
                        logger.warning("%s", message)
                        warnings.append(message)
                        continue

                    for dep_id, dep_version in edges:
                        target, created = self._link(
                            package, dep_id, dep_version, index, packages
                        )
                        for owner in instances[package.key]:
                            owner.dependencies.append(target)
                        if created:
                            instances[target.key] = [target]
                            frontier.append(target)
        return warnings

    def _link(
        self,
        parent: PackageReference,
        dep_id: str,
        dep_version: SemVersion,
        index: Dict[str, PackageReference],
        packages: List[PackageReference],
    ) -> Tuple[PackageReference, bool]:
        key = package_key(dep_id, dep_version)
        with self._lock:
            existing = index.get(key)
            if existing is not None:
                return existing, False
            node = PackageReference(
                id=dep_id,
                version=dep_version,
                project_path=parent.project_path,
                target_framework=parent.target_framework,
                is_direct_dependency=False,
                source=parent.source,
            )
            index[key] = node
            packages.append(node)
            return node, True

    def _fetch_dependencies(self, package: PackageReference) -> List[Tuple[str, SemVersion]]:
        dependencies = self.registry.get_dependencies(
            package.id, str(package.version), package.target_framework
        )
        edges = []
        for dependency in dependencies:
            version = self._resolve_version(dependency)
            if version is None:
                logger.debug(
                    "No version of %s satisfies %r", dependency.id, dependency.version_range
                )
                continue
            edges.append((dependency.id, version))
        return edges

    def _resolve_version(self, dependency: PackageDependency) -> Optional[SemVersion]:
        """Lowest version applicable to the dependency's range."""
        try:
            version_range = VersionRange.parse(dependency.version_range)
        except ValueError:
            logger.debug("Unparsable range %r for %s", dependency.version_range, dependency.id)
            return None
        if version_range.min_version is not None and version_range.is_min_inclusive:
            return version_range.min_version
        return version_range.lowest_satisfying(self.registry.get_versions(dependency.id))
