"""Tests for scanning a dependency graph against a vulnerability feed."""

from pathlib import Path

from nuvet import __version__
from nuvet.config import ScanOptions
from nuvet.graph_builder import DependencyGraphBuilder
from nuvet.models import PackageDependency, PackageReference, ProjectInfo, Severity, Vulnerability
from nuvet.scanner import VulnerabilityScanner
from nuvet.versioning import SemVersion

V = SemVersion.parse


class FakeReader:
    def __init__(self, projects):
        self.projects = projects

    def list_projects(self, path):
        return list(self.projects)

    def read_project(self, project_path):
        return ProjectInfo(
            name=Path(project_path).stem,
            path=project_path,
            target_framework="net8.0",
            package_references=[
                PackageReference(id=i, version=V(v), project_path=project_path, target_framework="net8.0")
                for i, v in self.projects[project_path]
            ],
        )

    def read_references(self, project_path):
        return self.read_project(project_path).package_references


class FakeRegistry:
    def __init__(self, dependencies):
        self.dependencies = dependencies
        self.calls = 0

    def get_dependencies(self, package_id, version, target_framework=None):
        self.calls += 1
        return [PackageDependency(id=d, version_range=r) for d, r in self.dependencies.get(package_id, [])]

    def get_versions(self, package_id):
        return []

    def version_exists(self, package_id, version):
        return True

    def search_metadata(self, package_id):
        return None


class FakeFeed:
    def __init__(self, advisories):
        self.advisories = advisories
        self.requests = []

    def get_vulnerabilities(self, package_ids):
        self.requests.append(list(package_ids))
        return {i: self.advisories.get(i, []) for i in package_ids}


def advisory(package_id, severity, patched):
    return Vulnerability(
        id=f"GHSA-{package_id}", title=f"{package_id} advisory", severity=severity,
        package_id=package_id, patched_versions=[V(patched)],
    )


def make_scanner(tmp_path: Path, projects=None):
    app = str(tmp_path / "App" / "App.csproj")
    tests = str(tmp_path / "App.Tests" / "App.Tests.csproj")
    projects = projects or {app: [("A", "1.0.0")], tests: [("B", "2.0.0")]}
    registry = FakeRegistry({"A": [("C", "[1.0.0, )")]})
    feed = FakeFeed({
        "A": [advisory("A", Severity.MODERATE, "1.0.1")],
        "C": [advisory("C", Severity.CRITICAL, "1.0.5")],
        "B": [advisory("B", Severity.LOW, "1.5.0")],
    })
    builder = DependencyGraphBuilder(registry, FakeReader(projects))
    return VulnerabilityScanner(builder, feed), registry, feed, app


def test_scan_reports_transitive_vulnerabilities(tmp_path: Path):
    scanner, _, feed, app = make_scanner(tmp_path)

    result = scanner.scan(str(tmp_path))

    assert feed.requests == [["A", "B", "C"]]
    assert [(vp.package.id, vp.package.is_direct_dependency) for vp in result.vulnerable_packages] == [
        ("C", False),
        ("A", True),
    ]
    assert result.vulnerable_packages[0].affected_projects == [app]
    assert result.summary.total_projects == 2
    assert result.summary.total_packages == 3
    assert result.has_critical_vulnerabilities
    assert result.scan_version == __version__


def test_direct_only_scan(tmp_path: Path):
    scanner, registry, feed, _ = make_scanner(tmp_path)

    result = scanner.scan(str(tmp_path), ScanOptions(include_transitive_dependencies=False))

    assert registry.calls == 0
    assert feed.requests == [["A", "B"]]
    assert [vp.package.id for vp in result.vulnerable_packages] == ["A"]


def test_project_filter_and_exclusions(tmp_path: Path):
    scanner, _, feed, app = make_scanner(tmp_path)
    options = ScanOptions(include_only_projects=["app.tests"], exclude_packages=["C"])

    result = scanner.scan(str(tmp_path), options)

    assert [p.name for p in result.scanned_projects] == ["App.Tests"]
    assert feed.requests == [["B"]]
    assert result.vulnerable_packages == []


def test_excluded_packages_are_not_queried(tmp_path: Path):
    scanner, _, feed, _ = make_scanner(tmp_path)

    result = scanner.scan(str(tmp_path), ScanOptions(exclude_packages=["C"]))

    assert feed.requests == [["A", "B"]]
    assert [vp.package.id for vp in result.vulnerable_packages] == ["A"]
