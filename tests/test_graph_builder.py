"""Tests for dependency graph construction."""

import threading
from pathlib import Path

import pytest

from nuvet.cancellation import CancellationToken
from nuvet.exceptions import OperationCancelled, ProjectReadError, RegistryError
from nuvet.graph_builder import DependencyGraphBuilder, common_root
from nuvet.models import PackageDependency, PackageReference, ProjectInfo
from nuvet.versioning import SemVersion


class FakeReader:
    def __init__(self, projects):
        self.projects = projects

    def list_projects(self, path):
        return list(self.projects)

    def read_project(self, project_path):
        if project_path not in self.projects:
            raise ProjectReadError(f"Could not read {project_path}")
        references = [
            PackageReference(
                id=package_id,
                version=SemVersion.parse(version),
                project_path=project_path,
                target_framework="net8.0",
            )
            for package_id, version in self.projects[project_path]
        ]
        return ProjectInfo(
            name=Path(project_path).stem,
            path=project_path,
            target_framework="net8.0",
            package_references=references,
        )

    def read_references(self, project_path):
        return self.read_project(project_path).package_references


class FakeRegistry:
    def __init__(self, dependencies=None, versions=None, failing=()):
        self.dependencies = dependencies or {}
        self.versions = versions or {}
        self.failing = set(failing)
        self.calls = []
        self._lock = threading.Lock()

    def get_dependencies(self, package_id, version, target_framework=None):
        with self._lock:
            self.calls.append((package_id, version))
        if package_id in self.failing:
            raise RegistryError(f"{package_id} unavailable")
        return [
            PackageDependency(id=dep_id, version_range=version_range, target_framework=target_framework)
            for dep_id, version_range in self.dependencies.get((package_id, version), [])
        ]

    def get_versions(self, package_id):
        return [SemVersion.parse(v) for v in self.versions.get(package_id, [])]

    def version_exists(self, package_id, version):
        return True

    def search_metadata(self, package_id):
        return None


def by_id(graph, package_id):
    return [p for p in graph.all_packages if p.id == package_id]


def test_shared_dependency_is_materialized_once(tmp_path: Path) -> None:
    project = str(tmp_path / "App" / "App.csproj")
    registry = FakeRegistry(dependencies={
        ("A", "1.0.0"): [("C", "[1.0.0, )")],
        ("B", "1.0.0"): [("C", "1.0.0")],
    })
    builder = DependencyGraphBuilder(registry, FakeReader({project: [("A", "1.0.0"), ("B", "1.0.0")]}), max_workers=4)

    graph = builder.analyze(str(tmp_path))

    a, = by_id(graph, "A")
    b, = by_id(graph, "B")
    c, = by_id(graph, "C")
    assert a.dependencies[0] is c
    assert b.dependencies[0] is c
    assert not c.is_direct_dependency
    assert c.project_path == project
    assert registry.calls.count(("C", "1.0.0")) == 1
    assert [p.key for p in graph.get_unique_packages()] == ["a_1.0.0", "b_1.0.0", "c_1.0.0"]


def test_instances_in_different_projects_share_edges(tmp_path: Path) -> None:
    app = str(tmp_path / "src" / "App" / "App.csproj")
    lib = str(tmp_path / "src" / "Lib" / "Lib.csproj")
    registry = FakeRegistry(dependencies={("A", "1.0.0"): [("C", "2.0.0")]})
    reader = FakeReader({app: [("A", "1.0.0")], lib: [("A", "1.0.0")]})

    graph = DependencyGraphBuilder(registry, reader).analyze(str(tmp_path))

    app_a, lib_a = by_id(graph, "A")
    assert app_a.project_path == app and lib_a.project_path == lib
    assert app_a.dependencies[0] is lib_a.dependencies[0]
    assert registry.calls.count(("A", "1.0.0")) == 1
    assert graph.root_path == str(tmp_path / "src")
    assert len(graph.get_unique_packages()) == 2


def test_registry_failure_becomes_warning(tmp_path: Path) -> None:
    project = str(tmp_path / "App.csproj")
    registry = FakeRegistry(
        dependencies={("B", "1.0.0"): [("C", "1.0.0")]},
        failing={"A"},
    )
    builder = DependencyGraphBuilder(registry, FakeReader({project: [("A", "1.0.0"), ("B", "1.0.0")]}))

    graph = builder.analyze(str(tmp_path))

    a, = by_id(graph, "A")
    b, = by_id(graph, "B")
    assert a.dependencies == []
    assert [d.id for d in b.dependencies] == ["C"]
    assert len(graph.warnings) == 1
    assert "A 1.0.0" in graph.warnings[0]


def test_cyclic_dependencies_terminate(tmp_path: Path) -> None:
    project = str(tmp_path / "App.csproj")
    registry = FakeRegistry(dependencies={
        ("A", "1.0.0"): [("B", "1.0.0")],
        ("B", "1.0.0"): [("A", "1.0.0")],
    })

    graph = DependencyGraphBuilder(registry, FakeReader({project: [("A", "1.0.0")]})).analyze(str(tmp_path))

    a, = by_id(graph, "A")
    b, = by_id(graph, "B")
    assert a.dependencies == [b]
    assert b.dependencies[0] is a
    assert {p.id for p in graph.get_transitive_dependencies(a)} == {"A", "B"}


def test_exclusive_lower_bound_uses_lowest_registry_version(tmp_path: Path) -> None:
    project = str(tmp_path / "App.csproj")
    registry = FakeRegistry(
        dependencies={("A", "1.0.0"): [("C", "(1.0.0, 2.0.0)")]},
        versions={"C": ["1.0.0", "1.1.0-beta", "1.2.0", "2.0.0"]},
    )

    graph = DependencyGraphBuilder(registry, FakeReader({project: [("A", "1.0.0")]})).analyze(str(tmp_path))

    c, = by_id(graph, "C")
    assert c.version == SemVersion.parse("1.2.0")


def test_direct_only_graph_makes_no_registry_calls(tmp_path: Path) -> None:
    project = str(tmp_path / "App.csproj")
    registry = FakeRegistry(dependencies={("A", "1.0.0"): [("C", "1.0.0")]})

    graph = DependencyGraphBuilder(registry, FakeReader({project: [("A", "1.0.0")]})).analyze(
        str(tmp_path), include_transitive=False
    )

    assert [p.id for p in graph.all_packages] == ["A"]
    assert registry.calls == []


def test_unreadable_project_is_skipped(tmp_path: Path) -> None:
    good = str(tmp_path / "Good.csproj")
    missing = str(tmp_path / "Missing.csproj")
    reader = FakeReader({good: [("A", "1.0.0")]})

    graph = DependencyGraphBuilder(FakeRegistry(), reader).analyze_projects([good, missing])

    assert [p.path for p in graph.projects] == [good]
    assert any("Missing.csproj" in w for w in graph.warnings)


def test_cancelled_analysis_raises(tmp_path: Path) -> None:
    project = str(tmp_path / "App.csproj")
    token = CancellationToken()
    token.cancel()

    builder = DependencyGraphBuilder(FakeRegistry(), FakeReader({project: [("A", "1.0.0")]}))

    with pytest.raises(OperationCancelled):
        builder.analyze(str(tmp_path), cancellation=token)


def test_common_root_defaults_to_cwd(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)

    assert common_root([]) == str(tmp_path)
    assert common_root([str(tmp_path / "a" / "A.csproj")]) == str(tmp_path / "a")
