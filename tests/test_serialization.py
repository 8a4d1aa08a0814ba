"""Tests for JSON conversion of graphs, scan results and update results."""

import json
from datetime import timedelta

from nuvet.models import (
    BackupFile,
    DependencyGraph,
    PackageReference,
    PackageUpdate,
    ProjectInfo,
    ScanResult,
    ScanSummary,
    Severity,
    UpdateBackup,
    UpdateResult,
    UpdateStatus,
    UpdateType,
    Vulnerability,
    VulnerablePackage,
)
from nuvet.serialization import (
    dumps,
    graph_from_dict,
    graph_to_dict,
    scan_result_from_dict,
    scan_result_to_dict,
    update_result_from_dict,
    update_result_to_dict,
)
from nuvet.time_utils import parse_timestamp, utcnow
from nuvet.versioning import SemVersion

V = SemVersion.parse
PROJECT = "/src/App/App.csproj"


def cyclic_graph() -> DependencyGraph:
    a = PackageReference(id="A", version=V("1.0.0"), project_path=PROJECT)
    b = PackageReference(id="B", version=V("2.0.0-rc.1"), project_path=PROJECT, is_direct_dependency=False)
    a.dependencies.append(b)
    b.dependencies.append(a)
    project = ProjectInfo(name="App", path=PROJECT, target_framework="net8.0", package_references=[a])
    return DependencyGraph(root_path="/src", projects=[project], all_packages=[a, b], warnings=["slow feed"])


def test_cyclic_graph_round_trip_keeps_identity() -> None:
    data = json.loads(dumps(graph_to_dict(cyclic_graph())))

    graph = graph_from_dict(data)

    a, b = graph.all_packages
    assert a.dependencies == [b] and a.dependencies[0] is b
    assert b.dependencies[0] is a
    assert graph.projects[0].package_references[0] is a
    assert str(b.version) == "2.0.0-rc.1"
    assert not b.is_direct_dependency
    assert graph.warnings == ["slow feed"]
    assert data["all_packages"][0]["dependencies"] == [{"id": "B", "version": "2.0.0-rc.1"}]


def test_scan_result_round_trip() -> None:
    vulnerable = VulnerablePackage(
        package=PackageReference(id="Foo", version=V("1.0.0"), project_path=PROJECT),
        vulnerabilities=[Vulnerability(
            id="GHSA-xxxx-yyyy-zzzz",
            title="Denial of service",
            severity=Severity.HIGH,
            package_id="Foo",
            patched_versions=[V("1.1.0")],
            advisory_url="https://github.com/advisories/GHSA-xxxx-yyyy-zzzz",
            published_at=parse_timestamp("2023-05-01T12:00:00Z"),
        )],
        affected_projects=[PROJECT],
    )
    result = ScanResult(
        solution_path="/src",
        scan_date=utcnow(),
        vulnerable_packages=[vulnerable],
        scanned_projects=[ProjectInfo(name="App", path=PROJECT, target_framework="net8.0")],
        summary=ScanSummary.from_packages([vulnerable], total_projects=1, total_packages=5),
        scan_duration=timedelta(seconds=1.5),
        scan_version="0.1.0",
    )

    data = json.loads(dumps(scan_result_to_dict(result)))
    restored = scan_result_from_dict(data)

    assert data["vulnerable_packages"][0]["highest_severity"] == "high"
    assert data["vulnerable_packages"][0]["suggested_update_versions"] == ["1.1.0"]
    assert data["summary"]["total_vulnerabilities"] == 1
    assert restored.scan_date == result.scan_date
    assert restored.summary == result.summary
    assert restored.scan_duration == timedelta(seconds=1.5)
    assert restored.vulnerable_packages[0].vulnerabilities == vulnerable.vulnerabilities
    assert restored.vulnerable_packages[0].package == vulnerable.package
    assert restored.scanned_projects[0].name == "App"


def test_update_result_backup_content_is_optional() -> None:
    backup = UpdateBackup(
        backup_id="0a1b2c3d",
        created_at=utcnow(),
        files=(BackupFile(original_path=PROJECT, content="<Project>\r\n\udcff</Project>"),),
        description="Update Foo to 1.1.0",
    )
    result = UpdateResult(
        update=PackageUpdate(
            current_package=PackageReference(id="Foo", version=V("1.0.0"), project_path=PROJECT),
            target_version=V("1.1.0"),
            affected_projects=[PROJECT],
            vulnerabilities_fixed=[],
            update_type=UpdateType.MINOR,
            update_reason="Fixes 1 vulnerabilities (highest severity: High)",
        ),
        status=UpdateStatus.FAILED,
        error_message="Build failed",
        warnings=["warning CS0618: obsolete"],
        backup=backup,
    )

    summary = update_result_to_dict(result)
    full = json.loads(dumps(update_result_to_dict(result, include_backup_content=True)))

    assert summary["backup"]["files"] == [{"original_path": PROJECT}]
    assert update_result_from_dict(summary).backup is None
    restored = update_result_from_dict(full)
    assert restored.backup == backup
    assert restored.status == UpdateStatus.FAILED
    assert restored.update.target_version == V("1.1.0")
    assert restored.requires_rollback
