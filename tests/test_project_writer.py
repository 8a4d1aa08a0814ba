"""Tests for in-place version rewriting."""

from pathlib import Path

import pytest

from nuvet.exceptions import MutationError
from nuvet.project_writer import ProjectFileWriter
from nuvet.versioning import SemVersion

V = SemVersion.parse

PROJECT = (
    '<Project Sdk="Microsoft.NET.Sdk">\r\n'
    "  <!-- pinned for compatibility -->\r\n"
    "  <ItemGroup>\r\n"
    '    <PackageReference Include="Newtonsoft.Json" Version="12.0.1" PrivateAssets="all" />\r\n'
    '    <PackageReference Include="Newtonsoft.Json.Bson" Version="1.0.2" />\r\n'
    '    <PackageReference Update="newtonsoft.json">\r\n'
    "      <Version>12.0.1</Version>\r\n"
    "    </PackageReference>\r\n"
    "  </ItemGroup>\r\n"
    "</Project>\r\n"
)


def test_rewrites_attribute_and_child_versions_only(tmp_path: Path) -> None:
    project = tmp_path / "App.csproj"
    project.write_bytes(PROJECT.encode("utf-8"))

    touched = ProjectFileWriter().update_package_version(str(project), "NEWTONSOFT.JSON", V("13.0.1"))

    assert touched == [str(project)]
    expected = PROJECT.replace('Version="12.0.1"', 'Version="13.0.1"').replace(
        "<Version>12.0.1</Version>", "<Version>13.0.1</Version>"
    )
    assert project.read_bytes() == expected.encode("utf-8")
    assert 'Include="Newtonsoft.Json.Bson" Version="1.0.2"' in project.read_text(encoding="utf-8")


def test_rewrites_packages_config(tmp_path: Path) -> None:
    project = tmp_path / "Legacy.csproj"
    project.write_text("<Project />\n", encoding="utf-8")
    config = tmp_path / "packages.config"
    config.write_text(
        '<?xml version="1.0" encoding="utf-8"?>\n'
        "<packages>\n"
        '  <package id="log4net" version="2.0.8" targetFramework="net472" />\n'
        "</packages>\n",
        encoding="utf-8",
    )

    writer = ProjectFileWriter()
    touched = writer.update_package_version(str(project), "log4net", V("2.0.10"))

    assert touched == [str(config)]
    assert 'version="2.0.10"' in config.read_text(encoding="utf-8")
    assert project.read_text(encoding="utf-8") == "<Project />\n"
    assert writer.current_versions(str(project), "LOG4NET") == [V("2.0.10")]


def test_centrally_managed_version_is_rewritten_in_props(tmp_path: Path) -> None:
    props = tmp_path / "Directory.Packages.props"
    props.write_text(
        "<Project>\n  <ItemGroup>\n"
        '    <PackageVersion Include="Dapper" Version="2.0.123" />\n'
        "  </ItemGroup>\n</Project>\n",
        encoding="utf-8",
    )
    project = tmp_path / "src" / "App.csproj"
    project.parent.mkdir()
    original_project = '<Project>\n  <ItemGroup>\n    <PackageReference Include="Dapper" />\n  </ItemGroup>\n</Project>\n'
    project.write_text(original_project, encoding="utf-8")

    writer = ProjectFileWriter()
    touched = writer.update_package_version(str(project), "Dapper", V("2.1.0"))

    assert touched == [str(props.resolve())]
    assert 'Version="2.1.0"' in props.read_text(encoding="utf-8")
    assert project.read_text(encoding="utf-8") == original_project
    assert writer.current_versions(str(project), "Dapper") == [V("2.1.0")]


def test_unknown_package_raises_and_leaves_file_alone(tmp_path: Path) -> None:
    project = tmp_path / "App.csproj"
    project.write_bytes(PROJECT.encode("utf-8"))

    with pytest.raises(MutationError):
        ProjectFileWriter().update_package_version(str(project), "Serilog", V("3.0.0"))

    assert project.read_bytes() == PROJECT.encode("utf-8")


def test_current_versions(tmp_path: Path) -> None:
    project = tmp_path / "App.csproj"
    project.write_bytes(PROJECT.encode("utf-8"))

    assert ProjectFileWriter().current_versions(str(project), "Newtonsoft.Json") == [V("12.0.1"), V("12.0.1")]
    assert ProjectFileWriter().current_versions(str(project), "Serilog") == []
