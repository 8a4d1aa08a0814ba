"""Tests for dotnet build validation."""

import subprocess

from nuvet import validator as validator_module
from nuvet.config import Settings
from nuvet.validator import DotNetBuildValidator, parse_diagnostics, validate_projects

BUILD_OUTPUT = """\
  Determining projects to restore...
/src/App/Program.cs(12,5): warning CS0618: 'Foo.Old()' is obsolete [/src/App/App.csproj]
/src/App/Program.cs(20,9): error CS0246: The type 'Bar' could not be found [/src/App/App.csproj]
/src/App/Program.cs(20,9): error CS0246: The type 'Bar' could not be found [/src/App/App.csproj]
Build FAILED.
"""


class FakeValidator:
    def __init__(self, results):
        self.results = results

    def validate(self, project_path):
        return self.results[project_path]


def test_parse_diagnostics_deduplicates():
    errors, warnings = parse_diagnostics(BUILD_OUTPUT)

    assert len(errors) == 1
    assert "error CS0246" in errors[0]
    assert len(warnings) == 1
    assert "warning CS0618" in warnings[0]


def test_validate_projects_collects_failures():
    fake = FakeValidator({
        "/src/App/App.csproj": (1, BUILD_OUTPUT, ""),
        "/src/Lib/Lib.csproj": (0, "Build succeeded.", ""),
        "/src/Web/Web.csproj": (1, "", "Restore failed\nerror: NU1102 Unable to find package"),
    })

    result = validate_projects(fake, ["/src/App/App.csproj", "/src/Lib/Lib.csproj", "/src/Web/Web.csproj"])

    assert not result.is_valid
    assert result.errors[0].startswith("Build failed for /src/App/App.csproj (exit code 1): ")
    assert "CS0246" in result.errors[0]
    assert result.errors[1] == "Build failed for /src/Web/Web.csproj (exit code 1): error: NU1102 Unable to find package"
    assert len(result.warnings) == 1


def test_missing_dotnet(monkeypatch):
    validator_module.locate_dotnet.cache_clear()
    monkeypatch.setattr(validator_module.shutil, "which", lambda name: None)

    code, _, err = DotNetBuildValidator().validate("/src/App/App.csproj")

    validator_module.locate_dotnet.cache_clear()
    assert code == 1
    assert err == "dotnet executable not found"


def test_restore_then_build(monkeypatch):
    calls = []

    def fake_run(args, **kwargs):
        calls.append(args)
        return subprocess.CompletedProcess(args, 0, stdout="ok", stderr="")

    monkeypatch.setattr(validator_module.subprocess, "run", fake_run)
    settings = Settings(dotnet_path="/opt/dotnet/dotnet")

    code, out, _ = DotNetBuildValidator(settings).validate("/src/App/App.csproj")

    assert code == 0 and out == "ok"
    assert [c[1] for c in calls] == ["restore", "build"]
    assert calls[1][-1] == "--no-restore"


def test_timeout_is_a_failure(monkeypatch):
    def slow_run(args, **kwargs):
        raise subprocess.TimeoutExpired(args, kwargs["timeout"])

    monkeypatch.setattr(validator_module.subprocess, "run", slow_run)
    settings = Settings(dotnet_path="/opt/dotnet/dotnet", build_timeout=5)

    code, _, err = DotNetBuildValidator(settings).validate("/src/App/App.csproj")

    assert code == 1
    assert "timed out after 5s" in err
