"""
Build validation through the dotnet CLI.
"""

from __future__ import annotations

import logging
import re
import shutil
import subprocess
import time
from datetime import timedelta
from functools import lru_cache
from typing import Iterable, List, Optional, Tuple

from .config import Settings
from .interfaces import BuildValidator
from .models import ValidationResult


logger = logging.getLogger(__name__)

_DIAGNOSTIC_RE = re.compile(r":\s*(?P<kind>error|warning)\s+[A-Z]+\d+:", re.IGNORECASE)


@lru_cache(maxsize=None)
def locate_dotnet(configured: Optional[str] = None) -> Optional[str]:
    """Resolve the dotnet executable once per process."""
    if configured:
        return shutil.which(configured) or configured
    return shutil.which("dotnet")


def parse_diagnostics(output: str) -> Tuple[List[str], List[str]]:
    """Split MSBuild output into error and warning lines, deduplicated in order."""
    errors: List[str] = []
    warnings: List[str] = []
    for line in output.splitlines():
        match = _DIAGNOSTIC_RE.search(line)
        if match is None:
            continue
        bucket = errors if match.group("kind").lower() == "error" else warnings
        text = line.strip()
        if text not in bucket:
            bucket.append(text)
    return errors, warnings


class DotNetBuildValidator(BuildValidator):
    """Run ``dotnet restore`` and ``dotnet build`` for a project."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or Settings()

    def _run(self, args: List[str]) -> Tuple[int, str, str]:
        logger.debug("Running %s", " ".join(args))
        try:
            result = subprocess.run(
                args, capture_output=True, text=True,
                timeout=self.settings.build_timeout, stdin=subprocess.DEVNULL,
            )
        except subprocess.TimeoutExpired:
            return 1, "", f"Build timed out after {self.settings.build_timeout:.0f}s"
        except OSError as e:
            return 1, "", f"Could not run {args[0]}: {e}"
        return result.returncode, result.stdout or "", result.stderr or ""

    def validate(self, project_path: str) -> Tuple[int, str, str]:
        dotnet = locate_dotnet(self.settings.dotnet_path)
        if dotnet is None:
            return 1, "", "dotnet executable not found"

        code, out, err = self._run([dotnet, "restore", project_path])
        if code != 0:
            return code, out, err
        return self._run([dotnet, "build", project_path, "--no-restore"])

    def validate_projects(self, project_paths: Iterable[str]) -> ValidationResult:
        return validate_projects(self, project_paths)


def _failure_detail(build_errors: List[str], out: str, err: str) -> str:
    if build_errors:
        return build_errors[0]
    lines = (err or out).strip().splitlines()
    return lines[-1] if lines else ""


def validate_projects(validator: BuildValidator, project_paths: Iterable[str]) -> ValidationResult:
    """Build each project; any non-zero exit makes the result invalid."""
    started = time.monotonic()
    errors: List[str] = []
    warnings: List[str] = []
    for project_path in project_paths:
        logger.info("Validating build of %s", project_path)
        code, out, err = validator.validate(project_path)
        build_errors, build_warnings = parse_diagnostics(out + "\n" + err)
        warnings.extend(build_warnings)
        if code != 0:
            message = f"Build failed for {project_path} (exit code {code})"
            detail = _failure_detail(build_errors, out, err)
            errors.append(f"{message}: {detail}" if detail else message)
    return ValidationResult(
        is_valid=not errors,
        errors=errors,
        warnings=warnings,
        duration=timedelta(seconds=time.monotonic() - started),
    )
