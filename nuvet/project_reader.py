"""
Read .NET solutions, project files and legacy package configuration.
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Dict, List, Optional

from .config import Settings
from .exceptions import ProjectReadError
from .interfaces import ProjectReader
from .models import PackageReference, ProjectInfo, ProjectType, ReferenceSource
from .versioning import SemVersion, VersionRange


logger = logging.getLogger(__name__)

PROJECT_EXTENSIONS = (".csproj", ".vbproj", ".fsproj")
PACKAGES_CONFIG = "packages.config"
CENTRAL_PACKAGES_FILE = "Directory.Packages.props"

_SLN_PROJECT_RE = re.compile(
    r'^Project\("\{[^}]*\}"\)\s*=\s*"(?P<name>[^"]*)"\s*,\s*"(?P<path>[^"]*)"',
    re.MULTILINE,
)
_SKIPPED_DIRS = {"bin", "obj", "node_modules", ".git", ".vs"}


def is_project_file(path: str) -> bool:
    return Path(path).suffix.lower() in PROJECT_EXTENSIONS


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _iter_elements(root: ET.Element, name: str):
    for element in root.iter():
        if isinstance(element.tag, str) and _local_name(element.tag) == name:
            yield element


def _child_text(element: ET.Element, name: str) -> Optional[str]:
    for child in element:
        if isinstance(child.tag, str) and _local_name(child.tag) == name:
            return (child.text or "").strip() or None
    return None


def _first_property(root: ET.Element, name: str) -> Optional[str]:
    for element in _iter_elements(root, name):
        text = (element.text or "").strip()
        if text:
            return text
    return None


def _load_xml(path: Path) -> ET.Element:
    try:
        return ET.parse(path).getroot()
    except (ET.ParseError, OSError) as e:
        raise ProjectReadError(f"Could not read {path}: {e}") from e


def parse_declared_version(value: Optional[str]) -> Optional[SemVersion]:
    """Parse a declared version, accepting exact ranges such as ``[1.2.3]``."""
    if not value:
        return None
    version = SemVersion.try_parse(value)
    if version is not None:
        return version
    try:
        declared = VersionRange.parse(value)
    except ValueError:
        return None
    if declared.min_version is not None and declared.is_min_inclusive:
        return declared.min_version
    return None


def find_central_packages_file(project_path: str) -> Optional[Path]:
    """Nearest Directory.Packages.props at or above the project directory."""
    start = Path(project_path).resolve().parent
    for directory in (start, *start.parents):
        candidate = directory / CENTRAL_PACKAGES_FILE
        if candidate.is_file():
            return candidate
    return None


def packages_config_path(project_path: str) -> Path:
    return Path(project_path).parent / PACKAGES_CONFIG


class MSBuildProjectReader(ProjectReader):
    """Read package references from MSBuild project files."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or Settings()

    def list_projects(self, path: str) -> List[str]:
        target = Path(path)
        if not target.exists():
            raise ProjectReadError(f"Path '{path}' does not exist")

        if target.is_file() and target.suffix.lower() == ".sln":
            return self._projects_from_solution(target)
        if target.is_file() and is_project_file(str(target)):
            return [str(target)]
        if target.is_file():
            raise ProjectReadError(f"'{path}' is not a solution or project file")

        projects = []
        for candidate in sorted(target.rglob("*")):
            if candidate.suffix.lower() not in PROJECT_EXTENSIONS or not candidate.is_file():
                continue
            if _SKIPPED_DIRS.intersection(candidate.relative_to(target).parts[:-1]):
                continue
            projects.append(str(candidate))
        logger.debug("Found %s projects in %s", len(projects), path)
        return projects

    def _projects_from_solution(self, solution_path: Path) -> List[str]:
        try:
            content = solution_path.read_text(encoding="utf-8-sig")
        except OSError as e:
            raise ProjectReadError(f"Could not read solution {solution_path}: {e}") from e

        projects = []
        for match in _SLN_PROJECT_RE.finditer(content):
            relative = match.group("path").replace("\\", "/")
            if not is_project_file(relative):
                continue
            project_path = solution_path.parent / relative
            if project_path.is_file():
                projects.append(str(project_path))
            else:
                logger.warning("Solution %s references missing project %s", solution_path, relative)
        return projects

    def read_project(self, project_path: str) -> ProjectInfo:
        root = _load_xml(Path(project_path))

        frameworks_text = _first_property(root, "TargetFrameworks")
        target_frameworks = [
            tf.strip() for tf in (frameworks_text or "").split(";") if tf.strip()
        ]
        target_framework = _first_property(root, "TargetFramework")
        if target_framework is None:
            legacy = _first_property(root, "TargetFrameworkVersion")
            if legacy:
                target_framework = "net" + legacy.lstrip("vV").replace(".", "")
        if target_framework is None and target_frameworks:
            target_framework = target_frameworks[0]
        if target_framework is None:
            target_framework = self.settings.default_target_framework
        if not target_frameworks:
            target_frameworks = [target_framework]

        output_type = _first_property(root, "OutputType")
        info = ProjectInfo(
            name=Path(project_path).stem,
            path=project_path,
            target_framework=target_framework,
            type=self._project_type(root, output_type),
            output_type=output_type,
            target_frameworks=target_frameworks,
        )
        info.package_references = self._references_from_project(root, project_path, target_framework)
        info.package_references.extend(self._references_from_packages_config(project_path))
        logger.debug(
            "Project %s has %s package references", info.name, len(info.package_references)
        )
        return info

    def read_references(self, project_path: str) -> List[PackageReference]:
        return self.read_project(project_path).package_references

    @staticmethod
    def _project_type(root: ET.Element, output_type: Optional[str]) -> ProjectType:
        output = (output_type or "").lower()
        if output == "exe":
            return ProjectType.CONSOLE_APPLICATION
        if output == "winexe":
            return ProjectType.WINDOWS_APPLICATION
        if output == "library":
            return ProjectType.CLASS_LIBRARY

        sdk = (root.get("Sdk") or "").lower()
        if "web" in sdk:
            return ProjectType.WEB_APPLICATION
        if "test" in sdk or (_first_property(root, "IsTestProject") or "").lower() == "true":
            return ProjectType.TEST_PROJECT
        return ProjectType.OTHER

    def _references_from_project(
        self, root: ET.Element, project_path: str, target_framework: str
    ) -> List[PackageReference]:
        central_versions: Optional[Dict[str, str]] = None
        references = []
        for element in _iter_elements(root, "PackageReference"):
            package_id = element.get("Include")
            if not package_id:
                continue
            declared = element.get("Version") or _child_text(element, "Version")
            source = ReferenceSource.DECLARED_REFERENCE
            if not declared:
                declared = element.get("VersionOverride") or _child_text(element, "VersionOverride")
            if not declared:
                if central_versions is None:
                    central_versions = self._central_versions(project_path)
                declared = central_versions.get(package_id.casefold())
                source = ReferenceSource.CENTRAL_MANAGEMENT

            version = parse_declared_version(declared)
            if version is None:
                logger.debug(
                    "Skipping %s in %s: unusable version %r", package_id, project_path, declared
                )
                continue
            references.append(PackageReference(
                id=package_id,
                version=version,
                project_path=project_path,
                target_framework=target_framework,
                is_direct_dependency=True,
                source=source,
            ))
        return references

    def _central_versions(self, project_path: str) -> Dict[str, str]:
        central = find_central_packages_file(project_path)
        if central is None:
            return {}
        try:
            root = _load_xml(central)
        except ProjectReadError as e:
            logger.warning("%s", e)
            return {}
        versions = {}
        for element in _iter_elements(root, "PackageVersion"):
            package_id = element.get("Include")
            version = element.get("Version") or _child_text(element, "Version")
            if package_id and version:
                versions[package_id.casefold()] = version
        return versions

    def _references_from_packages_config(self, project_path: str) -> List[PackageReference]:
        config = packages_config_path(project_path)
        if not config.is_file():
            return []
        try:
            root = _load_xml(config)
        except ProjectReadError as e:
            logger.error("Error parsing packages.config at %s: %s", config, e)
            return []

        references = []
        for element in _iter_elements(root, "package"):
            package_id = element.get("id")
            version = SemVersion.try_parse(element.get("version"))
            if not package_id or version is None:
                continue
            references.append(PackageReference(
                id=package_id,
                version=version,
                project_path=project_path,
                target_framework=element.get("targetFramework"),
                is_direct_dependency=True,
                source=ReferenceSource.LEGACY_CONFIG,
            ))
        return references
