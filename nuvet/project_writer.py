"""
Rewrite declared package versions in place.

Only the version text of the matching declarations changes; every other byte of
the file, including formatting, comments and line endings, is preserved.
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from .backup import ENCODING, ERRORS, read_text_lossless, write_text_atomic
from .exceptions import MutationError
from .project_reader import find_central_packages_file, packages_config_path, parse_declared_version
from .versioning import SemVersion


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Format:
    element: str
    id_attributes: Sequence[str]
    version_names: Sequence[str]


PROJECT_FORMAT = _Format("PackageReference", ("Include", "Update"), ("Version", "VersionOverride"))
LEGACY_FORMAT = _Format("package", ("id",), ("version",))
CENTRAL_FORMAT = _Format("PackageVersion", ("Include", "Update"), ("Version",))


@dataclass(frozen=True)
class Declaration:
    """A declaration of the package; ``value`` is None when it carries no version."""

    start: int
    end: int
    value: Optional[str]


def _attribute_re(name: str) -> re.Pattern:
    return re.compile(r"(?<![\w.-])" + re.escape(name) + r"""\s*=\s*(["'])(.*?)\1""", re.DOTALL)


def _child_re(name: str) -> re.Pattern:
    escaped = re.escape(name)
    return re.compile(r"<" + escaped + r"\s*>\s*([^<]*?)\s*</" + escaped + r"\s*>")


def find_declarations(text: str, fmt: _Format, package_id: str) -> List[Declaration]:
    """Locate every element of ``fmt`` that declares ``package_id``."""
    tag_re = re.compile(r"<" + re.escape(fmt.element) + r"\b[^>]*?(/?)>")
    close_re = re.compile(r"</" + re.escape(fmt.element) + r"\s*>")
    wanted = package_id.casefold()
    found = []

    for tag in tag_re.finditer(text):
        ids = [
            m.group(2) for m in
            (_attribute_re(name).search(tag.group(0)) for name in fmt.id_attributes)
            if m is not None
        ]
        if not any(i.strip().casefold() == wanted for i in ids):
            continue

        declaration = None
        for name in fmt.version_names:
            attribute = _attribute_re(name).search(tag.group(0))
            if attribute is not None:
                declaration = Declaration(
                    tag.start() + attribute.start(2), tag.start() + attribute.end(2), attribute.group(2)
                )
                break

        if declaration is None and not tag.group(1):
            close = close_re.search(text, tag.end())
            if close is not None:
                body = text[tag.end():close.start()]
                for name in fmt.version_names:
                    child = _child_re(name).search(body)
                    if child is not None:
                        declaration = Declaration(
                            tag.end() + child.start(1), tag.end() + child.end(1), child.group(1)
                        )
                        break

        found.append(declaration or Declaration(-1, -1, None))
    return found


def rewrite_versions(text: str, fmt: _Format, package_id: str, version: str):
    """Return ``(new_text, declarations)`` with every versioned declaration set to ``version``."""
    declarations = find_declarations(text, fmt, package_id)
    for declaration in sorted(declarations, key=lambda d: d.start, reverse=True):
        if declaration.value is None:
            continue
        text = text[:declaration.start] + version + text[declaration.end:]
    return text, declarations


def _check_xml(path: Path, text: str) -> None:
    try:
        ET.fromstring(text.encode(ENCODING, ERRORS))
    except ET.ParseError as e:
        raise MutationError(f"Rewritten {path} is not well-formed XML: {e}") from e


class ProjectFileWriter:
    """Set the declared version of a package across the files of one project."""

    def _rewrite_file(self, path: Path, fmt: _Format, package_id: str, version: str) -> List[Declaration]:
        try:
            original = read_text_lossless(path)
        except OSError as e:
            raise MutationError(f"Could not read {path}: {e}") from e

        updated, declarations = rewrite_versions(original, fmt, package_id, version)
        if updated != original:
            _check_xml(path, updated)
            try:
                write_text_atomic(path, updated)
            except OSError as e:
                raise MutationError(f"Could not write {path}: {e}") from e
            logger.debug("Set %s to %s in %s", package_id, version, path)
        return declarations

    def update_package_version(self, project_path: str, package_id: str, version: SemVersion) -> List[str]:
        """Rewrite ``package_id`` to ``version``; returns the files that declare it."""
        target = str(version)
        touched: List[str] = []

        project = Path(project_path)
        declarations = self._rewrite_file(project, PROJECT_FORMAT, package_id, target)
        if any(d.value is not None for d in declarations):
            touched.append(str(project))

        config = packages_config_path(project_path)
        if config.is_file() and any(
            d.value is not None for d in self._rewrite_file(config, LEGACY_FORMAT, package_id, target)
        ):
            touched.append(str(config))

        if declarations and all(d.value is None for d in declarations):
            central = find_central_packages_file(project_path)
            if central is not None and any(
                d.value is not None for d in self._rewrite_file(central, CENTRAL_FORMAT, package_id, target)
            ):
                touched.append(str(central))

        if not touched:
            raise MutationError(f"Package {package_id} is not declared by {project_path}")
        return touched

    def current_versions(self, project_path: str, package_id: str) -> List[SemVersion]:
        """Versions ``package_id`` is declared at for ``project_path``."""
        values: List[Optional[str]] = []

        project_declarations = find_declarations(read_text_lossless(project_path), PROJECT_FORMAT, package_id)
        values.extend(d.value for d in project_declarations)

        config = packages_config_path(project_path)
        if config.is_file():
            values.extend(
                d.value for d in find_declarations(read_text_lossless(config), LEGACY_FORMAT, package_id)
            )

        if project_declarations and all(d.value is None for d in project_declarations):
            central = find_central_packages_file(project_path)
            if central is not None:
                values.extend(
                    d.value for d in find_declarations(read_text_lossless(central), CENTRAL_FORMAT, package_id)
                )

        return [v for v in _parsed(values) if v is not None]


def _parsed(values: Iterable[Optional[str]]):
    for value in values:
        if value is not None:
            yield parse_declared_version(value.strip())
