"""Tests for NuGet version parsing and ranges."""

import pytest

from nuvet.versioning import SemVersion, VersionRange, semver_key


def test_semver_prerelease_sorting() -> None:
    versions = [
        "1.0.0-beta",
        "1.0.0",
        "0.9",
        "1.0.0-alpha.1",
        "1.0.0-alpha.beta",
        "1.0.0-alpha",
        "v1.2.3",
        "1.2.3+build.7",
        "not-a-version",
    ]

    keys = [(semver_key(v), v) for v in versions]
    keys = [item for item in keys if item[0] is not None]
    keys.sort(key=lambda item: item[0])
    ordered = [v for _, v in keys]

    assert ordered[:6] == [
        "0.9",
        "1.0.0-alpha",
        "1.0.0-alpha.1",
        "1.0.0-alpha.beta",
        "1.0.0-beta",
        "1.0.0",
    ]
    # v-prefix and build metadata should not affect ordering vs base version.
    assert set(ordered[-2:]) == {"1.2.3+build.7", "v1.2.3"}


def test_missing_components_default_to_zero() -> None:
    assert SemVersion.parse("1.0") == SemVersion.parse("1.0.0")
    assert SemVersion.parse("1.0.0") == SemVersion.parse("1.0.0.0")
    assert hash(SemVersion.parse("1.0")) == hash(SemVersion.parse("1.0.0.0"))
    assert str(SemVersion.parse("1.0")) == "1.0.0"
    assert str(SemVersion.parse("4.3.0.1")) == "4.3.0.1"
    assert SemVersion.parse("4.3.0.1") > SemVersion.parse("4.3.0")


def test_prerelease_comparison_ignores_case_and_metadata() -> None:
    assert SemVersion.parse("1.0.0-Beta") == SemVersion.parse("1.0.0-beta")
    assert SemVersion.parse("1.0.0+abc") == SemVersion.parse("1.0.0+def")
    assert SemVersion.parse("1.0.0-rc.2") < SemVersion.parse("1.0.0-rc.10")
    assert SemVersion.parse("2.0.0-preview.1").is_prerelease
    assert not SemVersion.parse("2.0.0").is_prerelease


def test_invalid_versions() -> None:
    with pytest.raises(ValueError):
        SemVersion.parse("1.x")
    assert SemVersion.try_parse("$(Version)") is None
    assert SemVersion.try_parse(None) is None


def test_interval_range() -> None:
    version_range = VersionRange.parse("[1.0, 2.0)")

    assert version_range.satisfies(SemVersion.parse("1.0"))
    assert version_range.satisfies(SemVersion.parse("1.9.9"))
    assert not version_range.satisfies(SemVersion.parse("2.0"))
    assert not version_range.satisfies(SemVersion.parse("0.9"))


def test_bare_exact_and_open_ranges() -> None:
    minimum = VersionRange.parse("6.0.0")
    assert minimum.min_version == SemVersion.parse("6.0.0")
    assert minimum.is_min_inclusive
    assert minimum.satisfies(SemVersion.parse("8.0.1"))

    exact = VersionRange.parse("[1.2.3]")
    assert exact.satisfies(SemVersion.parse("1.2.3"))
    assert not exact.satisfies(SemVersion.parse("1.2.4"))

    exclusive = VersionRange.parse("(1.0, )")
    assert not exclusive.satisfies(SemVersion.parse("1.0"))
    assert exclusive.satisfies(SemVersion.parse("1.0.1"))

    upper = VersionRange.parse("(, 2.0]")
    assert upper.min_version is None
    assert upper.satisfies(SemVersion.parse("2.0"))


def test_lowest_satisfying_prefers_stable() -> None:
    versions = [SemVersion.parse(v) for v in ["1.0.0", "1.0.1-beta", "1.0.1", "1.0.2"]]

    assert VersionRange.parse("(1.0, )").lowest_satisfying(versions) == SemVersion.parse("1.0.1")
    assert VersionRange.parse("[3.0, )").lowest_satisfying(versions) is None


@pytest.mark.parametrize("text", ["[1.0", "[2.0, 1.0]", "(,)", "(1.0)"])
def test_invalid_ranges(text: str) -> None:
    with pytest.raises(ValueError):
        VersionRange.parse(text)
