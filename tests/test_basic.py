"""Tests for the nuvet package."""

from pathlib import Path
import tempfile


def test_package_import():
    """Test that the package can be imported."""
    import nuvet
    assert nuvet.__version__ == "0.1.0"


def test_cli_import():
    """Test that CLI module can be imported."""
    from nuvet.cli import main
    assert callable(main)


def test_public_api():
    """Test that the library entry points are exported."""
    import nuvet
    for name in ("scan", "analyze", "update_vulnerable_packages", "restore_backup"):
        assert callable(getattr(nuvet, name))


def test_osv_builder_initialization():
    """Test that OSV builder can be initialized."""
    from nuvet.osv_builder import OSVBuilder

    with tempfile.TemporaryDirectory() as tmpdir:
        builder = OSVBuilder(Path(tmpdir))

        assert builder.output_dir == Path(tmpdir)
        assert builder.osv_dir == Path(tmpdir) / "osv-data"
        assert builder.osv_db_file == Path(tmpdir) / "osv_database.parquet"


def test_settings_from_env():
    """Test that NUVET_* variables override the defaults."""
    from nuvet.config import Settings

    settings = Settings.from_env({
        "NUVET_BACKUP_DIR": "/var/backups/nuvet",
        "NUVET_MAX_WORKERS": "0",
        "NUVET_OSV_API_URL": "https://osv.internal/v1/",
        "NUVET_REGISTRY_FLAT_CONTAINER_URL": "https://nuget.internal/flat/",
    })

    assert settings.backup_dir == Path("/var/backups/nuvet")
    assert settings.max_workers == 1
    assert settings.osv_api_url == "https://osv.internal/v1"
    assert settings.registry_urls["flat_container"] == "https://nuget.internal/flat"
    assert settings.registry_urls["service_index"] == "https://api.nuget.org/v3/index.json"
