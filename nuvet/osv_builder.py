"""
OSV (Open Source Vulnerabilities) database builder.
"""

import json
import logging
import os
import shutil
import zipfile
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
import requests
from tqdm import tqdm

from .config import Settings
from .exceptions import FeedError


logger = logging.getLogger(__name__)

COLUMNS = ["vul_id", "ecosystem", "package", "package_key", "published", "modified", "record"]


class OSVBuilder:
    """Build and query a local copy of the OSV advisories for one ecosystem."""

    def __init__(self, output_dir: Optional[Path] = None, settings: Optional[Settings] = None):
        """Initialize OSV builder.

        Args:
            output_dir: Directory to store OSV data and database
            settings: Source URL, ecosystem and timeouts
        """
        self.settings = settings or Settings()
        self.output_dir = Path(output_dir or self.settings.osv_data_dir)
        self.osv_url = self.settings.osv_bulk_url
        self.ecosystem = self.settings.osv_ecosystem
        self.osv_dir = self.output_dir / "osv-data"
        self.osv_zip = self.output_dir / "osv-all.zip"
        self.osv_db_file = self.output_dir / "osv_database.parquet"
        self._database: Optional[pd.DataFrame] = None

    def download_osv_data(self) -> None:
        """Download the ecosystem export."""
        logger.info("Downloading OSV data from %s", self.osv_url)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        try:
            with requests.get(self.osv_url, stream=True, timeout=self.settings.request_timeout) as response:
                response.raise_for_status()
                total_size = int(response.headers.get("content-length", 0))
                with open(self.osv_zip, "wb") as f:
                    with tqdm(total=total_size, unit="B", unit_scale=True, desc="OSV download") as pbar:
                        for chunk in response.iter_content(chunk_size=8192):
                            f.write(chunk)
                            pbar.update(len(chunk))
        except requests.RequestException as e:
            if self.osv_zip.exists():
                os.remove(self.osv_zip)
            raise FeedError(f"Could not download OSV data from {self.osv_url}: {e}") from e

        logger.info("Downloaded OSV data to %s", self.osv_zip)

    def extract_osv_data(self) -> None:
        """Extract OSV zip file."""
        logger.info("Extracting OSV data to %s", self.osv_dir)

        if self.osv_dir.exists():
            shutil.rmtree(self.osv_dir)

        try:
            with zipfile.ZipFile(self.osv_zip, "r") as zip_ref:
                zip_ref.extractall(self.osv_dir)
        except zipfile.BadZipFile as e:
            raise FeedError(f"Corrupt OSV archive {self.osv_zip}: {e}") from e

    def parse_osv_files(self) -> pd.DataFrame:
        """Parse OSV JSON files into one row per (advisory, package).

        Returns:
            DataFrame with the raw advisory kept as JSON in ``record``
        """
        logger.info("Parsing OSV vulnerability data")

        records: List[Dict] = []
        json_files = sorted(self.osv_dir.rglob("*.json"))

        for json_file in tqdm(json_files, desc="Processing vulnerabilities"):
            try:
                with open(json_file, "r", encoding="utf-8") as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Error processing %s: %s", json_file, e)
                continue
            records.extend(self.rows_for_record(data))

        df = pd.DataFrame(records, columns=COLUMNS)
        logger.info("Parsed %s vulnerability records", len(df))
        return df

    def rows_for_record(self, data: Dict) -> List[Dict]:
        if data.get("withdrawn"):
            return []
        rows = []
        seen = set()
        for affected in data.get("affected", []):
            package = affected.get("package") or {}
            name = package.get("name")
            if not name or package.get("ecosystem", "").lower() != self.ecosystem.lower():
                continue
            if name.casefold() in seen:
                continue
            seen.add(name.casefold())
            rows.append({
                "vul_id": data.get("id", ""),
                "ecosystem": self.ecosystem,
                "package": name,
                "package_key": name.casefold(),
                "published": data.get("published"),
                "modified": data.get("modified"),
                "record": json.dumps(data),
            })
        return rows

    def build_database(self, force: bool = False) -> pd.DataFrame:
        """Build complete OSV database.

        Args:
            force: Rebuild even when a database file already exists

        Returns:
            DataFrame with OSV vulnerability data
        """
        if self.osv_db_file.exists() and not force:
            logger.info("Loading existing OSV database from %s", self.osv_db_file)
            self._database = pd.read_parquet(self.osv_db_file)
            return self._database

        if force or not self.osv_zip.exists():
            self.download_osv_data()
        self.extract_osv_data()

        df = self.parse_osv_files()
        df.to_parquet(self.osv_db_file, index=False)
        logger.info("Saved OSV database to %s", self.osv_db_file)

        if self.osv_zip.exists():
            os.remove(self.osv_zip)
        if self.osv_dir.exists():
            shutil.rmtree(self.osv_dir)

        self._database = df
        return df

    def load_database(self) -> pd.DataFrame:
        if self._database is None:
            if not self.osv_db_file.exists():
                raise FeedError(
                    f"OSV database not found in {self.output_dir}. Run 'nuvet build-osv' first."
                )
            self._database = pd.read_parquet(self.osv_db_file)
        return self._database

    def get_records(self, package: str) -> List[Dict]:
        """Raw advisories recorded for ``package`` (matched case-insensitively)."""
        df = self.load_database()
        if len(df) == 0:
            return []
        matches = df[df["package_key"] == package.casefold()]
        return [json.loads(record) for record in matches["record"]]
