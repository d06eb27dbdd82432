"""
Loader for the NYPD Shooting Incident Data (Historic) CSV.

- Fetch the CSV once from NYC Open Data into data/raw/ and record provenance
  (source URL, timestamp, sha256) in data/raw/_manifest.json.
- Reuse the cached local copy on later runs.
- Read every column as raw text so sentinels like "(null)" reach the
  normalizer untouched.

A fetch failure is surfaced immediately (no automatic retry). Every
downstream stage depends on a successfully loaded table, so any failure here
raises LoadError and aborts the run.

Data Source:
- https://data.cityofnewyork.us/Public-Safety/NYPD-Shooting-Incident-Data-Historic-/833y-fsy8
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Tuple, Union

import pandas as pd
import requests

from shooting_report.hashing import hash_file
from shooting_report.io_utils import atomic_write_bytes, atomic_write_json, read_json, read_yaml
from shooting_report.paths import CONFIG_DIR, RAW_DIR
from shooting_report.schemas import SchemaError, validate_raw_columns

# =============================================================================
# Constants
# =============================================================================

SOURCE_URL = (
    "https://data.cityofnewyork.us/api/views/833y-fsy8/rows.csv?accessType=DOWNLOAD"
)
DATASET_ID = "833y-fsy8"
DEFAULT_FILENAME = "nypd_shooting_incidents.csv"
DEFAULT_TIMEOUT = 120  # seconds


class LoadError(Exception):
    """Raised when the incident table cannot be fetched, read or validated."""
    pass


def _load_source_config() -> dict:
    """Load source configuration from params.yml."""
    params = read_yaml(CONFIG_DIR / "params.yml")
    return params.get("source", {})


# =============================================================================
# Fetching
# =============================================================================

def fetch_incidents_csv(
    url: str = SOURCE_URL,
    dest: Optional[Union[str, Path]] = None,
    timeout: int = DEFAULT_TIMEOUT,
    logger=None,
) -> Path:
    """
    Download the incident CSV to dest and register it in the raw manifest.

    Args:
        url: CSV download URL
        dest: Destination path (default: RAW_DIR / DEFAULT_FILENAME)
        timeout: Request timeout in seconds
        logger: Optional JSONLLogger

    Returns:
        Path to the downloaded file

    Raises:
        LoadError: On any network or HTTP failure
    """
    dest = Path(dest) if dest is not None else RAW_DIR / DEFAULT_FILENAME

    if logger:
        logger.info(f"Fetching incident CSV from {url}")

    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        if logger:
            logger.error(f"Fetch failed: {e}")
        raise LoadError(f"Failed to fetch incident data from {url}: {e}") from e

    if not response.content:
        raise LoadError(f"Empty response body from {url}")

    atomic_write_bytes(response.content, dest)

    timestamp = datetime.now(timezone.utc)
    record_download(dest, url, timestamp)

    if logger:
        logger.info(f"Saved: {dest} ({len(response.content):,} bytes)")

    return dest


def record_download(path: Path, url: str, timestamp: datetime) -> Path:
    """
    Append provenance for a downloaded file to the raw manifest.

    The manifest lives next to the downloaded file as `_manifest.json`.
    """
    manifest_path = path.parent / "_manifest.json"
    if manifest_path.exists():
        manifest = read_json(manifest_path)
    else:
        manifest = {"downloads": []}

    manifest["downloads"].append({
        "source": "NYC Open Data - NYPD Shooting Incident Data (Historic)",
        "dataset_id": DATASET_ID,
        "url": url,
        "download_timestamp": timestamp.isoformat(),
        "filename": path.name,
        "file_path": str(path),
        "sha256": hash_file(path),
    })
    manifest["last_updated"] = timestamp.isoformat()

    atomic_write_json(manifest, manifest_path)
    return manifest_path


# =============================================================================
# Reading
# =============================================================================

def read_incidents_csv(path: Union[str, Path]) -> pd.DataFrame:
    """
    Read a raw incident CSV with every column as text.

    Raises:
        LoadError: If the file is missing, unreadable, empty, or lacks a
            required NYPD column
    """
    path = Path(path)

    if not path.exists():
        raise LoadError(f"Incident CSV not found: {path}")

    try:
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
    except (pd.errors.EmptyDataError, pd.errors.ParserError, UnicodeDecodeError) as e:
        raise LoadError(f"Could not read incident CSV {path}: {e}") from e

    # Socrata exports sometimes carry stray whitespace in headers
    df.columns = df.columns.str.strip()

    try:
        validate_raw_columns(df, context=str(path))
    except SchemaError as e:
        raise LoadError(str(e)) from e

    return df


def load_incidents(
    path: Optional[Union[str, Path]] = None,
    url: Optional[str] = None,
    refresh: bool = False,
    timeout: Optional[int] = None,
    logger=None,
) -> Tuple[pd.DataFrame, Path]:
    """
    Load the raw incident table, fetching it first if no local copy exists.

    Args:
        path: Local CSV path (default: RAW_DIR / configured filename)
        url: Download URL (default: configured URL, else SOURCE_URL)
        refresh: Re-download even if the local copy exists
        timeout: Request timeout in seconds
        logger: Optional JSONLLogger

    Returns:
        Tuple of (raw DataFrame, path it was read from)

    Raises:
        LoadError: If the table cannot be fetched or read
    """
    if path is None or url is None or timeout is None:
        source = _load_source_config()
        if path is None:
            path = RAW_DIR / source.get("filename", DEFAULT_FILENAME)
        url = url or source.get("url", SOURCE_URL)
        timeout = timeout or source.get("timeout_seconds", DEFAULT_TIMEOUT)

    path = Path(path)

    if refresh or not path.exists():
        fetch_incidents_csv(url=url, dest=path, timeout=timeout, logger=logger)
    elif logger:
        logger.info(f"Using cached incident CSV: {path}")

    df = read_incidents_csv(path)

    if logger:
        logger.info(f"Loaded {len(df):,} raw incident records")

    return df, path
