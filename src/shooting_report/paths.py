"""
Project directories.

Every script and pipeline stage takes its paths from here. The project root
is the nearest directory (upward from this file, else from the working
directory) holding one of ROOT_MARKERS.

Layout:
    configs/params.yml
    data/raw/                  downloaded incident CSV + _manifest.json
    data/processed/            incidents_normalized.parquet
    data/processed/metadata/   provenance sidecars
    reports/tables/, reports/figures/
    logs/                      JSONL run logs
"""

from pathlib import Path
from typing import Iterable, Optional

ROOT_MARKERS = [".project-root", "pyproject.toml", ".git"]


def _first_marked(candidates: Iterable[Path]) -> Optional[Path]:
    for directory in candidates:
        if any((directory / marker).exists() for marker in ROOT_MARKERS):
            return directory
    return None


def find_project_root(start_path: Optional[Path] = None) -> Path:
    """
    Nearest ancestor (inclusive) of start_path that holds a root marker.

    Without start_path, searches from this file's directory and then from
    the current working directory (for non-editable installs).

    Raises:
        FileNotFoundError: If no marker is found
    """
    if start_path is not None:
        starts = [Path(start_path).resolve()]
    else:
        starts = [Path(__file__).resolve().parent, Path.cwd().resolve()]

    for start in starts:
        found = _first_marked([start, *start.parents])
        if found is not None:
            return found

    raise FileNotFoundError(
        f"No project root marker {ROOT_MARKERS} above {', '.join(str(s) for s in starts)}"
    )


PROJECT_ROOT = find_project_root()

CONFIG_DIR = PROJECT_ROOT / "configs"

DATA_DIR = PROJECT_ROOT / "data"
RAW_DIR = DATA_DIR / "raw"
PROCESSED_DIR = DATA_DIR / "processed"
METADATA_DIR = PROCESSED_DIR / "metadata"

REPORTS_DIR = PROJECT_ROOT / "reports"
TABLES_DIR = REPORTS_DIR / "tables"
FIGURES_DIR = REPORTS_DIR / "figures"

LOGS_DIR = PROJECT_ROOT / "logs"

SRC_DIR = PROJECT_ROOT / "src"
SCRIPTS_DIR = PROJECT_ROOT / "scripts"
TESTS_DIR = PROJECT_ROOT / "tests"

OUTPUT_DIRS = (RAW_DIR, PROCESSED_DIR, METADATA_DIR, TABLES_DIR, FIGURES_DIR, LOGS_DIR)


def ensure_dirs_exist() -> None:
    """Create every output directory that is missing."""
    for directory in OUTPUT_DIRS:
        directory.mkdir(parents=True, exist_ok=True)
