"""
File I/O for report exports.

Every export (raw CSV download, report tables, figures, JSON diagnostics,
normalized Parquet) goes through a temp file in the target directory that is
renamed over the target only once the write has finished. A failed write
leaves the previous file untouched and no temp file behind.

Table format follows the extension: .csv for report tables, .parquet for the
normalized incident table (keeps categorical/Int64/boolean dtypes).
"""

import json
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

import pandas as pd
import yaml

PathLike = Union[str, Path]

_TABLE_WRITERS: Dict[str, Callable[..., None]] = {
    ".csv": lambda df, path, **kw: df.to_csv(path, **kw),
    ".parquet": lambda df, path, **kw: df.to_parquet(path, **kw),
}

_TABLE_READERS: Dict[str, Callable[..., pd.DataFrame]] = {
    ".csv": pd.read_csv,
    ".parquet": pd.read_parquet,
}


def _table_suffix(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix not in _TABLE_WRITERS:
        raise ValueError(f"Unsupported table format {suffix!r} (use .csv or .parquet): {path}")
    return suffix


# =============================================================================
# Atomic Writes
# =============================================================================

def _sibling_temp(target: Path, suffix: str) -> Path:
    """Reserve an empty temp file in the target's directory (same filesystem)."""
    fd, name = tempfile.mkstemp(prefix=f".{target.stem}_", suffix=suffix, dir=target.parent)
    os.close(fd)
    return Path(name)


def _replace_atomically(target: PathLike, write: Callable[[Path], None], suffix: Optional[str] = None) -> Path:
    """Run write(temp_path), then rename temp over target; remove temp on failure."""
    target = Path(target)
    target.parent.mkdir(parents=True, exist_ok=True)
    temp = _sibling_temp(target, suffix or target.suffix or ".tmp")
    try:
        write(temp)
        temp.replace(target)
    except BaseException:
        temp.unlink(missing_ok=True)
        raise
    return target


@contextmanager
def atomic_write(target_path: PathLike, mode: str = "w", suffix: Optional[str] = None):
    """
    Open a temp file for writing; it replaces target_path when the block exits cleanly.

    Example:
        with atomic_write(FIGURES_DIR / "hours.png", mode="wb") as f:
            fig.savefig(f, format="png")
    """
    target = Path(target_path)
    target.parent.mkdir(parents=True, exist_ok=True)
    temp = _sibling_temp(target, suffix or target.suffix or ".tmp")
    try:
        with open(temp, mode, encoding=None if "b" in mode else "utf-8") as f:
            yield f
        temp.replace(target)
    except BaseException:
        temp.unlink(missing_ok=True)
        raise


def atomic_write_bytes(content: bytes, target_path: PathLike) -> Path:
    """Write raw bytes (the downloaded incident CSV)."""
    return _replace_atomically(target_path, lambda temp: temp.write_bytes(content))


def atomic_write_df(df: pd.DataFrame, target_path: PathLike, **kwargs) -> Path:
    """
    Write a table as CSV or Parquet, chosen by extension.

    Raises:
        ValueError: For any other extension
    """
    target = Path(target_path)
    writer = _TABLE_WRITERS[_table_suffix(target)]
    return _replace_atomically(target, lambda temp: writer(df, temp, **kwargs))


def atomic_write_json(data: Any, target_path: PathLike, **kwargs) -> Path:
    """Write JSON (indent 2; non-JSON values such as Paths are stringified)."""
    kwargs.setdefault("indent", 2)
    kwargs.setdefault("default", str)
    with atomic_write(target_path, mode="w", suffix=".json") as f:
        json.dump(data, f, **kwargs)
    return Path(target_path)


def atomic_write_yaml(data: Any, target_path: PathLike, **kwargs) -> Path:
    """Write YAML in block style, keeping key order."""
    kwargs.setdefault("default_flow_style", False)
    kwargs.setdefault("sort_keys", False)
    with atomic_write(target_path, mode="w", suffix=".yml") as f:
        yaml.safe_dump(data, f, **kwargs)
    return Path(target_path)


# =============================================================================
# Reads
# =============================================================================

def read_yaml(path: PathLike) -> Any:
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f)


def read_json(path: PathLike) -> Any:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def read_df(path: PathLike, **kwargs) -> pd.DataFrame:
    """Read a CSV or Parquet table written by atomic_write_df."""
    path = Path(path)
    return _TABLE_READERS[_table_suffix(path)](path, **kwargs)
