"""
Provenance for report runs.

The normalized incident table gets a metadata sidecar
(data/processed/metadata/<stem>_metadata.json) recording:
  - sha256 of the raw incident CSV it was built from
  - digest of the params.yml content used for the run
  - git commit / dirty flag of the code
  - library versions, run_id and UTC timestamp
"""

import hashlib
import json
import subprocess
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

from shooting_report.io_utils import atomic_write_json, read_json
from shooting_report.logging_utils import get_versions
from shooting_report.paths import METADATA_DIR, PROJECT_ROOT

CHUNK_SIZE = 1 << 20


# =============================================================================
# Digests
# =============================================================================

def hash_file(path: Union[str, Path], algorithm: str = "sha256") -> str:
    """
    Hex digest of a file's bytes, read in 1 MiB chunks.

    Raises:
        FileNotFoundError: If the file does not exist
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Cannot hash missing file: {path}")

    digest = hashlib.new(algorithm)
    with open(path, "rb") as f:
        while chunk := f.read(CHUNK_SIZE):
            digest.update(chunk)
    return digest.hexdigest()


def hash_dict(d: Dict[str, Any], algorithm: str = "sha256") -> str:
    """Digest of a config dict; independent of key order."""
    payload = json.dumps(d, sort_keys=True, default=str).encode("utf-8")
    return hashlib.new(algorithm, payload).hexdigest()


# =============================================================================
# Code Version
# =============================================================================

def _git(*args: str) -> Optional[str]:
    """stdout of a git command run at the project root, or None outside a repo."""
    try:
        result = subprocess.run(
            ["git", *args], cwd=PROJECT_ROOT, capture_output=True, text=True, timeout=5
        )
    except (OSError, subprocess.TimeoutExpired):
        return None
    return result.stdout.strip() if result.returncode == 0 else None


def get_git_info() -> Dict[str, Any]:
    """Current commit and whether the working tree has uncommitted changes."""
    status = _git("status", "--porcelain")
    return {
        "commit": _git("rev-parse", "HEAD"),
        "dirty": None if status is None else bool(status),
    }


# =============================================================================
# Metadata Sidecars
# =============================================================================

def _describe_input(path: Union[str, Path]) -> Dict[str, Any]:
    path = Path(path)
    if not path.is_file():
        return {"path": str(path), "hash": None, "missing": True}
    return {"path": str(path), "hash": hash_file(path), "size_bytes": path.stat().st_size}


def _sidecar_path(output_path: Union[str, Path], metadata_dir: Optional[Path]) -> Path:
    return Path(metadata_dir or METADATA_DIR) / f"{Path(output_path).stem}_metadata.json"


def write_metadata_sidecar(
    output_path: Union[str, Path],
    inputs: Dict[str, str],
    config: Dict[str, Any],
    run_id: str,
    extra: Optional[Dict[str, Any]] = None,
    metadata_dir: Optional[Path] = None,
) -> Path:
    """
    Write the provenance sidecar for an output file.

    Args:
        output_path: The output being described
        inputs: Input name -> file path; missing files are recorded as such
        config: Configuration used for the run (stored with its digest)
        run_id: Run identifier shared with the JSONL log
        extra: Additional fields (row counts, model summary, ...)
        metadata_dir: Sidecar directory (default: METADATA_DIR)

    Returns:
        Path to the sidecar
    """
    metadata = {
        "output_file": str(output_path),
        "run_id": run_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "inputs": {name: _describe_input(path) for name, path in inputs.items()},
        "config_digest": hash_dict(config),
        "config": config,
        "git": get_git_info(),
        "versions": get_versions(),
    }
    if extra:
        metadata["extra"] = extra

    sidecar = _sidecar_path(output_path, metadata_dir)
    atomic_write_json(metadata, sidecar)
    return sidecar


def read_metadata_sidecar(
    output_path: Union[str, Path],
    metadata_dir: Optional[Path] = None,
) -> Optional[Dict[str, Any]]:
    """Sidecar contents for output_path, or None if none was written."""
    sidecar = _sidecar_path(output_path, metadata_dir)
    return read_json(sidecar) if sidecar.exists() else None
