"""
Run logging: one JSONL file per script run, mirrored to the console.

Every record carries script_name, run_id, level and message; structured
payloads (config + digest, inputs, outputs, metrics, model diagnostics) go
under "extra". The run_id is shared with the metadata sidecars so a report
export can be traced back to its log.
"""

import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from importlib import metadata
from pathlib import Path
from typing import Any, Optional

from shooting_report.paths import LOGS_DIR

# Distributions whose versions are recorded with every run
TRACKED_PACKAGES = ("pandas", "numpy", "pyarrow", "statsmodels", "matplotlib", "requests", "pyyaml", "pytz")


def generate_run_id() -> str:
    """UTC timestamp plus a short random suffix, e.g. 20240301_142501_1a2b3c4d."""
    return f"{datetime.now(timezone.utc):%Y%m%d_%H%M%S}_{uuid.uuid4().hex[:8]}"


def get_versions() -> dict[str, str]:
    """Python and tracked library versions (libraries not installed are omitted)."""
    versions = {"python": sys.version.split()[0]}
    for package in TRACKED_PACKAGES:
        try:
            versions[package] = metadata.version(package)
        except metadata.PackageNotFoundError:
            continue
    return versions


class JSONLLogger:
    """
    Structured logger for one pipeline run.

    Usage:
        with get_logger("02_build_report") as logger:
            logger.info("Normalizing", extra={"rows": 27312})
            logger.log_metrics({"fatality_rate": 0.19})

    Leaving the block with an exception logs it at ERROR before closing.
    """

    def __init__(
        self,
        script_name: str,
        run_id: Optional[str] = None,
        log_dir: Optional[Path] = None,
    ):
        self.script_name = script_name
        self.run_id = run_id or generate_run_id()
        self.log_dir = Path(log_dir or LOGS_DIR)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.log_file = self.log_dir / f"{script_name}_{self.run_id}.jsonl"
        self._stream = open(self.log_file, "a", encoding="utf-8")

        self._console = logging.StreamHandler(sys.stdout)
        self._console.setLevel(logging.INFO)
        self._console.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
        self._logger = logging.getLogger(f"shooting_report.{script_name}.{self.run_id}")
        self._logger.setLevel(logging.DEBUG)
        self._logger.addHandler(self._console)

        self._record("INFO", "Logger initialized", {
            "script_name": script_name,
            "run_id": self.run_id,
            "log_file": str(self.log_file),
            "versions": get_versions(),
        })

    def _record(self, level: str, message: str, extra: Optional[dict[str, Any]] = None) -> None:
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "script_name": self.script_name,
            "run_id": self.run_id,
            "level": level,
            "message": message,
        }
        if extra:
            record["extra"] = extra
        self._stream.write(json.dumps(record, default=str) + "\n")
        self._stream.flush()

    def _log(self, level: str, message: str, extra: Optional[dict[str, Any]]) -> None:
        self._record(level, message, extra)
        self._logger.log(getattr(logging, level), message)

    def debug(self, message: str, extra: Optional[dict[str, Any]] = None) -> None:
        self._log("DEBUG", message, extra)

    def info(self, message: str, extra: Optional[dict[str, Any]] = None) -> None:
        self._log("INFO", message, extra)

    def warning(self, message: str, extra: Optional[dict[str, Any]] = None) -> None:
        self._log("WARNING", message, extra)

    def error(self, message: str, extra: Optional[dict[str, Any]] = None) -> None:
        self._log("ERROR", message, extra)

    # Structured records (file only)

    def log_config(self, config: dict[str, Any], config_digest: Optional[str] = None) -> None:
        self._record("INFO", "Configuration loaded", {"config": config, "config_digest": config_digest})

    def log_inputs(self, inputs: dict[str, str]) -> None:
        self._record("INFO", "Inputs registered", {"inputs": inputs})

    def log_outputs(self, outputs: dict[str, str]) -> None:
        self._record("INFO", "Outputs registered", {"outputs": outputs})

    def log_metrics(self, metrics: dict[str, Any]) -> None:
        self._record("INFO", "Metrics recorded", {"metrics": metrics})

    def log_model_diagnostics(self, diagnostics: dict[str, Any]) -> None:
        self._record("INFO", "Model diagnostics recorded", {"model": diagnostics})

    def close(self) -> None:
        if self._stream.closed:
            return
        self._record("INFO", "Logger closing", {"run_id": self.run_id})
        self._stream.close()
        self._logger.removeHandler(self._console)

    def __enter__(self) -> "JSONLLogger":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type is not None:
            self.error(f"Exception occurred: {exc_type.__name__}: {exc_val}")
        self.close()


def get_logger(
    script_name: str,
    run_id: Optional[str] = None,
    log_dir: Optional[Path] = None,
) -> JSONLLogger:
    """JSONLLogger for a script run (run_id generated, logs under LOGS_DIR by default)."""
    return JSONLLogger(script_name=script_name, run_id=run_id, log_dir=log_dir)
