#!/usr/bin/env python3
"""
01_fetch_incidents.py

Fetch the NYPD Shooting Incident Data (Historic) CSV from NYC Open Data.

- Download the full CSV export (one request, no retry)
- Validate that every NYPD column the report reads is present
- Record provenance (URL, timestamp, sha256) in data/raw/_manifest.json

Outputs:
- data/raw/nypd_shooting_incidents.csv
- data/raw/_manifest.json (updated with provenance)

Data Source:
- https://data.cityofnewyork.us/Public-Safety/NYPD-Shooting-Incident-Data-Historic-/833y-fsy8
"""

from shooting_report.hashing import hash_dict
from shooting_report.io_utils import read_yaml
from shooting_report.loader import DEFAULT_FILENAME, DEFAULT_TIMEOUT, SOURCE_URL, load_incidents
from shooting_report.logging_utils import get_logger
from shooting_report.paths import CONFIG_DIR, RAW_DIR, ensure_dirs_exist

SCRIPT_NAME = "01_fetch_incidents"


def main():
    """Main entry point."""
    with get_logger(SCRIPT_NAME) as logger:
        logger.info(f"Starting {SCRIPT_NAME}.py")

        config = read_yaml(CONFIG_DIR / "params.yml")
        logger.log_config(config, config_digest=hash_dict(config))
        source = config.get("source", {})

        try:
            ensure_dirs_exist()

            raw, path = load_incidents(
                path=RAW_DIR / source.get("filename", DEFAULT_FILENAME),
                url=source.get("url", SOURCE_URL),
                refresh=True,
                timeout=source.get("timeout_seconds", DEFAULT_TIMEOUT),
                logger=logger,
            )

            logger.log_outputs({
                "incidents_csv": str(path),
                "manifest": str(path.parent / "_manifest.json"),
            })
            logger.log_metrics({
                "row_count": len(raw),
                "column_count": len(raw.columns),
            })

            logger.info("=" * 70)
            logger.info(f"SUCCESS: Fetched {len(raw):,} incident records")

        except Exception as e:
            logger.error(f"FAILED: {e}")
            raise


if __name__ == "__main__":
    main()
