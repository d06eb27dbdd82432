#!/usr/bin/env python3
"""
02_build_report.py

Build the shooting incident report from the raw NYPD CSV.

Steps:
- Normalize every field onto its closed enumeration (unknowns explicit)
- Fatality rates, counts, yearly/hourly profiles, night shares
- Multinomial model (configs/params.yml: model) on complete cases,
  scored over the full predictor grid and compared with observed classes
- Missingness audit (configs/params.yml: bias.audits)

Uses the cached CSV in data/raw/ (fetched first if absent).

Outputs:
- reports/tables/*.csv
- reports/figures/*.png
- reports/model_diagnostics.json
- data/processed/incidents_normalized.parquet
- data/processed/metadata/incidents_normalized_metadata.json
"""

from shooting_report.logging_utils import get_logger
from shooting_report.paths import ensure_dirs_exist
from shooting_report.pipeline import load_config, report_metrics, run_report

SCRIPT_NAME = "02_build_report"


def main():
    """Main entry point."""
    with get_logger(SCRIPT_NAME) as logger:
        logger.info(f"Starting {SCRIPT_NAME}.py")

        config = load_config()

        try:
            ensure_dirs_exist()

            artifacts = run_report(config, logger=logger)
            metrics = report_metrics(artifacts)
            logger.log_metrics(metrics)

            if artifacts.collapse.collapsed:
                logger.warning(
                    f"Predicted classes cover {len(artifacts.collapse.predicted_classes)} of "
                    f"{len(artifacts.collapse.observed_classes)} observed classes "
                    "(see reports/tables/model_class_distribution.csv)"
                )

            logger.info("=" * 70)
            logger.info(
                f"SUCCESS: Report built from {metrics['incidents']:,} incidents, "
                f"{len(artifacts.outputs)} outputs written"
            )

        except Exception as e:
            logger.error(f"FAILED: {e}")
            raise


if __name__ == "__main__":
    main()
