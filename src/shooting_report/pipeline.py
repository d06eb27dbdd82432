"""
End-to-end shooting incident report.

load -> normalize -> aggregate -> fit -> score grid -> compare -> audit

run_report returns every intermediate as a ReportArtifacts value (tables,
fitted model, prediction result, figures). Writing CSV/PNG/Parquet exports
is optional and happens only after every stage has succeeded; any failure
aborts the whole report.

Outputs (write=True):
- reports/tables/*.csv
- reports/figures/*.png
- reports/model_diagnostics.json, reports/run_config.yml
- data/processed/incidents_normalized.parquet
- data/processed/metadata/incidents_normalized_metadata.json
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import pandas as pd
from matplotlib.figure import Figure

from shooting_report.aggregate import (
    count_by,
    count_by_hour,
    count_by_period,
    night_share_by,
    rate_by,
)
from shooting_report.bias import (
    cell_spread,
    missing_crosstab,
    missingness_rates,
    summarize_missingness,
)
from shooting_report.categories import FIELD_SPECS, with_extra_sentinels
from shooting_report.figures import (
    plot_class_distribution,
    plot_count_heatmap,
    plot_hour_profile,
    plot_period_counts,
    plot_predicted_vs_observed,
    plot_rate_bars,
    save_figure,
)
from shooting_report.hashing import hash_dict, write_metadata_sidecar
from shooting_report.io_utils import atomic_write_df, atomic_write_json, atomic_write_yaml, read_yaml
from shooting_report.loader import DEFAULT_FILENAME, DEFAULT_TIMEOUT, SOURCE_URL, load_incidents
from shooting_report.logging_utils import generate_run_id
from shooting_report.model import MultinomialModel, fit_multinomial, fit_summary
from shooting_report.normalize import normalize_incidents, unknown_breakdown
from shooting_report.paths import CONFIG_DIR, PROCESSED_DIR, RAW_DIR, REPORTS_DIR
from shooting_report.predict import (
    ClassCollapse,
    PredictionResult,
    compare_class_distribution,
    compare_probabilities,
    detect_class_collapse,
    score_grid,
)
from shooting_report.qa import (
    check_count_conservation,
    check_probabilities_sum_to_one,
    check_rates_within_bounds,
    compute_na_rates,
)
from shooting_report.time_utils import get_nighttime_window, get_year_range

NORMALIZED_FILENAME = "incidents_normalized.parquet"

DEFAULT_MODEL = {
    "outcome": "perp_race",
    "predictors": ["victim_age", "victim_sex", "boro"],
    "maxiter": 100,
    "tol": 1e-8,
}


def load_config(path: Optional[Union[str, Path]] = None) -> dict:
    """Read the report configuration (default: configs/params.yml)."""
    return read_yaml(path or CONFIG_DIR / "params.yml") or {}


@dataclass
class ReportArtifacts:
    """Everything one report run produced, inspectable without any rendering."""
    run_id: str
    raw_path: Path
    incidents: pd.DataFrame
    unknowns: pd.DataFrame
    tables: Dict[str, pd.DataFrame]
    model: MultinomialModel
    predictions: PredictionResult
    collapse: ClassCollapse
    missingness: pd.DataFrame
    bias_tables: Dict[str, pd.DataFrame]
    bias_spread: pd.DataFrame
    figures: Dict[str, Figure] = field(default_factory=dict)
    outputs: Dict[str, Path] = field(default_factory=dict)


# =============================================================================
# Stages
# =============================================================================

def build_summary_tables(
    df: pd.DataFrame,
    config: dict,
    logger=None,
) -> Dict[str, pd.DataFrame]:
    """
    Descriptive aggregation tables, QA-checked.

    Config keys (aggregations): fatality_rate_by, count_by, period_freq,
    night_share_by; nighttime: start_hour, end_hour.
    """
    agg_config = config.get("aggregations", {})
    start_hour, end_hour = get_nighttime_window(config)
    n_rows = len(df)

    tables = {}

    for name in agg_config.get("fatality_rate_by", ["victim_age", "victim_sex", "victim_race", "boro"]):
        table = rate_by(df, name, "victim_death")
        check_rates_within_bounds(table["rate"], context=f"fatality_rate_by_{name}")
        tables[f"fatality_rate_by_{name}"] = table

    for name in agg_config.get("count_by", ["boro", "perp_race", "victim_race"]):
        table = count_by(df, name, include_unknown=True)
        check_count_conservation(table["count"], n_rows, context=f"counts_by_{name}")
        tables[f"counts_by_{name}"] = table

    freq = agg_config.get("period_freq", "year")
    periods = count_by_period(df, freq=freq)
    check_count_conservation(periods["count"], int(df["occur_date"].notna().sum()), context="period counts")
    tables[f"incidents_by_{freq}"] = periods
    tables[f"incidents_by_{freq}_and_boro"] = count_by_period(df, freq=freq, by="boro")

    hours = count_by_hour(df)
    check_count_conservation(hours["count"], int(df["occur_datetime"].notna().sum()), context="hour counts")
    tables["incidents_by_hour"] = hours

    for name in agg_config.get("night_share_by", ["boro"]):
        table = night_share_by(df, name, start_hour=start_hour, end_hour=end_hour)
        check_rates_within_bounds(table["night_share"], context=f"night_share_by_{name}")
        tables[f"night_share_by_{name}"] = table

    if logger:
        logger.info(f"Built {len(tables)} summary tables")

    return tables


def fit_and_score(
    df: pd.DataFrame,
    config: dict,
    specs=None,
    logger=None,
):
    """
    Fit the configured multinomial model and score its full predictor grid.

    Returns:
        Tuple of (model, prediction result, collapse report, comparison tables)
    """
    model_config = {**DEFAULT_MODEL, **config.get("model", {})}
    model_fields = [f for f in [model_config["outcome"], *model_config["predictors"]] if f in df.columns]
    if logger:
        logger.log_metrics({"model_field_unknown_rates": compute_na_rates(df, model_fields)})

    model = fit_multinomial(
        df,
        outcome=model_config["outcome"],
        predictors=model_config["predictors"],
        maxiter=int(model_config["maxiter"]),
        tol=float(model_config["tol"]),
        specs=specs,
        logger=logger,
    )
    if logger:
        logger.log_model_diagnostics(fit_summary(model))

    predictions = score_grid(model)
    check_probabilities_sum_to_one(predictions.probabilities, context="grid probabilities")

    class_distribution = compare_class_distribution(predictions, df)
    collapse = detect_class_collapse(predictions, df)
    if collapse.collapsed and logger:
        logger.warning(
            f"Model predicts {len(collapse.predicted_classes)} of "
            f"{len(collapse.observed_classes)} observed {model.outcome} classes; "
            f"never predicted: {list(collapse.never_predicted)} "
            f"({collapse.never_predicted_share:.1%} of complete cases)",
            extra=collapse.to_dict(),
        )

    tables = {
        "model_coefficients": model.coefficients().reset_index().rename(columns={"index": "term"}),
        "model_grid_predictions": predictions.to_frame(),
        "model_class_distribution": class_distribution,
        "model_probability_comparison": compare_probabilities(predictions, df),
    }
    return model, predictions, collapse, tables


def audit_missingness(
    df: pd.DataFrame,
    config: dict,
    specs=None,
    logger=None,
):
    """
    Missingness summary plus one crosstab/rates/spread triple per configured audit.

    Config: bias.audits = [{missing: <field>, by: [<field>, ...]}, ...]

    Returns:
        Tuple of (missingness summary, bias tables, spread table)
    """
    audits = config.get("bias", {}).get("audits", [
        {"missing": "perp_age", "by": ["victim_race", "victim_age"]},
    ])

    summary = summarize_missingness(df, [f for f in FIELD_SPECS if f in df.columns])
    tables = {}
    spreads = []

    for audit in audits:
        missing = audit["missing"]
        by = audit["by"]
        by = [by] if isinstance(by, str) else list(by)
        name = f"missing_{missing}_by_{'_'.join(by)}"

        table = missing_crosstab(df, missing, by, specs=specs)
        rates = missingness_rates(df, missing, by)
        check_rates_within_bounds(rates["missing_rate"], context=name)

        tables[name] = table
        tables[f"{name}_rates"] = rates
        spreads.append({"audit": name, "missing": missing, "by": ",".join(by), **cell_spread(table)})

        if logger:
            logger.info(f"Audit {name}: {int(table.to_numpy().sum()):,} unknown rows over {table.size} cells")

    spread = pd.DataFrame(spreads)
    return summary, tables, spread


def build_figures(
    tables: Dict[str, pd.DataFrame],
    bias_tables: Dict[str, pd.DataFrame],
    config: dict,
) -> Dict[str, Figure]:
    """Figure objects for the report, keyed by output name."""
    figures = {}

    for name, table in tables.items():
        if name.startswith("fatality_rate_by_"):
            by = name[len("fatality_rate_by_"):]
            figures[name] = plot_rate_bars(table, by, title=f"Fatality rate by {by}")
        elif name.startswith("night_share_by_"):
            by = name[len("night_share_by_"):]
            figures[name] = plot_rate_bars(table, by, rate_column="night_share",
                                           title=f"Share of incidents at night by {by}")

    freq = config.get("aggregations", {}).get("period_freq", "year")
    figures[f"incidents_by_{freq}"] = plot_period_counts(tables[f"incidents_by_{freq}"])
    figures[f"incidents_by_{freq}_and_boro"] = plot_period_counts(
        tables[f"incidents_by_{freq}_and_boro"], group="boro"
    )
    figures["incidents_by_hour"] = plot_hour_profile(tables["incidents_by_hour"])

    figures["model_class_distribution"] = plot_class_distribution(tables["model_class_distribution"])
    figures["model_predicted_vs_observed"] = plot_predicted_vs_observed(
        tables["model_probability_comparison"]
    )

    for name, table in bias_tables.items():
        if name.endswith("_rates") or table.shape[1] < 2:
            continue
        figures[name] = plot_count_heatmap(table, title=name.replace("_", " "))

    return figures


# =============================================================================
# Report
# =============================================================================

def write_outputs(
    artifacts: ReportArtifacts,
    config: dict,
    reports_dir: Path,
    processed_dir: Path,
    logger=None,
) -> Dict[str, Path]:
    """Write tables, figures, the normalized table and its metadata sidecar."""
    tables_dir = reports_dir / "tables"
    figures_dir = reports_dir / "figures"
    outputs = {}

    for name, table in artifacts.tables.items():
        path = tables_dir / f"{name}.csv"
        atomic_write_df(table, path, index=False)
        outputs[name] = path

    for name, table in artifacts.bias_tables.items():
        path = tables_dir / f"{name}.csv"
        # Crosstabs carry their categories in the index
        atomic_write_df(table, path, index=not name.endswith("_rates"))
        outputs[name] = path

    for name, table in [("unknown_breakdown", artifacts.unknowns),
                        ("missingness_summary", artifacts.missingness),
                        ("missingness_spread", artifacts.bias_spread)]:
        path = tables_dir / f"{name}.csv"
        atomic_write_df(table, path, index=False)
        outputs[name] = path

    for name, fig in artifacts.figures.items():
        outputs[f"figure_{name}"] = save_figure(fig, figures_dir / f"{name}.png")

    diagnostics_path = reports_dir / "model_diagnostics.json"
    atomic_write_json(
        {"model": fit_summary(artifacts.model), "collapse": artifacts.collapse.to_dict()},
        diagnostics_path,
    )
    outputs["model_diagnostics"] = diagnostics_path

    config_path = reports_dir / "run_config.yml"
    atomic_write_yaml(config, config_path)
    outputs["run_config"] = config_path

    normalized_path = processed_dir / NORMALIZED_FILENAME
    atomic_write_df(artifacts.incidents, normalized_path, index=False)
    outputs["incidents_normalized"] = normalized_path

    outputs["metadata"] = write_metadata_sidecar(
        output_path=normalized_path,
        inputs={"raw_csv": str(artifacts.raw_path)},
        config=config,
        run_id=artifacts.run_id,
        extra={
            "row_count": len(artifacts.incidents),
            "model": fit_summary(artifacts.model),
            "collapse": artifacts.collapse.to_dict(),
        },
        metadata_dir=processed_dir / "metadata",
    )

    if logger:
        logger.log_outputs({k: str(v) for k, v in outputs.items()})
        logger.info(f"Wrote {len(outputs)} outputs under {reports_dir} and {processed_dir}")

    return outputs


def run_report(
    config: Optional[dict] = None,
    source_path: Optional[Union[str, Path]] = None,
    reports_dir: Optional[Union[str, Path]] = None,
    processed_dir: Optional[Union[str, Path]] = None,
    write: bool = True,
    refresh: bool = False,
    logger=None,
) -> ReportArtifacts:
    """
    Run the full report.

    Args:
        config: Parsed params.yml (default: load_config())
        source_path: Local incident CSV (default: data/raw/<source.filename>,
                     fetched if absent)
        reports_dir: Root for tables/figures (default: REPORTS_DIR)
        processed_dir: Root for the normalized table (default: PROCESSED_DIR)
        write: Write exports to disk
        refresh: Re-download the source CSV
        logger: Optional JSONLLogger

    Returns:
        ReportArtifacts

    Raises:
        LoadError, SchemaError, ModelFitError, QAError: Any stage failure
    """
    config = config if config is not None else load_config()
    run_id = logger.run_id if logger else generate_run_id()

    if logger:
        logger.log_config(config, config_digest=hash_dict(config))

    # 1. Load
    source = config.get("source", {})
    if source_path is None:
        source_path = RAW_DIR / source.get("filename", DEFAULT_FILENAME)
    raw, raw_path = load_incidents(
        path=source_path,
        url=source.get("url", SOURCE_URL),
        refresh=refresh,
        timeout=source.get("timeout_seconds", DEFAULT_TIMEOUT),
        logger=logger,
    )
    if logger:
        logger.log_inputs({"raw_csv": str(raw_path)})

    # 2. Normalize
    specs = with_extra_sentinels(config.get("normalize", {}).get("extra_sentinels"))
    incidents = normalize_incidents(raw, specs=specs)
    unknowns = unknown_breakdown(raw, specs=specs)
    if logger:
        logger.log_metrics({
            "raw_rows": len(raw),
            "normalized_rows": len(incidents),
            "unknown_rates": dict(zip(unknowns["field"], unknowns["unknown_rate"].round(4))),
        })

    # 3. Aggregate
    tables = build_summary_tables(incidents, config, logger=logger)

    # 4-5. Model and grid predictions
    model, predictions, collapse, model_tables = fit_and_score(incidents, config, specs=specs, logger=logger)
    tables.update(model_tables)

    # 6. Missingness audit
    missingness, bias_tables, bias_spread = audit_missingness(incidents, config, specs=specs, logger=logger)

    artifacts = ReportArtifacts(
        run_id=run_id,
        raw_path=Path(raw_path),
        incidents=incidents,
        unknowns=unknowns,
        tables=tables,
        model=model,
        predictions=predictions,
        collapse=collapse,
        missingness=missingness,
        bias_tables=bias_tables,
        bias_spread=bias_spread,
    )
    artifacts.figures = build_figures(tables, bias_tables, config)

    if write:
        artifacts.outputs = write_outputs(
            artifacts,
            config,
            reports_dir=Path(reports_dir) if reports_dir is not None else REPORTS_DIR,
            processed_dir=Path(processed_dir) if processed_dir is not None else PROCESSED_DIR,
            logger=logger,
        )

    return artifacts


def report_metrics(artifacts: ReportArtifacts) -> Dict[str, Any]:
    """Headline numbers for the run log."""
    diagnostics = artifacts.model.diagnostics
    first_year, last_year = get_year_range(artifacts.incidents, "occur_date")
    return {
        "incidents": len(artifacts.incidents),
        "years": f"{first_year}-{last_year}",
        "fatality_rate": float(artifacts.incidents["victim_death"].mean()),
        "model_train_rows": diagnostics.n_train,
        "model_dropped_rows": diagnostics.n_dropped,
        "model_converged": diagnostics.converged,
        "model_pseudo_r2": diagnostics.pseudo_r2,
        "class_collapse": artifacts.collapse.collapsed,
        "never_predicted": list(artifacts.collapse.never_predicted),
    }
