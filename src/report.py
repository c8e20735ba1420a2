"""
report.py
End-to-end NYPD shooting incident report: load → clean → charts → model.

Usage:
    python src/report.py --input data/raw/NYPD_Shooting_Incident_Data__Historic_.csv
    nypd-shooting-report --threshold 0.5 --fill-gaps
"""

import argparse
import logging
import os
import sys
from pathlib import Path

from config import REQUIRED_COLUMNS, AnalysisConfig
from data_cleaning import AuditTrail, clean_incidents
from data_collection import load_incidents
from eda import run_eda
from modeling import (
    evaluate_model,
    fit_murder_model,
    model_skip_reason,
    split_train_test,
    summarize_model,
)

log = logging.getLogger(__name__)


def setup_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(message)s",
        datefmt="%H:%M:%S",
        force=True,
    )
    logging.getLogger("matplotlib").setLevel(logging.WARNING)


def run_report(config: AnalysisConfig = None) -> dict:
    """
    Run every stage once, in order. Returns the cleaned table, figure paths,
    frequency tables, model metrics and the paths of the written artefacts.
    """
    config = config or AnalysisConfig()
    output_dir = Path(config.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    raw = load_incidents(config.input_file, REQUIRED_COLUMNS)
    audit = AuditTrail(total_rows=len(raw))
    df = clean_incidents(raw, config, audit=audit)

    audit_path = output_dir / "cleaning_audit.json"
    audit.save(audit_path)
    audit.summary()

    eda = run_eda(df, config)

    summary_path = output_dir / "model_summary.txt"
    fitted, metrics = None, {}
    skip_reason = model_skip_reason(df, config.target_column, config.min_model_rows)
    if skip_reason:
        log.warning(f"Model not fitted: {skip_reason}")
        summary_path.write_text(f"Model not fitted: {skip_reason}\n")
    else:
        train, test = split_train_test(df, config.target_column,
                                       test_size=config.test_size, seed=config.random_seed)
        fitted = fit_murder_model(train, config)
        metrics = evaluate_model(fitted, test)
        summary_path.write_text(summarize_model(fitted, metrics))
    log.info(f"Model summary saved → {summary_path}")

    return {
        "data": df,
        "figures": eda["figures"],
        "tables": eda["tables"],
        "model": fitted,
        "metrics": metrics,
        "audit_path": audit_path,
        "summary_path": summary_path,
    }


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="NYPD shooting incident EDA report")
    parser.add_argument("--input", dest="input_file", help="Path to the raw incident CSV")
    parser.add_argument("--output-dir", help="Directory for charts and model summary")
    parser.add_argument("--threshold", dest="missing_threshold", type=float,
                        help="Drop columns with more than this fraction missing")
    parser.add_argument("--seed", dest="random_seed", type=int, help="Random seed for the split")
    parser.add_argument("--fill-gaps", dest="fill_month_gaps", action="store_true", default=None,
                        help="Show months without incidents as zero")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING, ...")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level or os.getenv("LOG_LEVEL", "INFO"))

    try:
        config = AnalysisConfig.from_env().with_overrides(**vars(args))
        results = run_report(config)
    except Exception as e:
        log.error(f"Report failed: {e}", exc_info=True)
        return 1

    accuracy = results["metrics"].get("accuracy")
    outcome = f"accuracy {accuracy:.3f}" if accuracy is not None else "no model"
    log.info(f"Report complete, outputs in {config.output_dir}/ ({outcome})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
