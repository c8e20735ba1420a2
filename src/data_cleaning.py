"""
data_cleaning.py
Cleaning Pipeline for NYPD Shooting Incident Data

Design principles:
- Every transformation is logged with before/after counts
- Functions are pure (DataFrame in → new DataFrame out), no global state
- Missing demographics are kept as an explicit "Unknown" category, never dropped
- Normalization always precedes the categorical cast
"""

import json
import logging

import numpy as np
import pandas as pd

from config import AnalysisConfig

log = logging.getLogger(__name__)


FLAG_VALUES = {
    "true": True, "t": True, "1": True, "1.0": True, "y": True, "yes": True,
    "false": False, "f": False, "0": False, "0.0": False, "n": False, "no": False,
}


class CategoricalCastError(TypeError):
    """A column still holds missing or sentinel values when cast to categorical."""


# ── Audit Trail ───────────────────────────────────────────────────────────────

class AuditTrail:
    """Tracks every cleaning decision with affected counts."""

    def __init__(self, total_rows: int):
        self.total_rows = total_rows
        self.steps: list[dict] = []

    def record(self, step: str, description: str, changed: int, detail: str = ""):
        changed = int(changed)
        pct = changed / self.total_rows * 100 if self.total_rows else 0.0
        self.steps.append({
            "step": step,
            "description": description,
            "rows_affected": changed,
            "pct_affected": round(pct, 2),
            "detail": detail,
        })
        log.info(f"[{step}] {description} → {changed:,} affected ({pct:.1f}%) {detail}")

    def save(self, path):
        class _NumpyEncoder(json.JSONEncoder):
            """Convert numpy int/float types to native Python before serialising."""
            def default(self, obj):
                if isinstance(obj, np.integer):
                    return int(obj)
                if isinstance(obj, np.floating):
                    return float(obj)
                if isinstance(obj, np.ndarray):
                    return obj.tolist()
                return super().default(obj)

        with open(path, "w") as f:
            json.dump({"total_rows": self.total_rows, "steps": self.steps}, f,
                      indent=2, cls=_NumpyEncoder)
        log.info(f"Audit trail saved → {path}")

    def summary(self):
        print("\n" + "=" * 65)
        print("CLEANING AUDIT SUMMARY")
        print("=" * 65)
        print(f"{'Step':<22} {'Affected':>10} {'%':>7}  Description")
        print("-" * 65)
        for s in self.steps:
            print(f"{s['step']:<22} {s['rows_affected']:>10,} {s['pct_affected']:>6.1f}%  {s['description']}")
        print("=" * 65)


def _record(audit, *args, **kwargs):
    if audit is not None:
        audit.record(*args, **kwargs)


def _sentinel_mask(text: pd.Series, null_tokens, unknown_label: str) -> pd.Series:
    """True where a stripped string value is missing or a null/unknown token."""
    tokens = {t.strip().lower() for t in null_tokens} | {unknown_label.lower()}
    lowered = text.str.strip().str.lower()
    return (text.isna() | lowered.isin(tokens)).fillna(True).astype(bool)


# ── Step 1: Column Pruning ────────────────────────────────────────────────────

def prune_columns(df: pd.DataFrame, drop_columns, missing_threshold: float,
                  keep_columns=(), audit: AuditTrail = None) -> pd.DataFrame:
    """
    Drop the explicitly named columns, then any remaining column whose NaN
    count is strictly greater than ``missing_threshold * len(df)``.

    Names that are not present are skipped. Columns in ``keep_columns`` are
    never dropped for sparsity.
    """
    if not 0.0 <= missing_threshold <= 1.0:
        raise ValueError(f"missing_threshold must be within [0, 1], got {missing_threshold}")

    present = [c for c in drop_columns if c in df.columns]
    absent = [c for c in drop_columns if c not in df.columns]
    if absent:
        log.debug(f"Drop list columns not in dataset (skipped): {absent}")
    df = df.drop(columns=present)
    _record(audit, "Explicit column drop", "Named low-value columns removed", len(present),
            f"({present})")

    limit = missing_threshold * len(df)
    keep = set(keep_columns)
    sparse = [
        c for c in df.columns
        if c not in keep and df[c].isna().sum() > limit
    ]
    df = df.drop(columns=sparse)
    _record(audit, "Sparse column drop", f"Columns >{missing_threshold:.0%} missing removed",
            len(sparse), f"({sparse})")
    return df


# ── Step 2: Renaming ──────────────────────────────────────────────────────────

def rename_columns(df: pd.DataFrame, mapping: dict) -> pd.DataFrame:
    applicable = {src: dst for src, dst in mapping.items() if src in df.columns}
    return df.rename(columns=applicable)


# ── Step 3: Dates & Times ─────────────────────────────────────────────────────

def parse_occurrence_times(df: pd.DataFrame, date_column: str = "OCCUR_DATE",
                           time_column: str = "OCCUR_TIME", hour_column: str = "OCCUR_HOUR",
                           audit: AuditTrail = None) -> pd.DataFrame:
    """
    OCCUR_DATE is published as MM/DD/YYYY; other layouts fall back to pandas
    inference. OCCUR_TIME (HH:MM:SS) yields an integer hour column.
    """
    df = df.copy()

    if date_column in df.columns:
        raw = df[date_column]
        before_nulls = raw.isna().sum()
        dates = pd.to_datetime(raw, format="%m/%d/%Y", errors="coerce")
        retry = dates.isna() & raw.notna()
        if retry.any():
            dates[retry] = pd.to_datetime(raw[retry], format="mixed", errors="coerce")
        df[date_column] = dates
        _record(audit, f"Date parse: {date_column}", "Unparseable values → NaT",
                dates.isna().sum() - before_nulls)

    if time_column in df.columns:
        text = df[time_column].astype(str).str.strip()
        times = pd.to_datetime(text, format="%H:%M:%S", errors="coerce")
        retry = times.isna()
        if retry.any():
            times[retry] = pd.to_datetime(text[retry], format="%H:%M", errors="coerce")
        df[hour_column] = times.dt.hour.astype("Int64")
        _record(audit, "Hour extracted", f"{time_column} → {hour_column}, unparseable left missing",
                df[hour_column].isna().sum())

    return df


# ── Step 4: Murder Flag ───────────────────────────────────────────────────────

def coerce_murder_flag(df: pd.DataFrame, column: str = "STATISTICAL_MURDER_FLAG") -> pd.DataFrame:
    df = df.copy()
    if column not in df.columns:
        log.warning(f"'{column}' column not found, skipping flag coercion")
        return df
    if df[column].dtype == bool:
        return df

    mapped = df[column].astype("string").str.strip().str.lower().map(FLAG_VALUES)
    invalid = mapped.isna()
    if invalid.any():
        bad = sorted(df.loc[invalid, column].astype(str).unique())[:10]
        raise ValueError(f"Unrecognised values in {column}: {bad}")
    df[column] = mapped.astype(bool)
    return df


# ── Step 5: Unknown Normalization ─────────────────────────────────────────────

def normalize_unknowns(df: pd.DataFrame, columns, null_tokens, unknown_label: str = "Unknown",
                       vocabularies: dict = None, audit: AuditTrail = None) -> pd.DataFrame:
    """
    Replace missing values, empty strings, null tokens such as "(null)" and any
    casing of "unknown" with ``unknown_label``. Values outside a declared
    vocabulary (e.g. age group "1020") are treated as unknown as well.
    """
    df = df.copy()
    vocabularies = vocabularies or {}

    for col in columns:
        if col not in df.columns:
            log.debug(f"'{col}' not in dataset, skipping normalization")
            continue

        text = df[col].astype("string").str.strip()
        to_unknown = _sentinel_mask(text, null_tokens, unknown_label)

        vocab = vocabularies.get(col)
        if vocab:
            out_of_vocab = ~text.isin(vocab).fillna(False).astype(bool) & ~to_unknown
            if out_of_vocab.any():
                log.warning(f"{col}: {int(out_of_vocab.sum())} values outside vocabulary "
                            f"→ {unknown_label} {sorted(text[out_of_vocab].unique())[:10]}")
            to_unknown = to_unknown | out_of_vocab

        changed = (to_unknown & (text != unknown_label).fillna(True).astype(bool)).sum()
        df[col] = text.mask(to_unknown, unknown_label).astype(object)
        _record(audit, f"Unknowns: {col}", f"Missing/sentinel values → '{unknown_label}'", changed)

    return df


# ── Step 6: Categorical Declaration ───────────────────────────────────────────

def declare_categoricals(df: pd.DataFrame, columns, null_tokens, unknown_label: str = "Unknown",
                         vocabularies: dict = None) -> pd.DataFrame:
    """
    Cast columns to a fixed categorical domain. Declared vocabularies are used
    as ordered categories; otherwise the observed values are sorted and the
    unknown label appended last.
    """
    df = df.copy()
    vocabularies = vocabularies or {}

    for col in columns:
        if col not in df.columns:
            continue

        values = df[col].astype(object)
        text = values.astype("string")
        leftovers = _sentinel_mask(text, null_tokens, unknown_label) & (values != unknown_label)
        if leftovers.any():
            sample = sorted({repr(v) for v in values[leftovers]})[:5]
            raise CategoricalCastError(
                f"{col} still holds missing/sentinel values {sample}; "
                f"run normalize_unknowns before declare_categoricals"
            )

        vocab = vocabularies.get(col)
        if vocab:
            unexpected = set(values) - set(vocab)
            if unexpected:
                raise CategoricalCastError(f"{col} has values outside its vocabulary: {sorted(unexpected)}")
            dtype = pd.CategoricalDtype(categories=list(vocab), ordered=True)
        else:
            observed = sorted({v for v in values if v != unknown_label}, key=str)
            dtype = pd.CategoricalDtype(categories=observed + [unknown_label])

        df[col] = values.astype(dtype)

    return df


def retained_text_columns(df: pd.DataFrame, config: AnalysisConfig) -> list:
    """
    Model predictors first, then every other text attribute still in the table
    (e.g. LOCATION_DESC when it survives pruning). OCCUR_TIME is parsed, not
    labelled.
    """
    columns = [c for c in config.categorical_columns if c in df.columns]
    for col in list(config.descriptive_columns) + list(df.columns):
        if col in columns or col not in df.columns or col == config.time_column:
            continue
        dtype = df[col].dtype
        if dtype == object or pd.api.types.is_string_dtype(dtype) \
                or isinstance(dtype, pd.CategoricalDtype):
            columns.append(col)
    return columns


# ── Pipeline Orchestrator ─────────────────────────────────────────────────────

def clean_incidents(df: pd.DataFrame, config: AnalysisConfig = None,
                    audit: AuditTrail = None) -> pd.DataFrame:
    """
    Prune, rename, parse, normalize and type the raw incident table.

    Parameters
    ----------
    df     : raw table as returned by ``load_incidents``
    config : analysis settings (defaults when omitted)
    audit  : optional trail that records every step

    Returns
    -------
    New cleaned DataFrame; ``df`` is left untouched.
    """
    config = config or AnalysisConfig()

    log.info("=" * 60)
    log.info("NYPD SHOOTING DATA: CLEANING PIPELINE START")
    log.info("=" * 60)

    df = prune_columns(df, config.drop_columns, config.missing_threshold,
                       keep_columns=config.keep_columns, audit=audit)
    df = rename_columns(df, config.rename_columns)
    df = parse_occurrence_times(df, config.date_column, config.time_column,
                                config.hour_column, audit=audit)
    df = coerce_murder_flag(df, config.target_column)

    # Every retained text attribute gets the Unknown label, not only the predictors
    text_columns = retained_text_columns(df, config)

    # Order matters: the cast below rejects anything normalization missed
    df = normalize_unknowns(df, text_columns, config.null_tokens,
                            config.unknown_label, config.vocabularies, audit=audit)
    df = declare_categoricals(df, text_columns, config.null_tokens,
                              config.unknown_label, config.vocabularies)

    log.info(f"Final shape: {df.shape[0]:,} rows × {df.shape[1]} columns")
    return df
