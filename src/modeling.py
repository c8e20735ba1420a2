"""
modeling.py
Logistic regression: which incident attributes go with a shooting being
classified as a murder?

One stratified 80/20 split, one binomial GLM fit by IRLS, one evaluation on
the held-out rows. No tuning.
"""

import logging
from dataclasses import dataclass, field

import numpy as np
import pandas as pd
import statsmodels.api as sm
import statsmodels.formula.api as smf
from sklearn.metrics import accuracy_score, roc_auc_score
from sklearn.model_selection import train_test_split

from config import AnalysisConfig

log = logging.getLogger(__name__)


@dataclass
class FittedModel:
    result: object
    formula: str
    target: str
    levels: dict = field(default_factory=dict)
    temporal: tuple = ()


# ── Split ─────────────────────────────────────────────────────────────────────

def model_skip_reason(df: pd.DataFrame, target: str, min_rows: int = 30):
    """Why the table cannot support a fit, or None when it can."""
    class_counts = df[target].value_counts()
    if len(df) < min_rows:
        return f"only {len(df)} rows, at least {min_rows} needed"
    if len(class_counts) < 2:
        return f"{target} has a single class {class_counts.to_dict()}"
    if class_counts.min() < 2:
        return f"{target} has a class with fewer than two rows {class_counts.to_dict()}"
    return None


def split_train_test(df: pd.DataFrame, target: str, test_size: float = 0.2,
                     seed: int = 42):
    """
    Stratified split on ``target``. The same input and seed always give the
    same partitions. The test partition is rounded up and holds at least one
    row per class, so small tables still split.
    """
    class_counts = df[target].value_counts()
    if len(class_counts) < 2:
        raise ValueError(f"{target} needs at least two classes to stratify, got {class_counts.to_dict()}")
    if class_counts.min() < 2:
        raise ValueError(f"Every {target} class needs two rows to stratify, got {class_counts.to_dict()}")

    n_classes = len(class_counts)
    n_test = max(int(np.ceil(test_size * len(df))), n_classes)
    if len(df) - n_test < n_classes:
        raise ValueError(f"{len(df)} rows are too few for a stratified split on {n_classes} classes")

    train, test = train_test_split(
        df,
        test_size=n_test,
        random_state=seed,
        stratify=df[target],
    )
    log.info(f"Split: train {len(train):,} rows ({len(train)/len(df)*100:.1f}%), "
             f"test {len(test):,} rows ({len(test)/len(df)*100:.1f}%)")
    return train, test


# ── Model frame ───────────────────────────────────────────────────────────────

def _model_frame(df: pd.DataFrame, target: str, categorical, temporal) -> pd.DataFrame:
    categorical = [c for c in categorical if c in df.columns]
    temporal = [c for c in temporal if c in df.columns]

    frame = df[categorical + temporal + [target]].dropna(subset=temporal).copy()
    frame[target] = frame[target].astype(int)
    for col in temporal:
        frame[col] = frame[col].astype(float)
    for col in categorical:
        if not isinstance(frame[col].dtype, pd.CategoricalDtype):
            frame[col] = frame[col].astype("category")
    return frame


def build_formula(target: str, categorical, temporal=()) -> str:
    terms = [f"C({c})" for c in categorical] + list(temporal)
    return f"{target} ~ " + (" + ".join(terms) if terms else "1")


# ── Fit ───────────────────────────────────────────────────────────────────────

def fit_murder_model(train: pd.DataFrame, config: AnalysisConfig = None) -> FittedModel:
    """
    Binomial GLM of the murder flag on the categorical and temporal predictors.
    Categorical predictors with a single observed level carry no information
    and are left out of the formula.
    """
    config = config or AnalysisConfig()
    frame = _model_frame(train, config.target_column, config.categorical_columns,
                         config.temporal_predictors)

    categorical, levels = [], {}
    for col in config.categorical_columns:
        if col not in frame.columns:
            continue
        frame[col] = frame[col].cat.remove_unused_categories()
        if len(frame[col].cat.categories) < 2:
            log.warning(f"{col} has a single level in the training data, excluded from model")
            continue
        categorical.append(col)
        levels[col] = list(frame[col].cat.categories)

    temporal = tuple(c for c in config.temporal_predictors if c in frame.columns)
    formula = build_formula(config.target_column, categorical, temporal)
    log.info(f"Fitting binomial GLM on {len(frame):,} rows: {formula}")

    result = smf.glm(formula, data=frame, family=sm.families.Binomial()).fit()
    log.info(f"Converged: {result.converged}, AIC: {result.aic:.1f}")

    return FittedModel(result=result, formula=formula, target=config.target_column,
                       levels=levels, temporal=temporal)


# ── Evaluate ──────────────────────────────────────────────────────────────────

def evaluate_model(fitted: FittedModel, test: pd.DataFrame, threshold: float = 0.5) -> dict:
    """
    Score the held-out rows. Rows whose category levels never appeared in
    training cannot be scored and are counted in ``n_dropped``.
    """
    frame = _model_frame(test, fitted.target, list(fitted.levels), fitted.temporal)
    n_missing_time = len(test) - len(frame)

    keep = pd.Series(True, index=frame.index)
    for col, levels in fitted.levels.items():
        keep &= frame[col].astype(object).isin(levels)
    frame = frame[keep].copy()
    for col, levels in fitted.levels.items():
        frame[col] = pd.Categorical(frame[col].astype(object), categories=levels)

    metrics = {
        "n_test": int(len(frame)),
        "n_dropped": int(n_missing_time + (~keep).sum()),
        "accuracy": np.nan,
        "roc_auc": np.nan,
    }
    if frame.empty:
        log.warning("No scorable test rows, evaluation skipped")
        return metrics

    prob = fitted.result.predict(frame)
    pred = (prob >= threshold).astype(int)
    y_true = frame[fitted.target]

    metrics["accuracy"] = float(accuracy_score(y_true, pred))
    if y_true.nunique() == 2:
        metrics["roc_auc"] = float(roc_auc_score(y_true, prob))

    log.info(f"Test accuracy: {metrics['accuracy']:.3f}, ROC AUC: {metrics['roc_auc']:.3f} "
             f"({metrics['n_test']:,} rows scored, {metrics['n_dropped']:,} dropped)")
    return metrics


# ── Summaries ─────────────────────────────────────────────────────────────────

def coefficient_table(fitted: FittedModel) -> pd.DataFrame:
    res = fitted.result
    table = pd.DataFrame({
        "coef": res.params,
        "std_err": res.bse,
        "z": res.tvalues,
        "p_value": res.pvalues,
        "odds_ratio": np.exp(res.params),
    })
    table["significant"] = table["p_value"] < 0.05
    return table


def summarize_model(fitted: FittedModel, metrics: dict = None) -> str:
    lines = [fitted.result.summary().as_text(), "", "Odds ratios:",
             coefficient_table(fitted).round(4).to_string()]
    if metrics:
        lines += ["", "Held-out evaluation:"]
        lines += [f"  {k}: {v}" for k, v in metrics.items()]
    return "\n".join(lines)
