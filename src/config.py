"""
config.py
Analysis settings for the NYPD shooting incident report.

Named constants describe the source dataset; AnalysisConfig bundles them so
each pipeline stage receives its settings explicitly.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path


# ── Paths ─────────────────────────────────────────────────────────────────────

DEFAULT_INPUT_FILE = "data/raw/NYPD_Shooting_Incident_Data__Historic_.csv"
DEFAULT_OUTPUT_DIR = "data/processed/report"


# ── Source schema ─────────────────────────────────────────────────────────────

DATE_COLUMN   = "OCCUR_DATE"
TIME_COLUMN   = "OCCUR_TIME"
HOUR_COLUMN   = "OCCUR_HOUR"
TARGET_COLUMN = "STATISTICAL_MURDER_FLAG"

# Identifiers and geo-coordinates carry no analytical value for this report
DROP_COLUMNS = (
    "INCIDENT_KEY", "LOC_OF_OCCUR_DESC", "PRECINCT", "JURISDICTION_CODE",
    "LOC_CLASSFCTN_DESC", "X_COORD_CD", "Y_COORD_CD",
    "Latitude", "Longitude", "Lon_Lat",
)

RENAME_COLUMNS = {"BORO": "BOROUGH"}

CATEGORICAL_COLUMNS = (
    "BOROUGH",
    "PERP_AGE_GROUP", "PERP_SEX", "PERP_RACE",
    "VIC_AGE_GROUP", "VIC_SEX", "VIC_RACE",
)

# Free-text attributes kept for description only, never model predictors
DESCRIPTIVE_COLUMNS = ("LOCATION_DESC",)

REQUIRED_COLUMNS = (DATE_COLUMN, TIME_COLUMN, "BORO", TARGET_COLUMN, "VIC_AGE_GROUP")


# ── Cleaning policy ───────────────────────────────────────────────────────────

# Columns with more than this fraction of NaN entries are dropped
MISSING_THRESHOLD = 0.75

UNKNOWN_LABEL = "Unknown"

# Compared after stripping and lower-casing; any casing of "unknown" also matches
NULL_TOKENS = ("", "(null)", "null", "unknown")

AGE_GROUPS = ("<18", "18-24", "25-44", "45-64", "65+", UNKNOWN_LABEL)

CATEGORY_VOCABULARIES = {
    "PERP_AGE_GROUP": AGE_GROUPS,
    "VIC_AGE_GROUP":  AGE_GROUPS,
}


# ── Modelling ─────────────────────────────────────────────────────────────────

TEST_SIZE   = 0.2
RANDOM_SEED = 42

# Smaller tables get charts only; a GLM on a handful of rows is meaningless
MIN_MODEL_ROWS = 30

TEMPORAL_PREDICTORS = (HOUR_COLUMN,)


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_number(name: str, cast):
    value = os.getenv(name)
    if value is None:
        return None
    try:
        return cast(value)
    except ValueError:
        raise ValueError(f"{name}={value!r} is not a valid {cast.__name__}") from None


@dataclass(frozen=True)
class AnalysisConfig:
    """Every tunable of the report in one immutable object."""

    input_file: str = DEFAULT_INPUT_FILE
    output_dir: str = DEFAULT_OUTPUT_DIR

    drop_columns: tuple = DROP_COLUMNS
    keep_columns: tuple = ()
    missing_threshold: float = MISSING_THRESHOLD
    rename_columns: dict = field(default_factory=lambda: dict(RENAME_COLUMNS))

    categorical_columns: tuple = CATEGORICAL_COLUMNS
    descriptive_columns: tuple = DESCRIPTIVE_COLUMNS
    null_tokens: tuple = NULL_TOKENS
    unknown_label: str = UNKNOWN_LABEL
    vocabularies: dict = field(default_factory=lambda: dict(CATEGORY_VOCABULARIES))

    date_column: str = DATE_COLUMN
    time_column: str = TIME_COLUMN
    hour_column: str = HOUR_COLUMN
    target_column: str = TARGET_COLUMN
    temporal_predictors: tuple = TEMPORAL_PREDICTORS

    test_size: float = TEST_SIZE
    random_seed: int = RANDOM_SEED
    min_model_rows: int = MIN_MODEL_ROWS
    fill_month_gaps: bool = False

    log_level: str = "INFO"

    @property
    def figure_dir(self) -> Path:
        return Path(self.output_dir) / "plots"

    @property
    def predictors(self) -> tuple:
        return tuple(self.categorical_columns) + tuple(self.temporal_predictors)

    def with_overrides(self, **overrides) -> "AnalysisConfig":
        """Copy of this config with the given fields replaced (None values ignored)."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    @classmethod
    def from_env(cls) -> "AnalysisConfig":
        """Defaults, overridden by SHOOTING_* environment variables when set."""
        base = cls()
        return base.with_overrides(
            input_file=os.getenv("SHOOTING_INPUT_FILE"),
            output_dir=os.getenv("SHOOTING_OUTPUT_DIR"),
            missing_threshold=_env_number("SHOOTING_MISSING_THRESHOLD", float),
            random_seed=_env_number("SHOOTING_RANDOM_SEED", int),
            fill_month_gaps=_env_flag("SHOOTING_FILL_MONTH_GAPS", base.fill_month_gaps),
            log_level=os.getenv("LOG_LEVEL"),
        )
