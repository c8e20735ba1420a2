"""
data_collection.py
Loads the raw NYPD shooting incident CSV into a DataFrame.
"""

import csv
import logging
from pathlib import Path

import pandas as pd

log = logging.getLogger(__name__)


class ParseError(ValueError):
    """The source file is missing, unreadable, or not a well-formed table."""


def _check_field_counts(path: Path):
    """
    pandas silently pads short rows with NaN, so ragged files are caught here
    with a plain csv scan before the real parse.
    """
    with open(path, newline="", encoding="utf-8") as f:
        reader = csv.reader(f)
        header = next(reader, None)
        if not header:
            raise ParseError(f"No header row in {path}")
        expected = len(header)
        for row in reader:
            if not row:
                continue
            if len(row) != expected:
                raise ParseError(
                    f"{path}: line {reader.line_num} has {len(row)} fields, "
                    f"expected {expected}"
                )


def load_incidents(filepath, required_columns=None) -> pd.DataFrame:
    path = Path(filepath)
    if not path.is_file():
        raise ParseError(f"Data file not found: {filepath}")

    log.info(f"Loading: {filepath}")
    try:
        _check_field_counts(path)
        df = pd.read_csv(path, low_memory=False)
    except ParseError:
        raise
    except (pd.errors.ParserError, pd.errors.EmptyDataError,
            UnicodeDecodeError, csv.Error) as e:
        raise ParseError(f"Could not parse {filepath}: {e}") from e

    log.info(f"Loaded {len(df):,} rows × {len(df.columns)} columns")

    if required_columns:
        missing_cols = set(required_columns) - set(df.columns)
        if missing_cols:
            raise ParseError(f"Dataset is missing expected columns: {sorted(missing_cols)}")

    return df


if __name__ == "__main__":
    from config import DEFAULT_INPUT_FILE, REQUIRED_COLUMNS

    logging.basicConfig(level=logging.INFO)
    df = load_incidents(DEFAULT_INPUT_FILE, REQUIRED_COLUMNS)
    print(f"Columns: {list(df.columns)}")
    print(df.head())
