import json
import os
import sys
import tempfile
import unittest

import numpy as np
import pandas as pd

# Add src to Python path
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "src"))

from config import AGE_GROUPS, CATEGORICAL_COLUMNS, NULL_TOKENS, AnalysisConfig
from data_cleaning import (
    AuditTrail,
    CategoricalCastError,
    clean_incidents,
    coerce_murder_flag,
    declare_categoricals,
    normalize_unknowns,
    parse_occurrence_times,
    prune_columns,
    rename_columns,
    retained_text_columns,
)
from sample_data import make_raw_incidents


class TestPruneColumns(unittest.TestCase):

    def test_drops_named_columns_and_skips_absent(self):
        df = pd.DataFrame({"A": [1, 2], "B": [3, 4], "C": [5, 6]})
        out = prune_columns(df, ["A", "NOT_THERE"], missing_threshold=0.75)
        self.assertEqual(list(out.columns), ["B", "C"])
        self.assertEqual(list(df.columns), ["A", "B", "C"])

    def test_threshold_is_strictly_greater_than(self):
        # 4 rows at 0.75 → limit of 3 missing entries
        df = pd.DataFrame({
            "at_limit":   [np.nan, np.nan, np.nan, 1],
            "over_limit": [np.nan, np.nan, np.nan, np.nan],
            "full":       [1, 2, 3, 4],
        })
        out = prune_columns(df, [], missing_threshold=0.75)
        self.assertEqual(list(out.columns), ["at_limit", "full"])

    def test_one_row_over_limit_removes_column(self):
        df = pd.DataFrame({
            "two_missing":   [np.nan, np.nan, 1, 1],
            "three_missing": [np.nan, np.nan, np.nan, 1],
        })
        out = prune_columns(df, [], missing_threshold=0.5)
        self.assertEqual(list(out.columns), ["two_missing"])

    def test_idempotent(self):
        raw = make_raw_incidents(50, seed=1)
        config = AnalysisConfig()
        once = prune_columns(raw, config.drop_columns, config.missing_threshold)
        twice = prune_columns(once, config.drop_columns, config.missing_threshold)
        self.assertEqual(list(once.columns), list(twice.columns))

    def test_null_tokens_do_not_count_as_missing(self):
        df = pd.DataFrame({"PERP_SEX": ["(null)"] * 4})
        out = prune_columns(df, [], missing_threshold=0.75)
        self.assertIn("PERP_SEX", out.columns)

    def test_keep_columns_exempt(self):
        df = pd.DataFrame({"sparse": [np.nan] * 4, "x": [1, 2, 3, 4]})
        out = prune_columns(df, [], missing_threshold=0.5, keep_columns=["sparse"])
        self.assertIn("sparse", out.columns)

    def test_invalid_threshold(self):
        with self.assertRaises(ValueError):
            prune_columns(pd.DataFrame({"a": [1]}), [], missing_threshold=1.5)

    def test_source_dataset_reduced_to_eleven_columns(self):
        raw = make_raw_incidents(20, seed=2)
        self.assertEqual(len(raw.columns), 21)
        out = prune_columns(raw, AnalysisConfig().drop_columns, missing_threshold=1.0)
        self.assertEqual(len(out.columns), 11)


class TestNormalizeUnknowns(unittest.TestCase):

    def test_sentinels_become_unknown(self):
        df = pd.DataFrame({"PERP_SEX": ["M", "(null)", np.nan, "", "  ", "UNKNOWN", "unknown",
                                        " Unknown ", "F", "NULL"]})
        out = normalize_unknowns(df, ["PERP_SEX"], NULL_TOKENS)
        self.assertEqual(out["PERP_SEX"].tolist(),
                         ["M", "Unknown", "Unknown", "Unknown", "Unknown", "Unknown", "Unknown",
                          "Unknown", "F", "Unknown"])
        # Input untouched
        self.assertEqual(df["PERP_SEX"].iloc[1], "(null)")

    def test_labels_keep_their_casing(self):
        df = pd.DataFrame({"BOROUGH": ["BROOKLYN", " Queens"]})
        out = normalize_unknowns(df, ["BOROUGH"], NULL_TOKENS)
        self.assertEqual(out["BOROUGH"].tolist(), ["BROOKLYN", "Queens"])

    def test_out_of_vocabulary_codes_become_unknown(self):
        df = pd.DataFrame({"PERP_AGE_GROUP": ["18-24", "1020", "940", "<18"]})
        out = normalize_unknowns(df, ["PERP_AGE_GROUP"], NULL_TOKENS,
                                 vocabularies={"PERP_AGE_GROUP": AGE_GROUPS})
        self.assertEqual(out["PERP_AGE_GROUP"].tolist(), ["18-24", "Unknown", "Unknown", "<18"])

    def test_absent_columns_skipped(self):
        df = pd.DataFrame({"A": ["x"]})
        out = normalize_unknowns(df, ["A", "MISSING"], NULL_TOKENS)
        self.assertEqual(list(out.columns), ["A"])

    def test_audit_records_changed_count(self):
        df = pd.DataFrame({"VIC_SEX": ["M", "(null)", "Unknown"]})
        audit = AuditTrail(total_rows=3)
        normalize_unknowns(df, ["VIC_SEX"], NULL_TOKENS, audit=audit)
        self.assertEqual(audit.steps[-1]["rows_affected"], 1)


class TestDeclareCategoricals(unittest.TestCase):

    def test_requires_normalization_first(self):
        df = pd.DataFrame({"PERP_SEX": ["M", "(null)"]})
        with self.assertRaises(CategoricalCastError):
            declare_categoricals(df, ["PERP_SEX"], NULL_TOKENS)

    def test_rejects_missing_values(self):
        df = pd.DataFrame({"PERP_SEX": ["M", None]})
        with self.assertRaises(CategoricalCastError):
            declare_categoricals(df, ["PERP_SEX"], NULL_TOKENS)

    def test_observed_vocabulary_plus_unknown(self):
        df = pd.DataFrame({"BOROUGH": ["QUEENS", "BRONX", "QUEENS"]})
        out = declare_categoricals(df, ["BOROUGH"], NULL_TOKENS)
        self.assertIsInstance(out["BOROUGH"].dtype, pd.CategoricalDtype)
        self.assertEqual(list(out["BOROUGH"].cat.categories), ["BRONX", "QUEENS", "Unknown"])

    def test_declared_vocabulary_is_ordered(self):
        df = pd.DataFrame({"VIC_AGE_GROUP": ["25-44", "Unknown", "<18"]})
        out = declare_categoricals(df, ["VIC_AGE_GROUP"], NULL_TOKENS,
                                   vocabularies={"VIC_AGE_GROUP": AGE_GROUPS})
        self.assertTrue(out["VIC_AGE_GROUP"].cat.ordered)
        self.assertEqual(list(out["VIC_AGE_GROUP"].cat.categories), list(AGE_GROUPS))

    def test_normalize_then_declare_has_no_sentinels(self):
        df = pd.DataFrame({"PERP_RACE": ["BLACK", "(null)", "unknown", np.nan]})
        out = normalize_unknowns(df, ["PERP_RACE"], NULL_TOKENS)
        out = declare_categoricals(out, ["PERP_RACE"], NULL_TOKENS)
        self.assertEqual(out["PERP_RACE"].isna().sum(), 0)
        self.assertEqual(set(out["PERP_RACE"]), {"BLACK", "Unknown"})


class TestOtherSteps(unittest.TestCase):

    def test_rename_skips_absent(self):
        df = pd.DataFrame({"BORO": ["BRONX"]})
        out = rename_columns(df, {"BORO": "BOROUGH", "X": "Y"})
        self.assertEqual(list(out.columns), ["BOROUGH"])

    def test_parse_occurrence_times(self):
        df = pd.DataFrame({
            "OCCUR_DATE": ["03/15/2021", "2021-04-02", "garbage"],
            "OCCUR_TIME": ["14:30:00", "07:05", "??"],
        })
        out = parse_occurrence_times(df)
        self.assertEqual(out["OCCUR_DATE"].iloc[0], pd.Timestamp("2021-03-15"))
        self.assertEqual(out["OCCUR_DATE"].iloc[1], pd.Timestamp("2021-04-02"))
        self.assertTrue(pd.isna(out["OCCUR_DATE"].iloc[2]))
        self.assertEqual(out["OCCUR_HOUR"].iloc[0], 14)
        self.assertEqual(out["OCCUR_HOUR"].iloc[1], 7)
        self.assertTrue(pd.isna(out["OCCUR_HOUR"].iloc[2]))

    def test_coerce_murder_flag(self):
        df = pd.DataFrame({"STATISTICAL_MURDER_FLAG": ["true", "FALSE", " Y ", "0"]})
        out = coerce_murder_flag(df)
        self.assertEqual(out["STATISTICAL_MURDER_FLAG"].tolist(), [True, False, True, False])
        self.assertEqual(out["STATISTICAL_MURDER_FLAG"].dtype, bool)

    def test_coerce_murder_flag_rejects_garbage(self):
        df = pd.DataFrame({"STATISTICAL_MURDER_FLAG": ["true", "maybe"]})
        with self.assertRaises(ValueError):
            coerce_murder_flag(df)


class TestRetainedTextColumns(unittest.TestCase):

    def test_predictors_first_then_other_text(self):
        df = pd.DataFrame({
            "BOROUGH": ["BRONX"],
            "OCCUR_TIME": ["10:00:00"],
            "OCCUR_HOUR": [10],
            "STATISTICAL_MURDER_FLAG": [True],
            "EXTRA_NOTE": ["x"],
            "LOCATION_DESC": ["STREET"],
        })
        self.assertEqual(retained_text_columns(df, AnalysisConfig()),
                         ["BOROUGH", "LOCATION_DESC", "EXTRA_NOTE"])


class TestCleanIncidents(unittest.TestCase):

    def setUp(self):
        self.raw = make_raw_incidents(200, seed=3)
        self.config = AnalysisConfig()

    def test_categorical_invariant_holds_for_every_row(self):
        df = clean_incidents(self.raw, self.config)
        for col in CATEGORICAL_COLUMNS:
            values = df[col].astype(object)
            self.assertEqual(values.isna().sum(), 0, col)
            for v in set(values):
                self.assertNotEqual(v.strip(), "", col)
                self.assertNotEqual(v.lower(), "(null)", col)
                if v.lower() == "unknown":
                    self.assertEqual(v, "Unknown", col)

    def test_schema_after_cleaning(self):
        df = clean_incidents(self.raw, self.config)
        self.assertIn("BOROUGH", df.columns)
        self.assertNotIn("BORO", df.columns)
        self.assertNotIn("INCIDENT_KEY", df.columns)
        # LOCATION_DESC is ~90% missing
        self.assertNotIn("LOCATION_DESC", df.columns)
        self.assertEqual(df["STATISTICAL_MURDER_FLAG"].dtype, bool)
        self.assertTrue(pd.api.types.is_datetime64_any_dtype(df["OCCUR_DATE"]))
        self.assertIn("OCCUR_HOUR", df.columns)

    def test_input_not_mutated(self):
        before = self.raw.copy()
        clean_incidents(self.raw, self.config)
        pd.testing.assert_frame_equal(self.raw, before)

    def test_audit_trail_saved(self):
        audit = AuditTrail(total_rows=len(self.raw))
        clean_incidents(self.raw, self.config, audit=audit)
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "audit.json")
            audit.save(path)
            with open(path) as f:
                saved = json.load(f)
        self.assertEqual(saved["total_rows"], 200)
        self.assertTrue(any(s["step"] == "Sparse column drop" for s in saved["steps"]))


class TestCleanIncidentsSparseLocation(unittest.TestCase):
    """LOCATION_DESC half missing, as in the published data, so it survives pruning."""

    def setUp(self):
        self.raw = make_raw_incidents(200, seed=11)
        location = ["GROCERY/BODEGA", "MULTI DWELL - PUBLIC HOUS"] * 100
        location[:100] = [None] * 100
        location[100:110] = ["(null)"] * 10
        location[110:115] = [" unknown "] * 5
        self.raw["LOCATION_DESC"] = location
        self.config = AnalysisConfig()
        self.df = clean_incidents(self.raw, self.config)

    def test_location_retained_and_normalized(self):
        self.assertIn("LOCATION_DESC", self.df.columns)
        location = self.df["LOCATION_DESC"]
        self.assertIsInstance(location.dtype, pd.CategoricalDtype)
        self.assertEqual(location.isna().sum(), 0)
        self.assertEqual((location == "Unknown").sum(), 115)
        self.assertEqual(set(location.cat.categories),
                         {"GROCERY/BODEGA", "MULTI DWELL - PUBLIC HOUS", "Unknown"})

    def test_invariant_holds_for_every_retained_attribute(self):
        self.assertEqual(int(self.df.isna().sum().sum()), 0)
        text_columns = [
            c for c in self.df.columns
            if isinstance(self.df[c].dtype, pd.CategoricalDtype) or self.df[c].dtype == object
        ]
        self.assertIn("LOCATION_DESC", text_columns)
        for col in text_columns:
            if col == self.config.time_column:
                continue
            for v in set(self.df[col].astype(object)):
                self.assertNotEqual(v.strip(), "", col)
                self.assertNotEqual(v.lower(), "(null)", col)
                self.assertNotEqual(v.lower(), "null", col)
                if v.lower() == "unknown":
                    self.assertEqual(v, "Unknown", col)

    def test_location_is_not_a_predictor(self):
        self.assertNotIn("LOCATION_DESC", self.config.predictors)


if __name__ == "__main__":
    unittest.main()
