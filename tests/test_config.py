import os
import unittest
from pathlib import Path
from unittest import mock

from powerdash.config import (
    SERIES_PRESETS,
    AggregationConfig,
    get_settings,
    normalize_config,
    resolve_range,
)


class TestNormalizeConfig(unittest.TestCase):
    def test_defaults(self):
        self.assertEqual(normalize_config({}), AggregationConfig())

    def test_window_restricted_to_options(self):
        self.assertEqual(normalize_config({"window_days": 10}).window_days, 30)
        self.assertEqual(normalize_config({"window_days": "14"}).window_days, 14)
        self.assertEqual(normalize_config({"window_days": "abc"}).window_days, 30)

    def test_range_days_clamped(self):
        self.assertEqual(normalize_config({"range_days": 1}).range_days, 7)
        self.assertEqual(normalize_config({"range_days": 99999}).range_days, 3650)

    def test_bad_choices_fall_back(self):
        cfg = normalize_config({"view": "hourly", "mode": "median", "variance_mode": "robust"})
        self.assertEqual((cfg.view, cfg.mode, cfg.variance_mode), ("rolling", "sum", "population"))

    def test_dates_parsed_and_swapped(self):
        cfg = normalize_config({"from_date": "10/03/2024", "to_date": "01/03/2024"})
        self.assertEqual((cfg.from_date, cfg.to_date), ("2024-03-01", "2024-03-10"))
        self.assertIsNone(normalize_config({"from_date": 45292}).from_date)

    def test_preset_decides_mode(self):
        cfg = normalize_config({"rolling_mode": "sum"}, preset=SERIES_PRESETS["demand"])
        self.assertEqual(cfg.mode, "average")
        self.assertEqual(cfg.rolling_mode, "average")

        cfg = normalize_config({"rolling_mode": "sum"}, preset=SERIES_PRESETS["generation"])
        self.assertEqual((cfg.mode, cfg.rolling_mode), ("sum", "sum"))

        cfg = normalize_config({"mode": "sum"}, preset=SERIES_PRESETS["rtm-prices"])
        self.assertEqual(cfg.mode, "sum")


class TestResolveRange(unittest.TestCase):
    def test_from_latest_date(self):
        self.assertEqual(resolve_range(AggregationConfig(range_days=30), "2024-03-31"), ("2024-03-01", "2024-03-31"))

    def test_explicit_bounds(self):
        cfg = AggregationConfig(from_date="2024-01-01", to_date="2024-02-01")
        self.assertEqual(resolve_range(cfg, "2024-03-31"), ("2024-01-01", "2024-02-01"))
        cfg = AggregationConfig(from_date="2024-05-01")
        self.assertEqual(resolve_range(cfg, "2024-03-31"), ("2024-03-31", "2024-05-01"))

    def test_no_data(self):
        self.assertIsNone(resolve_range(AggregationConfig(), None))


class TestPresets(unittest.TestCase):
    def test_units_and_modes(self):
        self.assertEqual(len(SERIES_PRESETS), 7)
        self.assertEqual(SERIES_PRESETS["coal-plf"].unit_suffix, "%")
        self.assertEqual(SERIES_PRESETS["supply"].mode, "sum")
        self.assertEqual(SERIES_PRESETS["generation-coal"].value_column_key, "coal")


class TestSettings(unittest.TestCase):
    def test_environment(self):
        with mock.patch.dict(os.environ, {"POWERDASH_DATA_DIR": "/tmp/power", "POWERDASH_LOG_LEVEL": "debug"}):
            settings = get_settings()
        self.assertEqual(settings.data_dir, Path("/tmp/power"))
        self.assertEqual(settings.log_level, "DEBUG")

    def test_defaults(self):
        with mock.patch.dict(os.environ, {"POWERDASH_LOG_LEVEL": "chatty"}, clear=True):
            settings = get_settings()
        self.assertIsNone(settings.data_dir)
        self.assertEqual(settings.log_level, "INFO")


if __name__ == "__main__":
    unittest.main()
