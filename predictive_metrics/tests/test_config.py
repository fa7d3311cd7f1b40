"""
Tests for the configuration manager.
"""
import os
import unittest
from unittest.mock import patch

from predictive_metrics.config import Config, config


class TestConfig(unittest.TestCase):
    def setUp(self):
        self.saved = {
            ('INFERENCE', 'timeout_seconds'): config.get('INFERENCE', 'timeout_seconds'),
            ('INFERENCE', 'development_mode'): config.get('INFERENCE', 'development_mode'),
            ('CACHE', 'staleness_window_hours'): config.get('CACHE', 'staleness_window_hours'),
        }

    def tearDown(self):
        for (section, key), value in self.saved.items():
            config.set(section, key, value)

    def test_singleton(self):
        self.assertIs(Config(), config)

    def test_missing_values_fall_back_to_default(self):
        self.assertEqual(config.get('NOPE', 'missing', 'fallback'), 'fallback')
        self.assertEqual(config.get_int('CACHE', 'missing', 3), 3)

    def test_set_changes_typed_getters(self):
        config.set('CACHE', 'staleness_window_hours', 6)

        self.assertEqual(config.get('CACHE', 'staleness_window_hours'), '6')
        self.assertEqual(config.get_float('CACHE', 'staleness_window_hours'), 6.0)

    def test_prediction_settings_disable_non_positive_timeout(self):
        config.set('INFERENCE', 'timeout_seconds', 0)
        self.assertIsNone(config.prediction_settings.inference_timeout_seconds)

        config.set('INFERENCE', 'timeout_seconds', 2.5)
        self.assertEqual(config.prediction_settings.inference_timeout_seconds, 2.5)

    def test_environment_overrides_development_mode(self):
        config.set('INFERENCE', 'development_mode', False)

        with patch.dict(os.environ, {'PREDICTIVE_METRICS_ENV': 'Development'}):
            self.assertTrue(config.development_mode)
        with patch.dict(os.environ, {'PREDICTIVE_METRICS_ENV': 'production'}):
            self.assertFalse(config.development_mode)

        config.set('INFERENCE', 'development_mode', True)
        with patch.dict(os.environ, {'PREDICTIVE_METRICS_ENV': ''}):
            self.assertTrue(config.prediction_settings.development_mode)


if __name__ == '__main__':
    unittest.main()
