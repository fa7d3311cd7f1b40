"""
Tests for request validation and record types.
"""
import unittest
from datetime import date, datetime

from predictive_metrics.exceptions import ValidationError
from predictive_metrics.schemas import (
    AnomalyRecord, ForecastRecord, ForecastType, OptimizationRecommendation,
    PredictionWindow, RecommendationStatus, RecommendationType, SeriesPoint, make_cache_key
)


class TestForecastType(unittest.TestCase):
    def test_from_string(self):
        self.assertEqual(ForecastType.from_string('financial'), ForecastType.FINANCIAL)
        self.assertIs(ForecastType.from_string(ForecastType.SALES), ForecastType.SALES)

    def test_unknown_type(self):
        with self.assertRaises(ValidationError) as context:
            ForecastType.from_string('weather')
        self.assertEqual(context.exception.code, 'INVALID_FORECAST_TYPE')

    def test_series_types(self):
        self.assertTrue(ForecastType.SALES.has_series)
        self.assertFalse(ForecastType.ASSOCIATION.has_series)

    def test_cache_key_normalizes_resource_id(self):
        self.assertEqual(make_cache_key('sales', 'item', 7), ('sales', 'item', '7'))
        self.assertEqual(make_cache_key(ForecastType.SALES, 'overall', None), ('sales', 'overall', None))


class TestPredictionWindow(unittest.TestCase):
    def test_dates_are_parsed(self):
        window = PredictionWindow(start_date='2024-01-01', end_date='2024-01-31T00:00:00')
        self.assertEqual(window.start_date, date(2024, 1, 1))
        self.assertEqual(window.end_date, date(2024, 1, 31))

    def test_malformed_date_is_a_validation_error(self):
        with self.assertRaises(ValidationError) as context:
            PredictionWindow(start_date='2024-13-45', end_date='2024-01-10')

        self.assertEqual(context.exception.code, 'INVALID_REQUEST')
        self.assertEqual(set(context.exception.details), {'start_date'})

        with self.assertRaises(ValidationError):
            PredictionWindow(end_date=20240110)

    def test_end_before_start(self):
        window = PredictionWindow(start_date='2024-02-01', end_date='2024-01-01')
        with self.assertRaises(ValidationError) as context:
            window.validate(ForecastType.SALES)
        self.assertEqual(context.exception.code, 'INVALID_REQUEST')
        self.assertIn('end_date', context.exception.details)

    def test_forecast_days_range(self):
        for days in (0, -3, 366):
            with self.assertRaises(ValidationError):
                PredictionWindow(forecast_days=days).validate(ForecastType.FINANCIAL)

        PredictionWindow(forecast_days=365).validate(ForecastType.FINANCIAL)
        PredictionWindow(forecast_days=0).validate(ForecastType.INVENTORY_OPTIMIZATION)

    def test_forecast_days_must_be_integer(self):
        with self.assertRaises(ValidationError):
            PredictionWindow(forecast_days='7').validate(ForecastType.SALES)

    def test_thresholds_and_sensitivity(self):
        with self.assertRaises(ValidationError) as context:
            PredictionWindow(
                forecast_days=0, min_support=-0.1, min_confidence=1.2, sensitivity='extreme'
            ).validate(ForecastType.ASSOCIATION)

        self.assertEqual(set(context.exception.details), {'min_support', 'min_confidence', 'sensitivity'})

    def test_request_bodies(self):
        window = PredictionWindow(
            start_date='2024-01-01', end_date='2024-01-07', forecast_days=14,
            resource_filter={'item_id': 3}
        )
        self.assertEqual(window.to_request(ForecastType.SALES), {
            'start_date': '2024-01-01',
            'end_date': '2024-01-07',
            'forecast_days': 14,
            'resource_filter': {'item_id': 3},
        })
        self.assertEqual(window.to_request(ForecastType.INVENTORY_OPTIMIZATION), {})
        self.assertEqual(window.to_request(ForecastType.INVENTORY_ANOMALY)['sensitivity'], 'medium')


class TestForecastRecord(unittest.TestCase):
    def _record(self, points):
        return ForecastRecord(
            forecast_type=ForecastType.SALES,
            resource_type='overall',
            resource_id=None,
            start_date=points[0].date,
            end_date=points[-1].date,
            series=points,
        )

    def test_gap_is_rejected(self):
        record = self._record([
            SeriesPoint(date=date(2024, 1, 1), prediction=1.0, lower_bound=0.5, upper_bound=1.5),
            SeriesPoint(date=date(2024, 1, 3), prediction=1.0, lower_bound=0.5, upper_bound=1.5),
        ])
        with self.assertRaises(ValidationError):
            record.validate_series()

    def test_prediction_outside_bounds_is_rejected(self):
        record = self._record([
            SeriesPoint(date=date(2024, 1, 1), prediction=2.0, lower_bound=0.5, upper_bound=1.5),
        ])
        with self.assertRaises(ValidationError):
            record.validate_series()

    def test_missing_bounds_default_to_prediction(self):
        point = SeriesPoint.from_dict({'date': '2024-01-01', 'prediction': '4.5'})
        self.assertEqual((point.lower_bound, point.upper_bound), (4.5, 4.5))
        self.assertIsNone(point.actual)


class TestAnomalyRecord(unittest.TestCase):
    def test_description(self):
        anomaly = AnomalyRecord.from_dict({'resource_id': 4, 'name': 'Oat Milk', 'reason': 'Usage spike'})
        self.assertEqual(anomaly.resource_id, 4)
        self.assertEqual(anomaly.description, 'Usage spike for "Oat Milk"')

    def test_defaults(self):
        anomaly = AnomalyRecord.from_dict({'ingredient_id': 1})
        self.assertEqual(anomaly.name, 'Unknown Item')
        self.assertEqual(anomaly.anomaly_score, 0.0)


class TestOptimizationRecommendation(unittest.TestCase):
    def _recommendation(self, recommendation_type, current=40.0, recommended=25.0):
        return OptimizationRecommendation(
            recommendation_id=1,
            ingredient_id=2,
            recommendation_type=recommendation_type,
            current_value=current,
            recommended_value=recommended,
            unit_cost=3.0,
        )

    def test_reduce_savings(self):
        recommendation = self._recommendation(RecommendationType.REDUCE)
        self.assertEqual(recommendation.potential_savings, 45.0)
        self.assertEqual(recommendation.waste_reduction, 15.0)
        self.assertEqual(recommendation.waste_reduction_percent, 37.5)

    def test_restock_has_no_savings(self):
        recommendation = self._recommendation(RecommendationType.RESTOCK, current=2.0, recommended=10.0)
        self.assertEqual(recommendation.potential_savings, 0.0)
        self.assertEqual(recommendation.waste_reduction_percent, 0.0)

    def test_mark_applied_once(self):
        recommendation = self._recommendation(RecommendationType.ADJUST_MIN)
        applied_at = datetime(2024, 1, 15, 12, 0)

        recommendation.mark_applied(applied_at, 'manager')

        self.assertEqual(recommendation.status, RecommendationStatus.APPLIED)
        self.assertEqual(recommendation.to_dict()['applied_at'], '2024-01-15T12:00:00')
        with self.assertRaises(ValidationError) as context:
            recommendation.mark_applied(applied_at, 'manager')
        self.assertEqual(context.exception.code, 'RECOMMENDATION_ALREADY_APPLIED')

    def test_from_dict_aliases(self):
        recommendation = OptimizationRecommendation.from_dict({
            'ingredient_id': 5,
            'type': 'restock',
            'currentValue': 1,
            'recommendedValue': 9,
            'confidence_score': 0.6,
            'implementation_status': 'applied',
        })
        self.assertEqual(recommendation.recommendation_type, RecommendationType.RESTOCK)
        self.assertEqual(recommendation.recommended_value, 9.0)
        self.assertEqual(recommendation.confidence, 0.6)
        self.assertEqual(recommendation.status, RecommendationStatus.APPLIED)


if __name__ == '__main__':
    unittest.main()
