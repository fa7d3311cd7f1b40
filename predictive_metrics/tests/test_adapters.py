"""
Tests for the use case adapters built on the prediction service.
"""
import unittest
from datetime import date
from unittest.mock import AsyncMock

from predictive_metrics.exceptions import InferenceError, NotFoundError, ValidationError
from predictive_metrics.schemas import (
    ESTIMATED_DATA_NOTICE, AssociationRule, ForecastType, PredictionSettings, Severity
)
from predictive_metrics.services.anomaly_detection import AnomalyDetectionService, classify_severity
from predictive_metrics.services.financial_forecast import FinancialForecastService
from predictive_metrics.services.inventory_optimization import InventoryOptimizationService
from predictive_metrics.services.product_associations import (
    ProductAssociationService, filter_rules, summarize_rules
)
from predictive_metrics.services.sales_forecast import SalesForecastService
from predictive_metrics.tests.fakes import NOW, InMemoryInterface, build_service, series_response


def rule(target_id, confidence, support=0.1, lift=1.5):
    return AssociationRule(source_id=1, target_id=target_id, support=support, confidence=confidence, lift=lift)


class TestFilterRules(unittest.TestCase):
    def test_min_confidence_keeps_strong_rules_only(self):
        rules = [rule(5, 0.75), rule(6, 0.40), rule(7, 0.20)]

        kept = filter_rules(rules, min_support=0.01, min_confidence=0.5)

        self.assertEqual([r.confidence for r in kept], [0.75])

    def test_thresholds_are_inclusive(self):
        kept = filter_rules([rule(5, 0.5, support=0.05)], min_support=0.05, min_confidence=0.5)
        self.assertEqual(len(kept), 1)

    def test_sorted_by_lift(self):
        rules = [rule(5, 0.6, lift=1.2), rule(6, 0.6, lift=3.4), rule(7, 0.6, lift=2.0)]

        kept = filter_rules(rules, 0.01, 0.3)

        self.assertEqual([r.target_id for r in kept], [6, 7, 5])

    def test_item_filter_matches_either_side(self):
        rules = [
            AssociationRule(source_id=1, target_id=2, support=0.1, confidence=0.6, lift=1.0),
            AssociationRule(source_id=3, target_id=1, support=0.1, confidence=0.6, lift=1.0),
            AssociationRule(source_id=3, target_id=4, support=0.1, confidence=0.6, lift=1.0),
        ]

        kept = filter_rules(rules, 0.01, 0.3, item_id=1)

        self.assertEqual(len(kept), 2)

    def test_summary_of_empty_rule_set(self):
        summary = summarize_rules([], 0.01, 0.3)
        self.assertEqual(summary['rule_count'], 0)
        self.assertEqual(summary['avg_lift'], 0.0)


class TestClassifySeverity(unittest.TestCase):
    def test_false_positive_is_low(self):
        self.assertEqual(classify_severity(0.99, is_confirmed=True, is_false_positive=True), Severity.LOW)

    def test_confirmed_is_high(self):
        self.assertEqual(classify_severity(0.1, is_confirmed=True), Severity.HIGH)

    def test_score_threshold(self):
        self.assertEqual(classify_severity(0.8), Severity.HIGH)
        self.assertEqual(classify_severity(0.79), Severity.MEDIUM)
        self.assertEqual(classify_severity(0.6, confirmed_threshold=0.5), Severity.HIGH)


class TestSalesForecastService(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.inference = AsyncMock()
        self.inference.predict.return_value = series_response(start='2024-01-10', days=5)
        self.service = SalesForecastService(build_service(self.inference))

    async def test_summary_of_future_days(self):
        result = await self.service.get_sales_forecast('2024-01-10', '2024-01-14', forecast_days=5)

        self.assertEqual(result['summary'], {
            'forecast_days': 5,
            'total_predicted': 510.0,
            'average_daily': 102.0,
        })
        self.assertEqual(len(result['forecast']), 5)
        self.assertFalse(result['cached'])
        self.assertIsNone(result['notice'])
        self.assertEqual(result['created_at'], NOW.isoformat())

    async def test_item_forecast_is_keyed_by_item(self):
        await self.service.get_sales_forecast('2024-01-10', '2024-01-14', item_id=12)

        request = self.inference.predict.await_args.args[1]
        self.assertEqual(request['resource_filter'], {'item_id': 12})

        interface = self.service.prediction_service.repository.interface
        row = interface.rows('ml_forecasts')[0]
        self.assertEqual((row['resource_type'], row['resource_id']), ('item', '12'))

        second = await self.service.get_sales_forecast('2024-01-10', '2024-01-14', item_id=12)
        self.assertTrue(second['cached'])
        self.assertEqual(second['item_id'], 12)

    async def test_fallback_is_flagged(self):
        self.inference.predict.side_effect = InferenceError('down')

        result = await self.service.get_sales_forecast(date(2024, 1, 10), date(2024, 1, 10), seed=3)

        self.assertTrue(result['synthetic'])
        self.assertEqual(result['notice'], ESTIMATED_DATA_NOTICE)
        self.assertGreater(result['summary']['total_predicted'], 0)

    async def test_invalid_window(self):
        with self.assertRaises(ValidationError):
            await self.service.get_sales_forecast('2024-01-10', '2024-01-01')
        self.inference.predict.assert_not_awaited()

    async def test_malformed_date_is_rejected(self):
        with self.assertRaises(ValidationError) as context:
            await self.service.get_sales_forecast('2024-13-45', '2024-01-10')

        self.assertEqual(context.exception.code, 'INVALID_REQUEST')
        self.assertIn('start_date', context.exception.details)
        self.inference.predict.assert_not_awaited()


class TestFinancialForecastService(unittest.IsolatedAsyncioTestCase):
    async def test_response_shape(self):
        inference = AsyncMock()
        inference.predict.return_value = {
            'profitPrediction': {
                'dates': ['2024-01-15', '2024-01-16'],
                'values': [500.0, 520.0],
                'lowerBound': [450.0, 470.0],
                'upperBound': [550.0, 570.0],
            },
            'revenueTrends': {'trend': 'increasing', 'percentage': 4.2},
            'costTrends': {'trend': 'stable', 'percentage': 0.3},
            'confidenceIntervals': {'profit': {'lower': 920.0, 'upper': 1120.0}},
            'featureImportance': [{'feature': 'day_of_week', 'importance': 35}],
            'accuracy': {'mape': 10.0, 'rmse': 42.0, 'r_squared': 0.8},
        }
        service = FinancialForecastService(build_service(inference))

        result = await service.get_predictive_metrics('2024-01-01', '2024-01-14')

        self.assertEqual(result['profit_prediction'], {
            'dates': ['2024-01-15', '2024-01-16'],
            'values': [500.0, 520.0],
            'lower_bound': [450.0, 470.0],
            'upper_bound': [550.0, 570.0],
        })
        self.assertEqual(result['profit_history']['dates'], [])
        self.assertEqual(result['revenue_trends']['trend'], 'increasing')
        self.assertEqual(result['cost_trends']['trend'], 'stable')
        self.assertIn('profit', result['confidence_intervals'])
        self.assertEqual(result['feature_importance'], [{'feature': 'day_of_week', 'importance': 35}])
        self.assertEqual(result['accuracy']['overall_accuracy'], 90.0)
        self.assertFalse(result['synthetic'])

    async def test_synthetic_metrics_have_history(self):
        inference = AsyncMock()
        inference.predict.side_effect = InferenceError('down')
        service = FinancialForecastService(build_service(inference))

        result = await service.get_predictive_metrics('2024-01-01', '2024-01-07', forecast_days=14, seed=2)

        self.assertTrue(result['synthetic'])
        self.assertEqual(len(result['profit_history']['dates']), 30)
        self.assertEqual(len(result['profit_prediction']['dates']), 7 + 14)
        self.assertIsNotNone(result['revenue_trends'])
        self.assertIsNotNone(result['accuracy']['r_squared'])


class TestAnomalyDetectionService(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.inference = AsyncMock()
        self.inference.predict.return_value = {
            'anomalies': [
                {'ingredient_id': 1, 'name': 'Milk', 'reason': 'Unusual usage', 'anomaly_score': 0.92},
                {'resource_id': 2, 'description': 'Rapid depletion for "Sugar"', 'anomaly_score': 0.5},
                {'ingredient_id': 3, 'name': 'Tea', 'reason': 'Spike', 'anomaly_score': 0.95,
                 'is_false_positive': True},
            ]
        }
        self.prediction_service = build_service(self.inference)
        self.service = AnomalyDetectionService(self.prediction_service)

    async def test_anomalies_sorted_and_classified(self):
        result = await self.service.detect_inventory_anomalies('2024-01-01', '2024-01-31', sensitivity='high')

        anomalies = result['anomalies']
        self.assertEqual([a['name'] for a in anomalies], ['Tea', 'Milk', 'Sugar'])
        self.assertEqual([a['severity'] for a in anomalies], ['low', 'high', 'medium'])
        self.assertEqual(anomalies[2]['reason'], 'Rapid depletion')
        self.assertEqual(anomalies[2]['description'], 'Rapid depletion for "Sugar"')
        self.assertEqual(result['counts'], {'low': 1, 'medium': 1, 'high': 1})
        self.assertEqual(result['sensitivity'], 'high')

        forecast_type, request = self.inference.predict.await_args.args
        self.assertEqual(forecast_type, ForecastType.INVENTORY_ANOMALY)
        self.assertEqual(request, {'start_date': '2024-01-01', 'end_date': '2024-01-31', 'sensitivity': 'high'})

        interface = self.prediction_service.repository.interface
        self.assertEqual(len(interface.rows('ml_anomalies')), 3)

    async def test_default_window_ends_today(self):
        result = await self.service.detect_inventory_anomalies()

        self.assertEqual(result['detection_window'], {'start_date': '2023-12-16', 'end_date': '2024-01-15'})

    async def test_sensitivity_is_part_of_the_key(self):
        await self.service.detect_inventory_anomalies('2024-01-01', '2024-01-31', sensitivity='low')
        await self.service.detect_inventory_anomalies('2024-01-01', '2024-01-31', sensitivity='high')
        cached = await self.service.detect_inventory_anomalies('2024-01-01', '2024-01-31', sensitivity='low')

        self.assertEqual(self.inference.predict.await_count, 2)
        self.assertTrue(cached['cached'])

    async def test_invalid_sensitivity(self):
        with self.assertRaises(ValidationError):
            await self.service.detect_inventory_anomalies(sensitivity='extreme')

    async def test_malformed_end_date_is_rejected(self):
        with self.assertRaises(ValidationError) as context:
            await self.service.detect_inventory_anomalies(end_date='yesterday')

        self.assertIn('end_date', context.exception.details)
        self.inference.predict.assert_not_awaited()

    async def test_unscored_anomaly_keeps_detector_severity(self):
        self.inference.predict.return_value = {
            'anomalies': [
                {'ingredient_id': 4, 'name': 'Flour', 'reason': 'Slow usage', 'severity': 'low'},
                {'ingredient_id': 5, 'name': 'Cream', 'reason': 'Spike', 'severity': 'low',
                 'anomaly_score': 0.9},
            ]
        }

        result = await self.service.detect_inventory_anomalies('2024-01-01', '2024-01-31')

        severities = {a['name']: a['severity'] for a in result['anomalies']}
        self.assertEqual(severities, {'Cream': 'high', 'Flour': 'low'})
        self.assertEqual(result['counts'], {'low': 1, 'medium': 0, 'high': 1})

    async def test_custom_threshold(self):
        service = AnomalyDetectionService(self.prediction_service, confirmed_threshold=0.4)

        result = await service.detect_inventory_anomalies('2024-01-01', '2024-01-31')

        self.assertEqual(result['counts'], {'low': 1, 'medium': 0, 'high': 2})


class TestInventoryOptimizationService(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.interface = InMemoryInterface()
        await self.interface.insert('ingredients', {
            'ingredient_id': 7, 'name': 'Milk', 'unit': 'l', 'quantity': 50.0, 'minimum_quantity': 5.0,
        })
        await self.interface.insert('ingredients', {
            'ingredient_id': 8, 'name': 'Sugar', 'unit': 'kg', 'quantity': 2.0, 'minimum_quantity': 4.0,
        })

        self.inference = AsyncMock()
        self.inference.predict.return_value = {
            'recommendations': [
                {'ingredient_id': 7, 'type': 'reduce', 'currentValue': 50.0, 'recommendedValue': 30.0,
                 'unit_cost': 2.0, 'ingredient': {'name': 'Milk', 'unit': 'l'}, 'reason': 'Overstocked'},
                {'ingredient_id': 8, 'recommendation_type': 'restock', 'current_value': 2.0,
                 'recommended_value': 10.0, 'reason': 'Below minimum'},
            ]
        }
        self.service = InventoryOptimizationService(build_service(self.inference, interface=self.interface))

    async def test_totals_count_pending_recommendations(self):
        result = await self.service.get_inventory_optimizations()

        self.assertEqual(len(result['recommendations']), 2)
        self.assertEqual(result['potential_savings'], 40.0)
        self.assertEqual(result['waste_reduction'], 20.0)
        self.assertEqual(
            [rec['recommendation_id'] for rec in result['recommendations']],
            [1, 2]
        )
        self.assertEqual(len(self.interface.rows('ml_inventory_recommendations')), 2)

    async def test_apply_updates_ingredient_and_cached_totals(self):
        await self.service.get_inventory_optimizations()

        applied = await self.service.apply_recommendation(1, applied_by='manager')

        self.assertEqual(applied['status'], 'applied')
        self.assertEqual(applied['applied_by'], 'manager')
        self.assertEqual(applied['applied_at'], NOW.isoformat())
        self.assertEqual(self.interface.rows('ingredients')[0]['quantity'], 30.0)

        result = await self.service.get_inventory_optimizations()
        self.assertTrue(result['cached'])
        self.assertEqual(result['recommendations'][0]['status'], 'applied')
        self.assertEqual(result['potential_savings'], 0.0)
        self.assertEqual(self.inference.predict.await_count, 1)

    async def test_apply_twice_is_rejected(self):
        await self.service.get_inventory_optimizations()
        await self.service.apply_recommendation(2)

        with self.assertRaises(ValidationError):
            await self.service.apply_recommendation(2)
        self.assertEqual(self.interface.rows('ingredients')[1]['quantity'], 10.0)

    async def test_apply_unknown_recommendation(self):
        with self.assertRaises(NotFoundError):
            await self.service.apply_recommendation(999)

    async def test_synthetic_set_is_empty(self):
        self.inference.predict.side_effect = InferenceError('down')

        result = await self.service.get_inventory_optimizations()

        self.assertEqual(result['recommendations'], [])
        self.assertEqual(result['potential_savings'], 0.0)
        self.assertTrue(result['synthetic'])


class TestProductAssociationService(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.inference = AsyncMock()
        self.inference.predict.return_value = {
            'rules': [
                {
                    'source_id': 1,
                    'source_name': 'Americano',
                    'targets': [
                        {'target_id': 5, 'name': 'Croissant', 'support': 0.2, 'confidence': 0.75, 'lift': 2.1},
                        {'target_id': 6, 'name': 'Muffin', 'support': 0.1, 'confidence': 0.40, 'lift': 1.5},
                        {'target_id': 7, 'name': 'Bagel', 'support': 0.05, 'confidence': 0.20, 'lift': 3.0},
                    ],
                }
            ]
        }
        self.prediction_service = build_service(self.inference)
        self.service = ProductAssociationService(self.prediction_service)

    async def test_min_confidence_filter(self):
        result = await self.service.get_product_associations(min_confidence=0.5)

        self.assertEqual(len(result['rules']), 1)
        self.assertEqual(result['rules'][0]['target_name'], 'Croissant')
        self.assertEqual(result['rules'][0]['confidence'], 0.75)
        self.assertEqual(result['metrics']['rule_count'], 1)

        interface = self.prediction_service.repository.interface
        self.assertEqual(len(interface.rows('ml_product_associations')), 3)

    async def test_cached_rules_are_reused_for_same_thresholds(self):
        await self.service.get_product_associations(min_confidence=0.5)
        result = await self.service.get_product_associations(min_confidence=0.5)

        self.assertTrue(result['cached'])
        self.assertEqual([r['target_item_id'] for r in result['rules']], [5])
        self.assertEqual(self.inference.predict.await_count, 1)

    async def test_broader_thresholds_are_mined_again(self):
        targets = self.inference.predict.return_value['rules'][0]['targets']

        async def mine(forecast_type, request):
            kept = [target for target in targets if target['confidence'] >= request['min_confidence']]
            return {'rules': [{'source_id': 1, 'source_name': 'Americano', 'targets': kept}]}

        self.inference.predict.side_effect = mine

        narrow = await self.service.get_product_associations(min_confidence=0.7)
        broad = await self.service.get_product_associations(min_confidence=0.3)

        self.assertEqual([r['target_item_id'] for r in narrow['rules']], [5])
        self.assertFalse(broad['cached'])
        self.assertEqual([r['target_item_id'] for r in broad['rules']], [5, 6])
        self.assertEqual(self.inference.predict.await_count, 2)

    async def test_cache_key_carries_thresholds(self):
        await self.service.get_product_associations(min_support=0.05, min_confidence=0.4, item_id=3)

        forecasts = self.prediction_service.repository.interface.rows('ml_forecasts')
        self.assertEqual(forecasts[0]['resource_type'], 'item')
        self.assertEqual(forecasts[0]['resource_id'], '3:support=0.05:confidence=0.4')

    async def test_request_carries_thresholds_and_filters(self):
        await self.service.get_product_associations(min_support=0.05, min_confidence=0.4, category='pastry')

        forecast_type, request = self.inference.predict.await_args.args
        self.assertEqual(forecast_type, ForecastType.ASSOCIATION)
        self.assertEqual(request, {
            'min_support': 0.05,
            'min_confidence': 0.4,
            'resource_filter': {'category': 'pastry'},
        })

    async def test_invalid_threshold(self):
        with self.assertRaises(ValidationError):
            await self.service.get_product_associations(min_support=1.5)

    async def test_development_mode_returns_sample_rules(self):
        self.prediction_service.settings = PredictionSettings(development_mode=True)

        result = await self.service.get_product_associations()

        self.assertTrue(result['synthetic'])
        self.assertTrue(result['rules'])
        self.inference.predict.assert_not_awaited()


if __name__ == '__main__':
    unittest.main()
