# predictive_metrics/services/financial_forecast.py
from typing import Any, Dict, Optional

from predictive_metrics.logging_setup import get_logger
from predictive_metrics.schemas import ForecastType, PredictionWindow
from predictive_metrics.services.prediction_service import PredictionService
from predictive_metrics.services.sales_forecast import DateLike

logger = get_logger(__name__)


class FinancialForecastService:
    """Profit forecast with revenue/cost trends for the dashboard metrics panel."""

    def __init__(self, prediction_service: PredictionService):
        self.prediction_service = prediction_service

    async def get_predictive_metrics(
        self,
        start_date: DateLike,
        end_date: DateLike,
        forecast_days: int = 14,
        force_refresh: bool = False,
        seed: Optional[int] = None
    ) -> Dict[str, Any]:
        """Get predicted profit and its drivers.

        Args:
            start_date: First day of the window
            end_date: Last day of the window
            forecast_days: Days forecast after end_date
            force_refresh: Bypass the cache
            seed: Seed of the synthetic fallback

        Returns:
            Dictionary with the profit prediction arrays, revenue and cost
            trends, confidence intervals, feature importance and accuracy
        """
        window = PredictionWindow(
            start_date=start_date,
            end_date=end_date,
            forecast_days=forecast_days,
            seed=seed,
        )

        result = await self.prediction_service.get_forecast(
            ForecastType.FINANCIAL, 'overall', None, window, force_refresh
        )

        future = [point for point in result.series if point.actual is None]
        history = [point for point in result.series if point.actual is not None]
        accuracy = result.accuracy

        return {
            'profit_prediction': {
                'dates': [point.date.isoformat() for point in future],
                'values': [point.prediction for point in future],
                'lower_bound': [point.lower_bound for point in future],
                'upper_bound': [point.upper_bound for point in future],
            },
            'profit_history': {
                'dates': [point.date.isoformat() for point in history],
                'actual': [point.actual for point in history],
                'predicted': [point.prediction for point in history],
            },
            'revenue_trends': accuracy.extras.get('revenue_trends'),
            'cost_trends': accuracy.extras.get('cost_trends'),
            'confidence_intervals': accuracy.extras.get('confidence_intervals'),
            'feature_importance': list(accuracy.feature_importance),
            'accuracy': {
                'mape': accuracy.mape,
                'rmse': accuracy.rmse,
                'r_squared': accuracy.r_squared,
                'overall_accuracy': accuracy.overall_accuracy,
            },
            'cached': result.cached,
            'synthetic': result.synthetic,
            'notice': result.notice,
        }
