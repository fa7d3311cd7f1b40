# predictive_metrics/services/sales_forecast.py
from datetime import date
from typing import Any, Dict, Optional, Union

from predictive_metrics.logging_setup import get_logger
from predictive_metrics.schemas import ForecastType, PredictionWindow
from predictive_metrics.services.prediction_service import PredictionService

logger = get_logger(__name__)

DateLike = Union[date, str]


class SalesForecastService:
    """Daily revenue forecasts, overall or for one menu item."""

    def __init__(self, prediction_service: PredictionService):
        self.prediction_service = prediction_service

    async def get_sales_forecast(
        self,
        start_date: DateLike,
        end_date: DateLike,
        forecast_days: int = 7,
        item_id: Optional[int] = None,
        force_refresh: bool = False,
        seed: Optional[int] = None
    ) -> Dict[str, Any]:
        """Get the sales forecast for a window.

        Args:
            start_date: First day of the window
            end_date: Last day of the window
            forecast_days: Days forecast after end_date
            item_id: Restrict to one item
            force_refresh: Bypass the cache
            seed: Seed of the synthetic fallback

        Returns:
            Dictionary with the forecast series, accuracy and a summary of
            the future days
        """
        window = PredictionWindow(
            start_date=start_date,
            end_date=end_date,
            forecast_days=forecast_days,
            resource_filter={'item_id': item_id} if item_id is not None else None,
            seed=seed,
        )

        result = await self.prediction_service.get_forecast(
            ForecastType.SALES,
            'item' if item_id is not None else 'overall',
            item_id,
            window,
            force_refresh
        )

        future = [point.prediction for point in result.series if point.actual is None]
        total = round(sum(future), 2)

        return {
            'forecast': [point.to_dict() for point in result.series],
            'accuracy': result.accuracy.to_dict(),
            'summary': {
                'forecast_days': len(future),
                'total_predicted': total,
                'average_daily': round(total / len(future), 2) if future else 0.0,
            },
            'item_id': item_id,
            'cached': result.cached,
            'synthetic': result.synthetic,
            'notice': result.notice,
            'created_at': result.created_at.isoformat() if result.created_at else None,
        }
