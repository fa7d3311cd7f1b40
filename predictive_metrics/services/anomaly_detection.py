# predictive_metrics/services/anomaly_detection.py
from datetime import timedelta
from typing import Any, Dict, Optional

from predictive_metrics.logging_setup import get_logger
from predictive_metrics.schemas import (
    AnomalyRecord, ForecastType, PredictionWindow, Severity, parse_request_date
)
from predictive_metrics.services.prediction_service import PredictionService
from predictive_metrics.services.sales_forecast import DateLike
from predictive_metrics.utils.date_utils import format_date_window

logger = get_logger(__name__)

DEFAULT_LOOKBACK_DAYS = 30


def classify_severity(
    anomaly_score: float,
    is_confirmed: bool = False,
    is_false_positive: bool = False,
    confirmed_threshold: float = 0.8
) -> Severity:
    """Bucket a detector score into a severity level.

    A false positive is always low; a confirmed anomaly or a score at or above
    the threshold is high; anything else is medium.
    """
    if is_false_positive:
        return Severity.LOW
    if is_confirmed or anomaly_score >= confirmed_threshold:
        return Severity.HIGH
    return Severity.MEDIUM


class AnomalyDetectionService:
    """Flags ingredient stock levels that look abnormal."""

    def __init__(self, prediction_service: PredictionService, confirmed_threshold: Optional[float] = None):
        """Initialize the service.

        Args:
            prediction_service: Prediction orchestrator
            confirmed_threshold: Score from which an anomaly is high severity
        """
        self.prediction_service = prediction_service
        if confirmed_threshold is None:
            confirmed_threshold = prediction_service.settings.anomaly_confirmed_threshold
        self.confirmed_threshold = confirmed_threshold

    async def detect_inventory_anomalies(
        self,
        start_date: Optional[DateLike] = None,
        end_date: Optional[DateLike] = None,
        sensitivity: str = 'medium',
        force_refresh: bool = False,
        seed: Optional[int] = None
    ) -> Dict[str, Any]:
        """Detect inventory anomalies in a window.

        Args:
            start_date: First day of the window (defaults to 30 days before end_date)
            end_date: Last day of the window (defaults to today)
            sensitivity: 'low', 'medium' or 'high'
            force_refresh: Bypass the cache
            seed: Seed of the synthetic fallback

        Returns:
            Dictionary with anomalies sorted by score and counts per severity
        """
        end_date = parse_request_date('end_date', end_date) or self.prediction_service.clock.today()
        start_date = parse_request_date('start_date', start_date) or end_date - timedelta(days=DEFAULT_LOOKBACK_DAYS)

        window = PredictionWindow(
            start_date=start_date,
            end_date=end_date,
            forecast_days=0,
            sensitivity=sensitivity,
            seed=seed,
        )

        result = await self.prediction_service.get_forecast(
            ForecastType.INVENTORY_ANOMALY,
            'inventory',
            f"{format_date_window(start_date, end_date)}:{sensitivity}",
            window,
            force_refresh
        )

        anomalies = []
        for entry in result.payload:
            anomaly = AnomalyRecord.from_dict(entry)
            # Unscored anomalies keep the severity the detector sent
            if anomaly.anomaly_score or anomaly.severity is None or anomaly.is_false_positive:
                anomaly.severity = classify_severity(
                    anomaly.anomaly_score,
                    anomaly.is_confirmed,
                    anomaly.is_false_positive,
                    self.confirmed_threshold
                )
            anomalies.append(anomaly)

        anomalies.sort(key=lambda anomaly: anomaly.anomaly_score, reverse=True)

        counts = {severity.value: 0 for severity in Severity}
        for anomaly in anomalies:
            counts[anomaly.severity.value] += 1

        if counts[Severity.HIGH.value]:
            logger.info(f"{counts[Severity.HIGH.value]} high severity inventory anomalies detected")

        return {
            'anomalies': [anomaly.to_dict() for anomaly in anomalies],
            'counts': counts,
            'sensitivity': sensitivity,
            'detection_window': {
                'start_date': start_date.isoformat(),
                'end_date': end_date.isoformat(),
            },
            'cached': result.cached,
            'synthetic': result.synthetic,
            'notice': result.notice,
        }
