# predictive_metrics/core/synthetic_forecast.py
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from ..schemas import (
    AccuracyMetrics, ForecastRecord, ForecastType, PredictionWindow, SeriesPoint
)
from ..utils.clock import Clock
from ..utils.date_utils import date_range, days_from_month_boundary, is_weekend
from ..utils.math_utils import (
    accuracy_from_mape, calculate_mape, calculate_r_squared, calculate_rmse, normalize_importance
)

HISTORY_DAYS = 30
DEFAULT_MAPE = 10.0

# Typical daily values per forecast type (revenue for sales, profit for financial)
BASE_VALUE_BANDS = {
    ForecastType.SALES: (50000.0, 60000.0),
    ForecastType.FINANCIAL: (5000.0, 15000.0),
}

WEEKEND_FACTOR = 1.25
# Monday .. Sunday
DAY_OF_WEEK_FACTORS = (0.92, 0.95, 0.98, 1.0, 1.08, 1.05, 0.97)
MONTH_BOUNDARY_DAYS = 2
MONTH_BOUNDARY_FACTOR = 1.1
NOISE_BAND = 0.10
DAILY_TREND = 0.002
ACTUAL_BAND = 0.08
LOWER_BOUND_RATIO = 0.85
UPPER_BOUND_RATIO = 1.15

FEATURE_WEIGHTS = (
    ('Day of week', 24, 6),
    ('Weather conditions', 18, 8),
    ('Holidays', 15, 10),
    ('Dominant category', 12, 8),
    ('Seasonal trends', 10, 8),
)

SAMPLE_ASSOCIATIONS = (
    (1, 'Americano', 5, 'Croissant', 0.12, 0.65, 3.2),
    (2, 'Cappuccino', 7, 'Chocolate Muffin', 0.09, 0.55, 2.8),
    (3, 'Latte', 6, 'Blueberry Muffin', 0.07, 0.48, 2.5),
    (4, 'Iced Mocha', 9, 'Cheesecake', 0.05, 0.42, 2.1),
    (8, 'Hot Chocolate', 5, 'Croissant', 0.04, 0.36, 1.7),
)


def calculate_day_factors(day: date, day_index: int) -> Dict[str, float]:
    """Get the deterministic seasonal factors for one day.

    Args:
        day: Calendar day
        day_index: Days since the first generated day

    Returns:
        Dictionary with weekend, day_of_week, month_boundary and trend factors
    """
    return {
        'weekend': WEEKEND_FACTOR if is_weekend(day) else 1.0,
        'day_of_week': DAY_OF_WEEK_FACTORS[day.weekday()],
        'month_boundary': (
            MONTH_BOUNDARY_FACTOR if days_from_month_boundary(day) <= MONTH_BOUNDARY_DAYS else 1.0
        ),
        'trend': 1.0 + DAILY_TREND * day_index,
    }


def generate_series(
    start_date: date,
    end_date: date,
    forecast_days: int,
    rng: np.random.Generator,
    base_band: Tuple[float, float] = BASE_VALUE_BANDS[ForecastType.SALES]
) -> Tuple[List[SeriesPoint], AccuracyMetrics]:
    """Generate a seasonal history + forecast series.

    Covers every day from HISTORY_DAYS before start_date through
    end_date + forecast_days. Days before start_date also carry a simulated
    actual value.

    Args:
        start_date: First day of the requested window
        end_date: Last day of the requested window
        forecast_days: Number of future days after end_date
        rng: Random generator (seed it for reproducible output)
        base_band: Range the base daily value is drawn from

    Returns:
        Tuple with the series and its accuracy metrics
    """
    base_value = float(rng.uniform(*base_band))

    first_day = start_date - timedelta(days=HISTORY_DAYS)
    last_day = end_date + timedelta(days=forecast_days)

    series = []
    actuals = []
    predictions = []

    for day_index, day in enumerate(date_range(first_day, last_day)):
        factors = calculate_day_factors(day, day_index)
        noise_factor = float(rng.uniform(1.0 - NOISE_BAND, 1.0 + NOISE_BAND))

        prediction = round(
            base_value
            * factors['weekend']
            * factors['day_of_week']
            * factors['month_boundary']
            * noise_factor
            * factors['trend'],
            2
        )

        actual = None
        if day < start_date:
            actual = round(prediction * float(rng.uniform(1.0 - ACTUAL_BAND, 1.0 + ACTUAL_BAND)), 2)
            actuals.append(actual)
            predictions.append(prediction)

        series.append(SeriesPoint(
            date=day,
            prediction=prediction,
            actual=actual,
            lower_bound=round(prediction * LOWER_BOUND_RATIO, 2),
            upper_bound=round(prediction * UPPER_BOUND_RATIO, 2),
        ))

    mape = calculate_mape(actuals, predictions) if actuals else None
    if mape is None:
        mape = DEFAULT_MAPE
    rmse = calculate_rmse(actuals, predictions) if actuals else None
    r_squared = calculate_r_squared(actuals, predictions)

    accuracy = AccuracyMetrics(
        mape=round(mape, 2),
        rmse=round(rmse, 2) if rmse is not None else None,
        overall_accuracy=round(accuracy_from_mape(mape), 2),
        r_squared=round(r_squared, 4) if r_squared is not None else None,
    )

    return series, accuracy


def generate_feature_importance(rng: np.random.Generator) -> List[Dict[str, Any]]:
    """Generate a feature importance list normalized to at most 100."""
    raw = [base + int(rng.integers(0, spread)) for _, base, spread in FEATURE_WEIGHTS]
    normalized = normalize_importance(raw)
    return [
        {'feature': name, 'importance': importance}
        for (name, _, _), importance in zip(FEATURE_WEIGHTS, normalized)
    ]


def describe_trend(values: List[float], stable_band: float = 3.0) -> Tuple[str, float]:
    """Classify the direction of a series.

    Args:
        values: Ordered values
        stable_band: Monthly change (in percent) still considered stable

    Returns:
        Tuple with 'increasing', 'decreasing' or 'stable' and the projected
        30-day change in percent
    """
    if len(values) < 2:
        return 'stable', 0.0

    slope = float(np.polyfit(np.arange(len(values)), np.asarray(values, dtype=float), 1)[0])
    mean = float(np.mean(values))
    monthly_change = slope * 30 / mean * 100.0 if mean else 0.0

    if abs(monthly_change) < stable_band:
        return 'stable', monthly_change
    return ('increasing' if monthly_change > 0 else 'decreasing'), monthly_change


def generate_financial_extras(series: List[SeriesPoint], rng: np.random.Generator) -> Dict[str, Any]:
    """Generate the revenue/cost trends and confidence intervals of a profit forecast."""
    future = [point.prediction for point in series if point.actual is None]
    trend, change = describe_trend(future)

    if trend == 'stable':
        revenue_text = 'Revenue is expected to remain stable with less than 3% variation'
    else:
        verb = 'increase' if trend == 'increasing' else 'decrease'
        revenue_text = f'Revenue is expected to {verb} by {abs(change):.1f}% in the next 30 days'

    base_value = float(np.mean(future)) if future else 0.0
    monthly = base_value * 30

    return {
        'revenue_trends': {
            'trend': trend,
            'prediction': revenue_text,
            'confidence': 80 + int(rng.integers(0, 15)),
        },
        'cost_trends': {
            'trend': 'stable',
            'prediction': 'Costs are expected to remain stable with less than 3% variation',
            'confidence': 75 + int(rng.integers(0, 15)),
        },
        'confidence_intervals': {
            'revenue': {'lower': round(monthly * 0.9, 2), 'upper': round(monthly * 1.2, 2), 'confidence': 90},
            'profit': {'lower': round(monthly * 0.27, 2), 'upper': round(monthly * 0.48, 2), 'confidence': 85},
            'costs': {'lower': round(monthly * 0.54, 2), 'upper': round(monthly * 0.84, 2), 'confidence': 88},
        },
    }


def sample_association_rules() -> List[Dict[str, Any]]:
    """Get the fixed catalogue of demo association rules."""
    return [
        {
            'source_item_id': source_id,
            'source_name': source_name,
            'target_item_id': target_id,
            'target_name': target_name,
            'support': support,
            'confidence': confidence,
            'lift': lift,
        }
        for source_id, source_name, target_id, target_name, support, confidence, lift in SAMPLE_ASSOCIATIONS
    ]


class SyntheticForecastGenerator:
    """Produces forecast-shaped results when real inference is unavailable."""

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or Clock()

    def generate(
        self,
        forecast_type: ForecastType,
        resource_type: str,
        resource_id: Optional[str],
        window: PredictionWindow
    ) -> ForecastRecord:
        """Generate a synthetic record for any forecast type.

        Args:
            forecast_type: Forecast type requested
            resource_type: Scope of the request
            resource_id: Optional resource id
            window: Request window (its seed makes the output reproducible)

        Returns:
            ForecastRecord that is never meant to be persisted
        """
        rng = self.clock.rng(window.seed)
        today = self.clock.today()
        start_date = window.start_date or today
        end_date = window.end_date or start_date

        record = ForecastRecord(
            forecast_type=forecast_type,
            resource_type=resource_type,
            resource_id=resource_id,
            start_date=start_date,
            end_date=end_date,
            created_at=self.clock.now(),
        )

        if forecast_type.has_series:
            series, accuracy = generate_series(
                start_date,
                end_date,
                window.forecast_days,
                rng,
                base_band=BASE_VALUE_BANDS[forecast_type]
            )
            if forecast_type == ForecastType.FINANCIAL:
                accuracy.extras.update(generate_financial_extras(series, rng))
                accuracy.feature_importance = generate_feature_importance(rng)
            record.series = series
            record.start_date = series[0].date
            record.end_date = series[-1].date
            record.accuracy_metrics = accuracy
        elif forecast_type == ForecastType.ASSOCIATION:
            record.payload = sample_association_rules()
        # Anomaly and optimization fallbacks carry no entries

        return record
