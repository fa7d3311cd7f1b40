# predictive_metrics/utils/math_utils.py
from typing import List, Optional, Sequence
import numpy as np


def calculate_mape(actuals: Sequence[float], predictions: Sequence[float]) -> Optional[float]:
    """Calculate Mean Absolute Percentage Error (MAPE).

    Pairs with a zero actual are skipped to avoid division by zero.

    Args:
        actuals: Observed values
        predictions: Predicted values

    Returns:
        MAPE as a percentage, or None if no usable pairs exist

    Raises:
        ValueError: If the sequences differ in length
    """
    if len(actuals) != len(predictions):
        raise ValueError("Actuals and predictions must have the same length")

    actual_array = np.asarray(actuals, dtype=float)
    predicted_array = np.asarray(predictions, dtype=float)

    mask = actual_array != 0
    if not mask.any():
        return None

    errors = np.abs((actual_array[mask] - predicted_array[mask]) / actual_array[mask])
    return float(np.mean(errors) * 100.0)


def calculate_rmse(actuals: Sequence[float], predictions: Sequence[float]) -> Optional[float]:
    """Calculate Root Mean Square Error (RMSE).

    Args:
        actuals: Observed values
        predictions: Predicted values

    Returns:
        RMSE, or None for empty input
    """
    if len(actuals) != len(predictions):
        raise ValueError("Actuals and predictions must have the same length")

    if not actuals:
        return None

    diff = np.asarray(actuals, dtype=float) - np.asarray(predictions, dtype=float)
    return float(np.sqrt(np.mean(diff ** 2)))


def calculate_r_squared(actuals: Sequence[float], predictions: Sequence[float]) -> Optional[float]:
    """Calculate the coefficient of determination."""
    if len(actuals) != len(predictions):
        raise ValueError("Actuals and predictions must have the same length")

    if len(actuals) < 2:
        return None

    actual_array = np.asarray(actuals, dtype=float)
    residual = np.sum((actual_array - np.asarray(predictions, dtype=float)) ** 2)
    total = np.sum((actual_array - actual_array.mean()) ** 2)

    if total == 0:
        return None

    return float(1.0 - residual / total)


def accuracy_from_mape(mape: Optional[float], default: float = 85.0) -> float:
    """Convert a MAPE into an overall accuracy percentage clamped to 0..100."""
    if mape is None:
        return default
    return float(min(100.0, max(0.0, 100.0 - mape)))


def normalize_importance(weights: List[float]) -> List[int]:
    """Normalize raw weights to integer percentages summing to at most 100.

    Args:
        weights: Raw non-negative weights

    Returns:
        Integer percentages (floored, so the total never exceeds 100)
    """
    total = float(sum(weights))
    if total <= 0:
        return [0 for _ in weights]

    return [int(np.floor(weight / total * 100.0)) for weight in weights]
