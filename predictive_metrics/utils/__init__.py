from .clock import Clock, FixedClock
from .date_utils import convert_to_date, convert_to_datetime, date_range, format_date_window
from .math_utils import calculate_mape, calculate_rmse, calculate_r_squared, accuracy_from_mape

__all__ = [
    'Clock',
    'FixedClock',
    'convert_to_date',
    'convert_to_datetime',
    'date_range',
    'format_date_window',
    'calculate_mape',
    'calculate_rmse',
    'calculate_r_squared',
    'accuracy_from_mape'
]
