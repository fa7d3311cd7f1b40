from .staleness import is_fresh, record_age_hours
from .synthetic_forecast import (
    SyntheticForecastGenerator, generate_series, generate_feature_importance,
    generate_financial_extras, sample_association_rules
)

__all__ = [
    'is_fresh',
    'record_age_hours',
    'SyntheticForecastGenerator',
    'generate_series',
    'generate_feature_importance',
    'generate_financial_extras',
    'sample_association_rules'
]
