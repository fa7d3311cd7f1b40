# predictive_metrics/schemas.py
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple, Union
import enum

from predictive_metrics.exceptions import ValidationError
from predictive_metrics.utils.date_utils import convert_to_date, convert_to_datetime

MAX_FORECAST_DAYS = 365
SENSITIVITY_LEVELS = ('low', 'medium', 'high')
ESTIMATED_DATA_NOTICE = 'Using estimated data'

ResourceId = Optional[Union[int, str]]
CacheKey = Tuple[str, str, Optional[str]]


class ForecastType(enum.Enum):
    """Domains a stored prediction can answer.

    Values:
        SALES ('sales'): Daily revenue forecast
        FINANCIAL ('financial'): Profit forecast with revenue/cost trends
        INVENTORY_ANOMALY ('inventory_anomaly'): Flagged ingredient stock levels
        ASSOCIATION ('association'): Market basket rules between products
        INVENTORY_OPTIMIZATION ('inventory_optimization'): Stock level recommendations
    """
    SALES = 'sales'
    FINANCIAL = 'financial'
    INVENTORY_ANOMALY = 'inventory_anomaly'
    ASSOCIATION = 'association'
    INVENTORY_OPTIMIZATION = 'inventory_optimization'

    def __str__(self):
        """Return the string value of the enum."""
        return self.value

    @property
    def has_series(self) -> bool:
        """Whether results of this type are daily time series."""
        return self in (ForecastType.SALES, ForecastType.FINANCIAL)

    @classmethod
    def from_string(cls, value: Union[str, 'ForecastType']) -> 'ForecastType':
        """Create a ForecastType from a string value.

        Raises:
            ValidationError if the string value is not valid
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            valid = ', '.join(member.value for member in cls)
            raise ValidationError(
                f"Invalid forecast type: {value}. Valid values are: {valid}",
                code='INVALID_FORECAST_TYPE'
            )


class Severity(enum.Enum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'

    def __str__(self):
        return self.value


class RecommendationType(enum.Enum):
    RESTOCK = 'restock'
    REDUCE = 'reduce'
    ADJUST_MIN = 'adjust_min'

    def __str__(self):
        return self.value


class RecommendationStatus(enum.Enum):
    PENDING = 'pending'
    APPLIED = 'applied'

    def __str__(self):
        return self.value


def normalize_resource_id(resource_id: ResourceId) -> Optional[str]:
    """Normalize a resource id to the string form used in cache keys."""
    if resource_id is None:
        return None
    return str(resource_id)


def make_cache_key(forecast_type: ForecastType, resource_type: str, resource_id: ResourceId) -> CacheKey:
    return (ForecastType.from_string(forecast_type).value, resource_type, normalize_resource_id(resource_id))


def parse_request_date(name: str, value) -> Optional[date]:
    """Parse a caller supplied date, rejecting malformed values as a validation error."""
    try:
        return convert_to_date(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(
            f"{name} is not a valid date: {value!r}",
            code='INVALID_REQUEST',
            details={name: str(e)}
        )


@dataclass
class PredictionSettings:
    """Tunables of the prediction orchestrator."""
    development_mode: bool = False
    staleness_window_hours: float = 24.0
    inference_timeout_seconds: Optional[float] = 30.0
    association_retention_days: Optional[int] = 7
    anomaly_confirmed_threshold: float = 0.8


@dataclass
class PredictionWindow:
    """Request parameters shared by every prediction use case."""
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    forecast_days: int = 7
    resource_filter: Optional[Dict[str, Any]] = None
    sensitivity: Optional[str] = None
    min_support: Optional[float] = None
    min_confidence: Optional[float] = None
    seed: Optional[int] = None

    def __post_init__(self):
        self.start_date = parse_request_date('start_date', self.start_date)
        self.end_date = parse_request_date('end_date', self.end_date)

    def validate(self, forecast_type: ForecastType) -> 'PredictionWindow':
        """Reject malformed parameters before any I/O happens.

        Args:
            forecast_type: Forecast type the window is requested for

        Returns:
            The window itself

        Raises:
            ValidationError: If any parameter is out of range
        """
        errors = {}

        if self.start_date and self.end_date and self.end_date < self.start_date:
            errors['end_date'] = 'end_date must not be before start_date'

        if not isinstance(self.forecast_days, int) or isinstance(self.forecast_days, bool):
            errors['forecast_days'] = 'forecast_days must be an integer'
        elif forecast_type.has_series and not 1 <= self.forecast_days <= MAX_FORECAST_DAYS:
            errors['forecast_days'] = f'forecast_days must be between 1 and {MAX_FORECAST_DAYS}'
        elif self.forecast_days < 0:
            errors['forecast_days'] = 'forecast_days must not be negative'

        if self.sensitivity is not None and self.sensitivity not in SENSITIVITY_LEVELS:
            errors['sensitivity'] = f"sensitivity must be one of {', '.join(SENSITIVITY_LEVELS)}"

        for name in ('min_support', 'min_confidence'):
            value = getattr(self, name)
            if value is not None and not 0.0 <= value <= 1.0:
                errors[name] = f'{name} must be between 0 and 1'

        if errors:
            raise ValidationError(
                '; '.join(errors.values()),
                code='INVALID_REQUEST',
                details=errors
            )

        return self

    def to_request(self, forecast_type: ForecastType) -> Dict[str, Any]:
        """Build the inference boundary request body for a forecast type."""
        if forecast_type.has_series:
            request = {
                'start_date': self.start_date.isoformat() if self.start_date else None,
                'end_date': self.end_date.isoformat() if self.end_date else None,
                'forecast_days': self.forecast_days,
            }
            if self.resource_filter:
                request['resource_filter'] = self.resource_filter
            return request

        if forecast_type == ForecastType.INVENTORY_ANOMALY:
            return {
                'start_date': self.start_date.isoformat() if self.start_date else None,
                'end_date': self.end_date.isoformat() if self.end_date else None,
                'sensitivity': self.sensitivity or 'medium',
            }

        if forecast_type == ForecastType.ASSOCIATION:
            request = {
                'min_support': self.min_support,
                'min_confidence': self.min_confidence,
            }
            if self.resource_filter:
                request['resource_filter'] = self.resource_filter
            return request

        return {}


@dataclass
class SeriesPoint:
    """One day of a forecast series."""
    date: date
    prediction: float
    lower_bound: float
    upper_bound: float
    actual: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'date': self.date.isoformat(),
            'prediction': self.prediction,
            'actual': self.actual,
            'lower_bound': self.lower_bound,
            'upper_bound': self.upper_bound,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SeriesPoint':
        prediction = float(data['prediction'])
        lower = data.get('lower_bound')
        upper = data.get('upper_bound')
        actual = data.get('actual')
        return cls(
            date=convert_to_date(data['date']),
            prediction=prediction,
            lower_bound=float(lower) if lower is not None else prediction,
            upper_bound=float(upper) if upper is not None else prediction,
            actual=float(actual) if actual is not None else None,
        )


@dataclass
class AccuracyMetrics:
    """Accuracy of a forecast plus any model-specific extras."""
    mape: Optional[float] = None
    rmse: Optional[float] = None
    overall_accuracy: Optional[float] = None
    r_squared: Optional[float] = None
    feature_importance: List[Dict[str, Any]] = field(default_factory=list)
    extras: Dict[str, Any] = field(default_factory=dict)

    _KNOWN = ('mape', 'rmse', 'overall_accuracy', 'r_squared', 'feature_importance')

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.extras)
        data.update({
            'mape': self.mape,
            'rmse': self.rmse,
            'overall_accuracy': self.overall_accuracy,
            'r_squared': self.r_squared,
            'feature_importance': list(self.feature_importance),
        })
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'AccuracyMetrics':
        data = data or {}
        return cls(
            mape=data.get('mape'),
            rmse=data.get('rmse'),
            overall_accuracy=data.get('overall_accuracy'),
            r_squared=data.get('r_squared'),
            feature_importance=list(data.get('feature_importance') or []),
            extras={k: v for k, v in data.items() if k not in cls._KNOWN},
        )


@dataclass
class ForecastRecord:
    """A stored prediction; the unit of caching."""
    forecast_type: ForecastType
    resource_type: str
    resource_id: Optional[str]
    start_date: Optional[date]
    end_date: Optional[date]
    series: List[SeriesPoint] = field(default_factory=list)
    payload: List[Dict[str, Any]] = field(default_factory=list)
    accuracy_metrics: AccuracyMetrics = field(default_factory=AccuracyMetrics)
    model_id: Optional[int] = None
    created_at: Optional[datetime] = None
    id: Optional[int] = None

    @property
    def key(self) -> CacheKey:
        return make_cache_key(self.forecast_type, self.resource_type, self.resource_id)

    def validate_series(self):
        """Check the series is contiguous, ordered and bounded.

        Raises:
            ValidationError: If the series breaks an invariant
        """
        previous = None
        for point in self.series:
            if previous is not None and (point.date - previous).days != 1:
                raise ValidationError(
                    f"Series is not contiguous between {previous} and {point.date}",
                    code='INVALID_SERIES'
                )
            if not point.lower_bound <= point.prediction <= point.upper_bound:
                raise ValidationError(
                    f"Prediction outside its bounds on {point.date}",
                    code='INVALID_SERIES'
                )
            previous = point.date

    def forecast_data(self) -> List[Dict[str, Any]]:
        """JSON representation stored in the forecast_data column."""
        if self.forecast_type.has_series:
            return [point.to_dict() for point in self.series]
        return list(self.payload)


@dataclass
class ModelRecord:
    model_type: ForecastType
    model_name: str
    is_active: bool = True
    last_trained: Optional[datetime] = None
    accuracy: Optional[float] = None
    parameters: Dict[str, Any] = field(default_factory=dict)
    model_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'ModelRecord':
        return cls(
            model_id=row.get('model_id'),
            model_type=ForecastType.from_string(row['model_type']),
            model_name=row.get('model_name') or '',
            is_active=bool(row.get('is_active')),
            last_trained=convert_to_datetime(row.get('last_trained')),
            accuracy=row.get('accuracy'),
            parameters=dict(row.get('parameters') or {}),
            created_at=convert_to_datetime(row.get('created_at')),
            updated_at=convert_to_datetime(row.get('updated_at')),
        )


@dataclass
class AnomalyRecord:
    resource_id: Optional[int]
    name: str
    reason: str
    anomaly_score: float = 0.0
    severity: Optional[Severity] = None
    is_confirmed: bool = False
    is_false_positive: bool = False
    detection_start: Optional[date] = None
    detection_end: Optional[date] = None
    created_at: Optional[datetime] = None
    anomaly_id: Optional[int] = None

    @property
    def description(self) -> str:
        return f'{self.reason} for "{self.name}"'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'anomaly_id': self.anomaly_id,
            'ingredient_id': self.resource_id,
            'name': self.name,
            'reason': self.reason,
            'description': self.description,
            'anomaly_score': self.anomaly_score,
            'severity': self.severity.value if self.severity else None,
            'is_confirmed': self.is_confirmed,
            'is_false_positive': self.is_false_positive,
            'detection_start': self.detection_start.isoformat() if self.detection_start else None,
            'detection_end': self.detection_end.isoformat() if self.detection_end else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AnomalyRecord':
        severity = data.get('severity')
        return cls(
            anomaly_id=data.get('anomaly_id'),
            resource_id=data.get('ingredient_id', data.get('resource_id')),
            name=data.get('name') or 'Unknown Item',
            reason=data.get('reason') or 'Anomaly detected',
            anomaly_score=float(data.get('anomaly_score') or 0.0),
            severity=Severity(severity) if severity else None,
            is_confirmed=bool(data.get('is_confirmed', severity == 'high')),
            is_false_positive=bool(data.get('is_false_positive', False)),
            detection_start=convert_to_date(data.get('detection_start')),
            detection_end=convert_to_date(data.get('detection_end')),
            created_at=convert_to_datetime(data.get('created_at')),
        )


@dataclass
class AssociationRule:
    source_id: int
    target_id: int
    support: float
    confidence: float
    lift: float
    source_name: Optional[str] = None
    target_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'source_item_id': self.source_id,
            'source_name': self.source_name,
            'target_item_id': self.target_id,
            'target_name': self.target_name,
            'support': self.support,
            'confidence': self.confidence,
            'lift': self.lift,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AssociationRule':
        return cls(
            source_id=data['source_item_id'],
            source_name=data.get('source_name'),
            target_id=data['target_item_id'],
            target_name=data.get('target_name'),
            support=float(data['support']),
            confidence=float(data['confidence']),
            lift=float(data['lift']),
        )


@dataclass
class OptimizationRecommendation:
    ingredient_id: int
    recommendation_type: RecommendationType
    current_value: float
    recommended_value: float
    confidence: float = 0.8
    reason: Optional[str] = None
    ingredient_name: Optional[str] = None
    unit: Optional[str] = None
    unit_cost: Optional[float] = None
    status: RecommendationStatus = RecommendationStatus.PENDING
    recommendation_id: Optional[int] = None
    applied_by: Optional[str] = None
    applied_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def potential_savings(self) -> float:
        if self.recommendation_type != RecommendationType.REDUCE:
            return 0.0
        return (self.current_value - self.recommended_value) * (self.unit_cost or 0.0)

    @property
    def waste_reduction(self) -> float:
        """Units of stock no longer held if the recommendation is applied."""
        if self.recommendation_type != RecommendationType.REDUCE:
            return 0.0
        return self.current_value - self.recommended_value

    @property
    def waste_reduction_percent(self) -> float:
        if self.recommendation_type != RecommendationType.REDUCE or not self.current_value:
            return 0.0
        return self.waste_reduction / self.current_value * 100.0

    def mark_applied(self, applied_at: datetime, applied_by: Optional[str] = None):
        """Move the recommendation from pending to applied.

        Raises:
            ValidationError: If the recommendation was already applied
        """
        if self.status != RecommendationStatus.PENDING:
            raise ValidationError(
                f"Recommendation {self.recommendation_id} is already {self.status.value}",
                code='RECOMMENDATION_ALREADY_APPLIED'
            )
        self.status = RecommendationStatus.APPLIED
        self.applied_at = applied_at
        self.applied_by = applied_by

    def to_dict(self) -> Dict[str, Any]:
        return {
            'recommendation_id': self.recommendation_id,
            'ingredient_id': self.ingredient_id,
            'ingredient': {'name': self.ingredient_name or 'Unknown', 'unit': self.unit or 'unit'},
            'recommendation_type': self.recommendation_type.value,
            'current_value': self.current_value,
            'recommended_value': self.recommended_value,
            'confidence': self.confidence,
            'reason': self.reason,
            'unit_cost': self.unit_cost,
            'potential_savings': self.potential_savings,
            'waste_reduction_percent': self.waste_reduction_percent,
            'status': self.status.value,
            'applied_by': self.applied_by,
            'applied_at': self.applied_at.isoformat() if self.applied_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OptimizationRecommendation':
        ingredient = data.get('ingredient') or {}
        status = data.get('status') or data.get('implementation_status') or 'pending'
        return cls(
            recommendation_id=data.get('recommendation_id'),
            ingredient_id=data['ingredient_id'],
            recommendation_type=RecommendationType(data.get('recommendation_type') or data.get('type')),
            current_value=float(data.get('current_value', data.get('currentValue', 0.0))),
            recommended_value=float(data.get('recommended_value', data.get('recommendedValue', 0.0))),
            confidence=float(data.get('confidence', data.get('confidence_score', 0.8)) or 0.8),
            reason=data.get('reason'),
            ingredient_name=ingredient.get('name', data.get('ingredient_name')),
            unit=ingredient.get('unit', data.get('unit')),
            unit_cost=data.get('unit_cost'),
            status=RecommendationStatus(status),
            applied_by=data.get('applied_by'),
            applied_at=convert_to_datetime(data.get('applied_at')),
            created_at=convert_to_datetime(data.get('created_at')),
        )


@dataclass
class ForecastResult:
    """Answer handed back to a use case, whatever its provenance."""
    forecast_type: ForecastType
    resource_type: str
    resource_id: Optional[str]
    start_date: Optional[date]
    end_date: Optional[date]
    series: List[SeriesPoint] = field(default_factory=list)
    payload: List[Dict[str, Any]] = field(default_factory=list)
    accuracy: AccuracyMetrics = field(default_factory=AccuracyMetrics)
    cached: bool = False
    synthetic: bool = False
    created_at: Optional[datetime] = None
    model_id: Optional[int] = None
    notice: Optional[str] = None

    @classmethod
    def from_record(cls, record: ForecastRecord, cached: bool, synthetic: bool = False) -> 'ForecastResult':
        return cls(
            forecast_type=record.forecast_type,
            resource_type=record.resource_type,
            resource_id=record.resource_id,
            start_date=record.start_date,
            end_date=record.end_date,
            series=list(record.series),
            payload=list(record.payload),
            accuracy=record.accuracy_metrics,
            cached=cached,
            synthetic=synthetic,
            created_at=record.created_at,
            model_id=record.model_id,
            notice=ESTIMATED_DATA_NOTICE if synthetic else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'forecast_type': self.forecast_type.value,
            'resource_type': self.resource_type,
            'resource_id': self.resource_id,
            'start_date': self.start_date.isoformat() if self.start_date else None,
            'end_date': self.end_date.isoformat() if self.end_date else None,
            'forecast': [point.to_dict() for point in self.series],
            'payload': list(self.payload),
            'accuracy': self.accuracy.to_dict(),
            'cached': self.cached,
            'synthetic': self.synthetic,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'notice': self.notice,
        }
