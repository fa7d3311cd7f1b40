# predictive_metrics/services/prediction_service.py
import asyncio
from datetime import timedelta
from typing import Any, Dict, List, Optional

from predictive_metrics.core.staleness import is_fresh
from predictive_metrics.core.synthetic_forecast import SyntheticForecastGenerator
from predictive_metrics.exceptions import (
    CacheReadError, InferenceError, InferenceTimeoutError, PersistenceError,
    ValidationError
)
from predictive_metrics.logging_setup import get_logger, logger as log_manager
from predictive_metrics.schemas import (
    AccuracyMetrics, AnomalyRecord, AssociationRule, CacheKey, ForecastRecord,
    ForecastResult, ForecastType, OptimizationRecommendation, PredictionSettings,
    PredictionWindow, ResourceId, SeriesPoint, make_cache_key, normalize_resource_id
)
from predictive_metrics.services.forecast_repository import ForecastRepository
from predictive_metrics.services.inference_client import InferenceBoundary
from predictive_metrics.services.model_registry import ModelRegistry
from predictive_metrics.utils.clock import Clock
from predictive_metrics.utils.math_utils import accuracy_from_mape

logger = get_logger(__name__)

# Used when the inference boundary omits accuracy figures
DEFAULT_ACCURACY = {'mape': 15.0, 'rmse': 500.0, 'r_squared': 0.75}

FINANCIAL_EXTRAS = (
    ('revenue_trends', 'revenueTrends'),
    ('cost_trends', 'costTrends'),
    ('confidence_intervals', 'confidenceIntervals'),
)


def _split_description(description: str):
    """Split 'reason for "name"' back into its parts."""
    if '"' not in description:
        return description, None
    parts = description.split('"')
    reason = parts[0].rsplit(' for ', 1)[0].strip()
    return reason or description, parts[1] or None


class PredictionService:
    """Answers every prediction request: cache, inference, fallback.

    Stored records fresher than the staleness window are served as they are.
    Otherwise the inference boundary is called; its result is stored and
    returned. Any inference failure yields a synthetic result that is never
    stored. Concurrent refreshes of one key share a single inference call.
    """

    def __init__(
        self,
        repository: ForecastRepository,
        registry: ModelRegistry,
        inference: InferenceBoundary,
        generator: Optional[SyntheticForecastGenerator] = None,
        clock: Optional[Clock] = None,
        settings: Optional[PredictionSettings] = None
    ):
        """Initialize the prediction service.

        Args:
            repository: Forecast repository
            registry: Model registry
            inference: Inference boundary
            generator: Synthetic forecast generator
            clock: Clock and random source
            settings: Orchestrator settings
        """
        self.repository = repository
        self.registry = registry
        self.inference = inference
        self.clock = clock or Clock()
        self.generator = generator or SyntheticForecastGenerator(self.clock)
        self.settings = settings or PredictionSettings()
        self._in_flight: Dict[CacheKey, asyncio.Task] = {}

    async def get_forecast(
        self,
        forecast_type: ForecastType,
        resource_type: str,
        resource_id: ResourceId = None,
        window: Optional[PredictionWindow] = None,
        force_refresh: bool = False
    ) -> ForecastResult:
        """Get a prediction for a key.

        Args:
            forecast_type: Forecast type
            resource_type: Resource scope
            resource_id: Optional resource id
            window: Request window
            force_refresh: Bypass the cache

        Returns:
            ForecastResult tagged with its provenance

        Raises:
            ValidationError: If the request is malformed
        """
        forecast_type = ForecastType.from_string(forecast_type)
        window = (window or PredictionWindow()).validate(forecast_type)
        resource_id = normalize_resource_id(resource_id)

        if self.settings.development_mode:
            logger.debug(f"Development mode: synthetic {forecast_type} data for {resource_type}")
            return self._synthetic_result(forecast_type, resource_type, resource_id, window)

        record = await self._read_cache(forecast_type, resource_type, resource_id)
        if is_fresh(record, force_refresh, self.clock.now(), self.settings.staleness_window_hours):
            logger.debug(f"Cache hit for {record.key} created at {record.created_at}")
            return ForecastResult.from_record(record, cached=True)

        key = make_cache_key(forecast_type, resource_type, resource_id)
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._refresh(forecast_type, resource_type, resource_id, window))
            self._in_flight[key] = task
            task.add_done_callback(lambda done, key=key: self._release(key, done))
        else:
            logger.debug(f"Joining in-flight refresh for {key}")

        # Callers that give up do not cancel the shared refresh
        return await asyncio.shield(task)

    def _release(self, key: CacheKey, task: asyncio.Task):
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    async def _read_cache(self, forecast_type, resource_type, resource_id) -> Optional[ForecastRecord]:
        """Read the current record; read failures count as a miss."""
        try:
            return await self.repository.find_latest(forecast_type, resource_type, resource_id)
        except Exception as e:
            error = CacheReadError(
                f"Could not read cached {forecast_type} for {resource_type}/{resource_id}: {str(e)}"
            )
            logger.warning(str(error))
            return None

    async def _refresh(
        self,
        forecast_type: ForecastType,
        resource_type: str,
        resource_id: Optional[str],
        window: PredictionWindow
    ) -> ForecastResult:
        key = make_cache_key(forecast_type, resource_type, resource_id)
        request = window.to_request(forecast_type)
        log_info = log_manager.refresh_start_log(forecast_type.value, key, request)

        try:
            response = await self._call_inference(forecast_type, request)
            record = self.normalize_response(forecast_type, resource_type, resource_id, window, response)
        except InferenceError as e:
            logger.warning(f"Falling back to synthetic data for {key}: {str(e)}")
            result = self._synthetic_result(forecast_type, resource_type, resource_id, window)
            log_manager.refresh_end_log(log_info, 'synthetic')
            return result

        await self._persist(record, window, request)

        log_manager.refresh_end_log(log_info, 'inference', {
            'forecast_id': record.id,
            'points': len(record.series),
            'entries': len(record.payload),
        })
        return ForecastResult.from_record(record, cached=False)

    async def _call_inference(self, forecast_type: ForecastType, request: Dict[str, Any]) -> Dict[str, Any]:
        """Call the inference boundary under the configured deadline.

        Raises:
            InferenceError: For any failure, including a missed deadline
        """
        timeout = self.settings.inference_timeout_seconds

        try:
            if timeout:
                return await asyncio.wait_for(self.inference.predict(forecast_type, request), timeout)
            return await self.inference.predict(forecast_type, request)
        except asyncio.TimeoutError:
            raise InferenceTimeoutError(
                f"{forecast_type} inference exceeded {timeout} seconds",
                code='INFERENCE_TIMEOUT'
            )
        except InferenceError:
            raise
        except Exception as e:
            raise InferenceError(f"{forecast_type} inference failed: {str(e)}")

    async def _persist(self, record: ForecastRecord, window: PredictionWindow, request: Dict[str, Any]):
        """Store a successful inference result.

        Failures are logged and swallowed; the caller still gets the result.
        """
        try:
            model = await self.registry.upsert_active(
                record.forecast_type,
                last_trained=record.created_at,
                accuracy=record.accuracy_metrics.overall_accuracy,
                parameters=self._model_parameters(record.forecast_type, window)
            )
            record.model_id = model.model_id
            await self.repository.insert(record)
        except Exception as e:
            error = PersistenceError(f"Computed {record.forecast_type} result was not cached: {str(e)}")
            logger.warning(str(error))
            return

        try:
            if record.accuracy_metrics.feature_importance:
                await self.registry.replace_feature_importance(model, record.accuracy_metrics.feature_importance)
            await self.repository.log_prediction(record, request, model_id=model.model_id)
        except Exception as e:
            logger.warning(f"Could not record model details for {record.key}: {str(e)}")

        retention = self.settings.association_retention_days
        if record.forecast_type == ForecastType.ASSOCIATION and retention:
            try:
                await self.repository.purge_older_than(record.forecast_type, timedelta(days=retention))
            except Exception as e:
                logger.warning(f"Could not purge old associations: {str(e)}")

    def _model_parameters(self, forecast_type: ForecastType, window: PredictionWindow) -> Dict[str, Any]:
        if forecast_type.has_series:
            return {'forecast_days': window.forecast_days}
        if forecast_type == ForecastType.INVENTORY_ANOMALY:
            return {'sensitivity': window.sensitivity or 'medium'}
        if forecast_type == ForecastType.ASSOCIATION:
            return {'min_support': window.min_support, 'min_confidence': window.min_confidence}
        return {}

    def _synthetic_result(self, forecast_type, resource_type, resource_id, window) -> ForecastResult:
        record = self.generator.generate(forecast_type, resource_type, resource_id, window)
        return ForecastResult.from_record(record, cached=False, synthetic=True)

    def normalize_response(
        self,
        forecast_type: ForecastType,
        resource_type: str,
        resource_id: Optional[str],
        window: PredictionWindow,
        response: Dict[str, Any]
    ) -> ForecastRecord:
        """Turn a raw inference payload into a ForecastRecord.

        Raises:
            InferenceError: If the payload does not have the expected shape
        """
        record = ForecastRecord(
            forecast_type=forecast_type,
            resource_type=resource_type,
            resource_id=resource_id,
            start_date=window.start_date,
            end_date=window.end_date,
            created_at=self.clock.now(),
        )

        try:
            if forecast_type.has_series:
                self._normalize_series(record, response)
            elif forecast_type == ForecastType.INVENTORY_ANOMALY:
                record.payload = self._normalize_anomalies(response)
            elif forecast_type == ForecastType.ASSOCIATION:
                record.payload = self._normalize_rules(response)
            else:
                record.payload = self._normalize_recommendations(response)
        except (KeyError, TypeError, ValueError, AttributeError, ValidationError) as e:
            raise InferenceError(
                f"Malformed {forecast_type} response: {str(e)}",
                code='INFERENCE_BAD_RESPONSE'
            )

        return record

    def _normalize_series(self, record: ForecastRecord, response: Dict[str, Any]):
        points = response.get('series') or response.get('forecast')

        if points is None and response.get('profitPrediction'):
            profit = response['profitPrediction']
            points = [
                {'date': day, 'prediction': value, 'lower_bound': lower, 'upper_bound': upper}
                for day, value, lower, upper in zip(
                    profit['dates'], profit['values'], profit['lowerBound'], profit['upperBound']
                )
            ]

        if not points:
            raise ValueError('response has no series')

        series = sorted((SeriesPoint.from_dict(point) for point in points), key=lambda point: point.date)
        record.series = series
        record.start_date = series[0].date
        record.end_date = series[-1].date
        record.validate_series()

        raw_accuracy = dict(DEFAULT_ACCURACY)
        raw_accuracy.update({k: v for k, v in (response.get('accuracy') or {}).items() if v is not None})
        accuracy = AccuracyMetrics.from_dict(raw_accuracy)
        if accuracy.overall_accuracy is None:
            accuracy.overall_accuracy = round(accuracy_from_mape(accuracy.mape), 2)

        features = response.get('feature_importance') or response.get('featureImportance')
        if features:
            accuracy.feature_importance = [
                {'feature': entry['feature'], 'importance': entry['importance']} for entry in features
            ]

        for name, alias in FINANCIAL_EXTRAS:
            value = response.get(name, response.get(alias))
            if value is not None:
                accuracy.extras[name] = value

        record.accuracy_metrics = accuracy

    def _normalize_anomalies(self, response: Dict[str, Any]) -> List[Dict[str, Any]]:
        anomalies = []
        for item in response.get('anomalies') or []:
            item = dict(item)
            if 'resource_id' in item and 'ingredient_id' not in item:
                item['ingredient_id'] = item['resource_id']
            if item.get('description') and not item.get('reason'):
                item['reason'], name = _split_description(item['description'])
                item.setdefault('name', name)
            anomalies.append(AnomalyRecord.from_dict(item).to_dict())

        anomalies.sort(key=lambda entry: entry['anomaly_score'], reverse=True)
        return anomalies

    def _normalize_rules(self, response: Dict[str, Any]) -> List[Dict[str, Any]]:
        rules = []
        for item in response.get('rules') or []:
            if 'targets' not in item:
                rules.append(AssociationRule.from_dict(item).to_dict())
                continue

            source_id = item.get('source_id', item.get('source'))
            for target in item['targets']:
                rules.append(AssociationRule(
                    source_id=source_id,
                    source_name=item.get('source_name'),
                    target_id=target.get('target_id', target.get('target')),
                    target_name=target.get('target_name', target.get('name')),
                    support=float(target['support']),
                    confidence=float(target['confidence']),
                    lift=float(target['lift']),
                ).to_dict())
        return rules

    def _normalize_recommendations(self, response: Dict[str, Any]) -> List[Dict[str, Any]]:
        return [
            OptimizationRecommendation.from_dict(item).to_dict()
            for item in response.get('recommendations') or []
        ]
