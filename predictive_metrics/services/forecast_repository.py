# predictive_metrics/services/forecast_repository.py
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from predictive_metrics.db.interface import DatabaseInterface
from predictive_metrics.exceptions import DatabaseError, NotFoundError, ValidationError
from predictive_metrics.logging_setup import get_logger
from predictive_metrics.schemas import (
    AccuracyMetrics, AnomalyRecord, ForecastRecord, ForecastType,
    OptimizationRecommendation, RecommendationStatus, RecommendationType,
    ResourceId, SeriesPoint, normalize_resource_id
)
from predictive_metrics.utils.clock import Clock
from predictive_metrics.utils.date_utils import convert_to_date, convert_to_datetime

logger = get_logger(__name__)

FORECASTS_TABLE = 'ml_forecasts'
ANOMALIES_TABLE = 'ml_anomalies'
ASSOCIATIONS_TABLE = 'ml_product_associations'
RECOMMENDATIONS_TABLE = 'ml_inventory_recommendations'
PREDICTIONS_TABLE = 'ml_predictions'
INGREDIENTS_TABLE = 'ingredients'


class ForecastRepository:
    """Owns every read and write of stored predictions.

    Forecast rows are append-only: a new refresh adds a row and readers only
    ever look at the newest row of a key.
    """

    def __init__(self, interface: DatabaseInterface, clock: Optional[Clock] = None):
        """Initialize the repository.

        Args:
            interface: Database interface
            clock: Clock used for timestamps
        """
        self.interface = interface
        self.clock = clock or Clock()

    async def find_latest(
        self,
        forecast_type: ForecastType,
        resource_type: str,
        resource_id: ResourceId = None
    ) -> Optional[ForecastRecord]:
        """Get the most recently created record for a key.

        Args:
            forecast_type: Forecast type
            resource_type: Resource scope
            resource_id: Optional resource id

        Returns:
            ForecastRecord or None
        """
        rows = await self.interface.query(
            FORECASTS_TABLE,
            filters={
                'forecast_type': ForecastType.from_string(forecast_type).value,
                'resource_type': resource_type,
                'resource_id': normalize_resource_id(resource_id),
            },
            order_by=['created_at', 'forecast_id'],
            descending=True,
            limit=1
        )

        if not rows:
            return None

        return self._row_to_record(rows[0])

    async def insert(self, record: ForecastRecord) -> int:
        """Append a record and the detail rows of its payload.

        Detail rows are written first so their ids land in the stored payload.
        If anything fails before the forecast row exists, the detail rows of
        this record are deleted again and older pending recommendations are
        left untouched.

        Args:
            record: Record to store; its id and created_at are filled in

        Returns:
            Id of the new forecast row
        """
        if record.created_at is None:
            record.created_at = self.clock.now()

        replaced_ids = []
        if record.forecast_type == ForecastType.INVENTORY_OPTIMIZATION:
            pending = await self.interface.query(
                RECOMMENDATIONS_TABLE,
                filters={'implementation_status': RecommendationStatus.PENDING.value}
            )
            replaced_ids = [row['recommendation_id'] for row in pending]

        written = []
        try:
            await self._insert_details(record, written)

            row = await self.interface.insert(FORECASTS_TABLE, {
                'model_id': record.model_id,
                'forecast_type': record.forecast_type.value,
                'resource_type': record.resource_type,
                'resource_id': normalize_resource_id(record.resource_id),
                'start_date': record.start_date,
                'end_date': record.end_date,
                'forecast_data': record.forecast_data(),
                'accuracy_metrics': record.accuracy_metrics.to_dict(),
                'created_at': record.created_at,
                'updated_at': record.created_at,
            })
        except DatabaseError:
            await self._discard_details(written)
            raise

        if replaced_ids:
            # A new recommendation set replaces every pending one
            await self.interface.delete(RECOMMENDATIONS_TABLE, filters={'recommendation_id': replaced_ids})

        record.id = row.get('forecast_id')
        logger.debug(f"Stored {record.forecast_type} forecast {record.id} for {record.key}")
        return record.id

    async def _discard_details(self, written: List[Tuple[str, str, Any]]):
        """Delete detail rows written for a record whose forecast row was not stored."""
        by_table = {}
        for table_name, id_column, row_id in written:
            if row_id is not None:
                by_table.setdefault((table_name, id_column), []).append(row_id)

        for (table_name, id_column), ids in by_table.items():
            await self.interface.delete(table_name, filters={id_column: ids})
            logger.warning(f"Discarded {len(ids)} {table_name} rows of an unstored forecast")

    async def _insert_details(self, record: ForecastRecord, written: List[Tuple[str, str, Any]]):
        """Write the per-entry tables of non-series payloads."""
        if record.forecast_type == ForecastType.INVENTORY_ANOMALY:
            for entry in record.payload:
                anomaly = AnomalyRecord.from_dict(entry)
                row = await self.interface.insert(ANOMALIES_TABLE, {
                    'anomaly_type': 'inventory',
                    'resource_type': 'ingredient',
                    'resource_id': anomaly.resource_id,
                    'detection_start': record.start_date,
                    'detection_end': record.end_date,
                    'anomaly_score': anomaly.anomaly_score,
                    'description': anomaly.description,
                    'is_confirmed': anomaly.is_confirmed,
                    'is_false_positive': anomaly.is_false_positive,
                    'created_at': record.created_at,
                })
                entry['anomaly_id'] = row.get('anomaly_id')
                written.append((ANOMALIES_TABLE, 'anomaly_id', entry['anomaly_id']))

        elif record.forecast_type == ForecastType.ASSOCIATION:
            for entry in record.payload:
                row = await self.interface.insert(ASSOCIATIONS_TABLE, {
                    'antecedent_item_id': entry['source_item_id'],
                    'consequent_item_id': entry['target_item_id'],
                    'antecedent_name': entry.get('source_name'),
                    'consequent_name': entry.get('target_name'),
                    'support': entry['support'],
                    'confidence': entry['confidence'],
                    'lift': entry['lift'],
                    'created_at': record.created_at,
                })
                written.append((ASSOCIATIONS_TABLE, 'association_id', row.get('association_id')))

        elif record.forecast_type == ForecastType.INVENTORY_OPTIMIZATION:
            for entry in record.payload:
                recommendation = OptimizationRecommendation.from_dict(entry)
                row = await self.interface.insert(RECOMMENDATIONS_TABLE, {
                    'ingredient_id': recommendation.ingredient_id,
                    'recommendation_type': recommendation.recommendation_type.value,
                    'current_value': recommendation.current_value,
                    'recommended_value': recommendation.recommended_value,
                    'potential_savings': recommendation.potential_savings,
                    'waste_reduction_percent': recommendation.waste_reduction_percent,
                    'confidence_score': recommendation.confidence,
                    'reason': recommendation.reason,
                    'implementation_status': RecommendationStatus.PENDING.value,
                    'created_at': record.created_at,
                    'updated_at': record.created_at,
                })
                entry['recommendation_id'] = row.get('recommendation_id')
                written.append((RECOMMENDATIONS_TABLE, 'recommendation_id', entry['recommendation_id']))

    async def purge_older_than(self, forecast_type: ForecastType, age: timedelta) -> int:
        """Delete records of a type older than age, keeping each key's current row.

        Args:
            forecast_type: Forecast type to purge
            age: Maximum age of a kept row

        Returns:
            Number of forecast rows deleted
        """
        forecast_type = ForecastType.from_string(forecast_type)
        cutoff = self.clock.now() - age

        rows = await self.interface.query(
            FORECASTS_TABLE,
            filters={'forecast_type': forecast_type.value},
            order_by=['created_at', 'forecast_id'],
            descending=True
        )

        current_ids = {}
        stale_ids = []
        for row in rows:
            key = (row.get('resource_type'), row.get('resource_id'))
            if key not in current_ids:
                current_ids[key] = row['forecast_id']
                continue
            created_at = convert_to_datetime(row.get('created_at'))
            if created_at is not None and created_at < cutoff:
                stale_ids.append(row['forecast_id'])

        deleted = 0
        if stale_ids:
            deleted = await self.interface.delete(FORECASTS_TABLE, filters={'forecast_id': stale_ids})

        if forecast_type == ForecastType.ASSOCIATION:
            exclude = None
            if rows:
                exclude = {'created_at': convert_to_datetime(rows[0].get('created_at'))}
            details = await self.interface.delete(
                ASSOCIATIONS_TABLE,
                less_than={'created_at': cutoff},
                exclude=exclude
            )
            logger.debug(f"Purged {details} association rows older than {cutoff}")

        if deleted:
            logger.info(f"Purged {deleted} {forecast_type} forecasts older than {cutoff}")

        return deleted

    async def log_prediction(
        self,
        record: ForecastRecord,
        request: Dict[str, Any],
        model_id: Optional[int] = None
    ) -> Optional[int]:
        """Add an entry to the audit log of successful inference calls."""
        row = await self.interface.insert(PREDICTIONS_TABLE, {
            'model_id': model_id if model_id is not None else record.model_id,
            'prediction_type': record.forecast_type.value,
            'prediction_date': record.created_at or self.clock.now(),
            'prediction_data': {
                'request': request,
                'forecast_id': record.id,
                'resource_type': record.resource_type,
                'resource_id': normalize_resource_id(record.resource_id),
            },
            'accuracy': record.accuracy_metrics.overall_accuracy,
        })
        return row.get('prediction_id')

    async def get_recommendation(self, recommendation_id: int) -> Optional[OptimizationRecommendation]:
        """Get a stored recommendation with its ingredient details."""
        rows = await self.interface.query(
            RECOMMENDATIONS_TABLE,
            filters={'recommendation_id': recommendation_id},
            limit=1
        )
        if not rows:
            return None

        row = rows[0]
        ingredients = await self.interface.query(
            INGREDIENTS_TABLE,
            filters={'ingredient_id': row['ingredient_id']},
            limit=1
        )
        return self._row_to_recommendation(row, ingredients[0] if ingredients else None)

    async def recommendation_statuses(self, recommendation_ids: List[int]) -> Dict[int, RecommendationStatus]:
        """Get the current status of stored recommendations by id."""
        if not recommendation_ids:
            return {}

        rows = await self.interface.query(
            RECOMMENDATIONS_TABLE,
            filters={'recommendation_id': list(recommendation_ids)}
        )
        return {
            row['recommendation_id']: RecommendationStatus(row['implementation_status'])
            for row in rows
        }

    async def apply_recommendation(
        self,
        recommendation: OptimizationRecommendation,
        applied_by: Optional[str] = None,
        applied_at: Optional[datetime] = None
    ) -> OptimizationRecommendation:
        """Apply a pending recommendation to its ingredient.

        Args:
            recommendation: Stored recommendation
            applied_by: User applying it
            applied_at: Timestamp of the change

        Returns:
            The recommendation, now applied

        Raises:
            ValidationError: If it was already applied
            NotFoundError: If the row disappeared
        """
        applied_at = applied_at or self.clock.now()
        recommendation.mark_applied(applied_at, applied_by)

        updated = await self.interface.update(
            RECOMMENDATIONS_TABLE,
            {
                'implementation_status': RecommendationStatus.APPLIED.value,
                'applied_by': applied_by,
                'applied_at': applied_at,
                'updated_at': applied_at,
            },
            {
                'recommendation_id': recommendation.recommendation_id,
                'implementation_status': RecommendationStatus.PENDING.value,
            }
        )

        if not updated:
            current = await self.get_recommendation(recommendation.recommendation_id)
            if current is None:
                raise NotFoundError(
                    f"Recommendation {recommendation.recommendation_id} not found",
                    code='RECOMMENDATION_NOT_FOUND'
                )
            raise ValidationError(
                f"Recommendation {recommendation.recommendation_id} is already {current.status.value}",
                code='RECOMMENDATION_ALREADY_APPLIED'
            )

        column = (
            'minimum_quantity'
            if recommendation.recommendation_type == RecommendationType.ADJUST_MIN
            else 'quantity'
        )
        changed = await self.interface.update(
            INGREDIENTS_TABLE,
            {column: recommendation.recommended_value, 'updated_at': applied_at},
            {'ingredient_id': recommendation.ingredient_id}
        )
        if not changed:
            logger.warning(
                f"Recommendation {recommendation.recommendation_id} applied but ingredient "
                f"{recommendation.ingredient_id} was not found"
            )

        return recommendation

    def _row_to_record(self, row: Dict[str, Any]) -> ForecastRecord:
        """Convert a forecast row to a ForecastRecord.

        Raises:
            DatabaseError: If the row cannot be decoded
        """
        try:
            forecast_type = ForecastType.from_string(row['forecast_type'])
            data = row.get('forecast_data') or []

            record = ForecastRecord(
                id=row.get('forecast_id'),
                forecast_type=forecast_type,
                resource_type=row.get('resource_type'),
                resource_id=normalize_resource_id(row.get('resource_id')),
                start_date=convert_to_date(row.get('start_date')),
                end_date=convert_to_date(row.get('end_date')),
                accuracy_metrics=AccuracyMetrics.from_dict(row.get('accuracy_metrics')),
                model_id=row.get('model_id'),
                created_at=convert_to_datetime(row.get('created_at')),
            )

            if forecast_type.has_series:
                record.series = [SeriesPoint.from_dict(point) for point in data]
            else:
                record.payload = [dict(entry) for entry in data]
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            raise DatabaseError(
                f"Malformed forecast row {row.get('forecast_id')}: {str(e)}",
                code='MALFORMED_FORECAST'
            )

        return record

    def _row_to_recommendation(
        self,
        row: Dict[str, Any],
        ingredient: Optional[Dict[str, Any]] = None
    ) -> OptimizationRecommendation:
        ingredient = ingredient or {}
        return OptimizationRecommendation(
            recommendation_id=row['recommendation_id'],
            ingredient_id=row['ingredient_id'],
            recommendation_type=RecommendationType(row['recommendation_type']),
            current_value=float(row.get('current_value') or 0.0),
            recommended_value=float(row.get('recommended_value') or 0.0),
            confidence=float(row.get('confidence_score') or 0.8),
            reason=row.get('reason'),
            ingredient_name=ingredient.get('name'),
            unit=ingredient.get('unit'),
            unit_cost=ingredient.get('unit_cost'),
            status=RecommendationStatus(row.get('implementation_status') or 'pending'),
            applied_by=row.get('applied_by'),
            applied_at=convert_to_datetime(row.get('applied_at')),
            created_at=convert_to_datetime(row.get('created_at')),
        )
