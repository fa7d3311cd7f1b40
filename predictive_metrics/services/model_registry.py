# predictive_metrics/services/model_registry.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from predictive_metrics.db.interface import DatabaseInterface
from predictive_metrics.logging_setup import get_logger
from predictive_metrics.schemas import ForecastType, ModelRecord
from predictive_metrics.utils.clock import Clock

logger = get_logger(__name__)

MODELS_TABLE = 'ml_models'
FEATURE_IMPORTANCE_TABLE = 'ml_feature_importance'

MODEL_NAMES = {
    ForecastType.SALES: 'Sales Forecast',
    ForecastType.FINANCIAL: 'Financial Forecasting Model',
    ForecastType.INVENTORY_ANOMALY: 'Inventory Anomaly Detector',
    ForecastType.ASSOCIATION: 'Product Association Miner',
    ForecastType.INVENTORY_OPTIMIZATION: 'Inventory Optimization Recommender',
}


class ModelRegistry:
    """Tracks one active model descriptor per forecast type."""

    def __init__(self, interface: DatabaseInterface, clock: Optional[Clock] = None):
        """Initialize the registry.

        Args:
            interface: Database interface
            clock: Clock used for timestamps
        """
        self.interface = interface
        self.clock = clock or Clock()

    async def get_active(self, model_type: ForecastType) -> Optional[ModelRecord]:
        """Get the active model of a type, if any."""
        model_type = ForecastType.from_string(model_type)
        rows = await self.interface.query(
            MODELS_TABLE,
            filters={'model_type': model_type.value, 'is_active': True},
            order_by=['updated_at', 'model_id'],
            descending=True,
            limit=1
        )
        return ModelRecord.from_row(rows[0]) if rows else None

    async def upsert_active(
        self,
        model_type: ForecastType,
        last_trained: datetime,
        accuracy: Optional[float],
        parameters: Optional[Dict[str, Any]] = None
    ) -> ModelRecord:
        """Update the active model of a type, creating it on first use.

        The active row is always looked up first so a second active row is
        never inserted.

        Args:
            model_type: Forecast type of the model
            last_trained: Time of the successful inference
            accuracy: Accuracy in percent (0..100)
            parameters: Model parameters

        Returns:
            The active ModelRecord
        """
        model_type = ForecastType.from_string(model_type)
        now = self.clock.now()
        parameters = dict(parameters or {})

        active = await self.get_active(model_type)

        if active is not None:
            await self.interface.update(
                MODELS_TABLE,
                {
                    'last_trained': last_trained,
                    'accuracy': accuracy,
                    'parameters': parameters,
                    'updated_at': now,
                },
                {'model_id': active.model_id}
            )
            active.last_trained = last_trained
            active.accuracy = accuracy
            active.parameters = parameters
            active.updated_at = now
            logger.debug(f"Updated active {model_type} model {active.model_id}")
            return active

        row = await self.interface.insert(MODELS_TABLE, {
            'model_name': MODEL_NAMES[model_type],
            'model_type': model_type.value,
            'is_active': True,
            'last_trained': last_trained,
            'accuracy': accuracy,
            'parameters': parameters,
            'created_at': now,
            'updated_at': now,
        })
        logger.info(f"Registered {model_type} model {row.get('model_id')}")

        return ModelRecord(
            model_id=row.get('model_id'),
            model_type=model_type,
            model_name=MODEL_NAMES[model_type],
            is_active=True,
            last_trained=last_trained,
            accuracy=accuracy,
            parameters=parameters,
            created_at=now,
            updated_at=now,
        )

    async def replace_feature_importance(self, model: ModelRecord, features: List[Dict[str, Any]]) -> int:
        """Replace the stored feature importance of a model.

        Args:
            model: Active model
            features: List of {feature, importance} entries

        Returns:
            Number of rows written
        """
        if model.model_id is None or not features:
            return 0

        await self.interface.delete(FEATURE_IMPORTANCE_TABLE, filters={'model_id': model.model_id})

        now = self.clock.now()
        for entry in features:
            await self.interface.insert(FEATURE_IMPORTANCE_TABLE, {
                'model_id': model.model_id,
                'model_type': model.model_type.value,
                'feature_name': entry['feature'],
                'importance_score': entry['importance'],
                'created_at': now,
            })

        return len(features)
