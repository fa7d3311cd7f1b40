from typing import Optional

from predictive_metrics.config import config
from predictive_metrics.db.connection import DatabaseConnection
from predictive_metrics.exceptions import DatabaseError
from predictive_metrics.logging_setup import get_logger
from predictive_metrics.schemas import PredictionSettings
from predictive_metrics.utils.clock import Clock

from .forecast_repository import ForecastRepository
from .model_registry import ModelRegistry
from .inference_client import InferenceBoundary, SupabaseFunctionsClient, OfflineInference
from .prediction_service import PredictionService
from .sales_forecast import SalesForecastService
from .financial_forecast import FinancialForecastService
from .anomaly_detection import AnomalyDetectionService, classify_severity
from .inventory_optimization import InventoryOptimizationService
from .product_associations import ProductAssociationService, filter_rules

logger = get_logger(__name__)


async def create_inference_boundary(connection) -> InferenceBoundary:
    """Create the Supabase Edge Functions boundary, or an offline one without credentials."""
    supabase_connection = connection if connection.db_type == 'supabase' else DatabaseConnection('supabase')
    try:
        client = await supabase_connection.get_supabase()
    except DatabaseError as e:
        logger.warning(f"Inference boundary unavailable, predictions will be estimated: {str(e)}")
        return OfflineInference(str(e))

    return SupabaseFunctionsClient(client)


async def create_prediction_service(
    connection=None,
    inference: Optional[InferenceBoundary] = None,
    settings: Optional[PredictionSettings] = None,
    clock: Optional[Clock] = None
) -> PredictionService:
    """Wire a PredictionService from configuration.

    Args:
        connection: DatabaseConnection (defaults to the configured backend)
        inference: Inference boundary (defaults to Supabase Edge Functions)
        settings: Orchestrator settings (defaults to the configured ones)
        clock: Clock and random source

    Returns:
        Ready PredictionService
    """
    connection = connection or DatabaseConnection()
    settings = settings or config.prediction_settings
    clock = clock or Clock()

    interface = await connection.create_interface()

    if inference is None:
        if settings.development_mode:
            inference = OfflineInference('Development mode')
        else:
            inference = await create_inference_boundary(connection)

    return PredictionService(
        repository=ForecastRepository(interface, clock),
        registry=ModelRegistry(interface, clock),
        inference=inference,
        clock=clock,
        settings=settings
    )


__all__ = [
    'ForecastRepository',
    'ModelRegistry',
    'InferenceBoundary',
    'SupabaseFunctionsClient',
    'OfflineInference',
    'PredictionService',
    'SalesForecastService',
    'FinancialForecastService',
    'AnomalyDetectionService',
    'InventoryOptimizationService',
    'ProductAssociationService',
    'classify_severity',
    'filter_rules',
    'create_inference_boundary',
    'create_prediction_service'
]
