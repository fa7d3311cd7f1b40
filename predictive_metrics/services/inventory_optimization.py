# predictive_metrics/services/inventory_optimization.py
from typing import Any, Dict, List, Optional

from predictive_metrics.exceptions import NotFoundError
from predictive_metrics.logging_setup import get_logger
from predictive_metrics.schemas import (
    ForecastType, OptimizationRecommendation, PredictionWindow, RecommendationStatus
)
from predictive_metrics.services.prediction_service import PredictionService

logger = get_logger(__name__)


class InventoryOptimizationService:
    """Stock level recommendations and their pending -> applied lifecycle."""

    def __init__(self, prediction_service: PredictionService):
        self.prediction_service = prediction_service
        self.repository = prediction_service.repository

    async def get_inventory_optimizations(
        self,
        force_refresh: bool = False,
        seed: Optional[int] = None
    ) -> Dict[str, Any]:
        """Get the current recommendation set.

        Totals only count recommendations that are still pending.

        Args:
            force_refresh: Bypass the cache
            seed: Seed of the synthetic fallback

        Returns:
            Dictionary with recommendations, potential_savings and waste_reduction
        """
        result = await self.prediction_service.get_forecast(
            ForecastType.INVENTORY_OPTIMIZATION,
            'inventory',
            None,
            PredictionWindow(forecast_days=0, seed=seed),
            force_refresh
        )

        recommendations = [OptimizationRecommendation.from_dict(entry) for entry in result.payload]

        if not result.synthetic:
            await self._refresh_statuses(recommendations)

        pending = [rec for rec in recommendations if rec.status == RecommendationStatus.PENDING]

        return {
            'recommendations': [rec.to_dict() for rec in recommendations],
            'potential_savings': round(sum(rec.potential_savings for rec in pending), 2),
            'waste_reduction': round(sum(rec.waste_reduction for rec in pending), 2),
            'cached': result.cached,
            'synthetic': result.synthetic,
            'notice': result.notice,
        }

    async def _refresh_statuses(self, recommendations: List[OptimizationRecommendation]):
        """Overlay stored statuses on a cached recommendation set."""
        ids = [rec.recommendation_id for rec in recommendations if rec.recommendation_id is not None]
        if not ids:
            return

        try:
            statuses = await self.repository.recommendation_statuses(ids)
        except Exception as e:
            logger.warning(f"Could not read recommendation statuses: {str(e)}")
            return

        for rec in recommendations:
            if rec.recommendation_id in statuses:
                rec.status = statuses[rec.recommendation_id]

    async def apply_recommendation(self, recommendation_id: int, applied_by: Optional[str] = None) -> Dict[str, Any]:
        """Apply a pending recommendation to its ingredient.

        Args:
            recommendation_id: Stored recommendation id
            applied_by: User applying it

        Returns:
            The applied recommendation as a dictionary

        Raises:
            NotFoundError: If the recommendation does not exist
            ValidationError: If it was already applied
        """
        recommendation = await self.repository.get_recommendation(recommendation_id)
        if recommendation is None:
            raise NotFoundError(
                f"Recommendation {recommendation_id} not found",
                code='RECOMMENDATION_NOT_FOUND'
            )

        await self.repository.apply_recommendation(
            recommendation,
            applied_by=applied_by,
            applied_at=self.prediction_service.clock.now()
        )

        logger.info(
            f"Applied {recommendation.recommendation_type} recommendation {recommendation_id} "
            f"to ingredient {recommendation.ingredient_id}"
        )
        return recommendation.to_dict()
