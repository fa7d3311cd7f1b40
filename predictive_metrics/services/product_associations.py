# predictive_metrics/services/product_associations.py
from typing import Any, Dict, List, Optional

from predictive_metrics.logging_setup import get_logger
from predictive_metrics.schemas import AssociationRule, ForecastType, PredictionWindow
from predictive_metrics.services.prediction_service import PredictionService

logger = get_logger(__name__)

DEFAULT_MIN_SUPPORT = 0.01
DEFAULT_MIN_CONFIDENCE = 0.3


def filter_rules(
    rules: List[AssociationRule],
    min_support: float = DEFAULT_MIN_SUPPORT,
    min_confidence: float = DEFAULT_MIN_CONFIDENCE,
    item_id: Optional[int] = None
) -> List[AssociationRule]:
    """Keep rules meeting both thresholds, strongest lift first.

    Args:
        rules: Candidate rules
        min_support: Minimum support (inclusive)
        min_confidence: Minimum confidence (inclusive)
        item_id: Only keep rules involving this item

    Returns:
        Filtered rules sorted by descending lift
    """
    kept = [
        rule for rule in rules
        if rule.support >= min_support and rule.confidence >= min_confidence
    ]

    if item_id is not None:
        item = str(item_id)
        kept = [rule for rule in kept if item in (str(rule.source_id), str(rule.target_id))]

    return sorted(kept, key=lambda rule: (-rule.lift, -rule.confidence, -rule.support))


def threshold_resource_id(resource_id, min_support: float, min_confidence: float) -> str:
    """Cache resource id of a rule set mined with the given thresholds."""
    parts = [] if resource_id is None else [str(resource_id)]
    parts.append(f"support={float(min_support):g}")
    parts.append(f"confidence={float(min_confidence):g}")
    return ":".join(parts)


def summarize_rules(rules: List[AssociationRule], min_support: float, min_confidence: float) -> Dict[str, Any]:
    """Summary metrics of a rule set."""
    count = len(rules)
    return {
        'rule_count': count,
        'avg_confidence': round(sum(rule.confidence for rule in rules) / count, 4) if count else 0.0,
        'avg_lift': round(sum(rule.lift for rule in rules) / count, 4) if count else 0.0,
        'min_support': min_support,
        'min_confidence': min_confidence,
    }


class ProductAssociationService:
    """Market basket rules between menu items."""

    def __init__(self, prediction_service: PredictionService):
        self.prediction_service = prediction_service

    async def get_product_associations(
        self,
        min_support: float = DEFAULT_MIN_SUPPORT,
        min_confidence: float = DEFAULT_MIN_CONFIDENCE,
        item_id: Optional[int] = None,
        category: Optional[str] = None,
        force_refresh: bool = False,
        seed: Optional[int] = None
    ) -> Dict[str, Any]:
        """Get association rules meeting the support and confidence thresholds.

        Args:
            min_support: Minimum support (0..1)
            min_confidence: Minimum confidence (0..1)
            item_id: Restrict to rules involving one item
            category: Restrict mining to one category
            force_refresh: Bypass the cache
            seed: Seed of the synthetic fallback

        Returns:
            Dictionary with rules sorted by descending lift and summary metrics
        """
        resource_filter = {}
        if item_id is not None:
            resource_filter['item_id'] = item_id
        if category:
            resource_filter['category'] = category

        if item_id is not None:
            resource_type, resource_id = 'item', item_id
        elif category:
            resource_type, resource_id = 'category', category
        else:
            resource_type, resource_id = 'overall', None

        window = PredictionWindow(
            forecast_days=0,
            resource_filter=resource_filter or None,
            min_support=min_support,
            min_confidence=min_confidence,
            seed=seed,
        ).validate(ForecastType.ASSOCIATION)

        # A rule set mined with stricter thresholds cannot answer a broader request
        result = await self.prediction_service.get_forecast(
            ForecastType.ASSOCIATION,
            resource_type,
            threshold_resource_id(resource_id, min_support, min_confidence),
            window,
            force_refresh
        )

        rules = filter_rules(
            [AssociationRule.from_dict(entry) for entry in result.payload],
            min_support,
            min_confidence,
            item_id
        )
        logger.debug(f"{len(rules)} of {len(result.payload)} association rules kept")

        return {
            'rules': [rule.to_dict() for rule in rules],
            'metrics': summarize_rules(rules, min_support, min_confidence),
            'cached': result.cached,
            'synthetic': result.synthetic,
            'notice': result.notice,
        }
