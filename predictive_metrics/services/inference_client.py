# predictive_metrics/services/inference_client.py
import json
from abc import ABC, abstractmethod
from typing import Any, Dict

from predictive_metrics.exceptions import InferenceError
from predictive_metrics.logging_setup import get_logger
from predictive_metrics.schemas import ForecastType

logger = get_logger(__name__)

# Edge functions answering each forecast type
FUNCTION_NAMES = {
    ForecastType.SALES: 'sales-forecasting',
    ForecastType.FINANCIAL: 'financial-metrics',
    ForecastType.INVENTORY_ANOMALY: 'detect-anomalies',
    ForecastType.ASSOCIATION: 'product-associations',
    ForecastType.INVENTORY_OPTIMIZATION: 'inventory-optimizations',
}


class InferenceBoundary(ABC):
    """External service returning raw prediction payloads."""

    @abstractmethod
    async def predict(self, forecast_type: ForecastType, request: Dict[str, Any]) -> Dict[str, Any]:
        """Run inference for a forecast type.

        Args:
            forecast_type: Forecast type requested
            request: Request body

        Returns:
            Raw response payload

        Raises:
            InferenceError: If the call fails for any reason
        """
        pass


class SupabaseFunctionsClient(InferenceBoundary):
    """Inference boundary backed by Supabase Edge Functions."""

    def __init__(self, client):
        """Initialize with an async Supabase client."""
        self.client = client

    async def predict(self, forecast_type, request):
        forecast_type = ForecastType.from_string(forecast_type)
        function_name = FUNCTION_NAMES[forecast_type]

        try:
            response = await self.client.functions.invoke(
                function_name,
                invoke_options={'body': request, 'responseType': 'json'}
            )
        except Exception as e:
            raise InferenceError(
                f"Edge function {function_name} failed: {str(e)}",
                code='INFERENCE_CALL_FAILED'
            )

        return self._parse_response(function_name, response)

    def _parse_response(self, function_name: str, response: Any) -> Dict[str, Any]:
        if isinstance(response, (bytes, bytearray)):
            response = response.decode('utf-8')

        if isinstance(response, str):
            try:
                response = json.loads(response)
            except ValueError:
                raise InferenceError(
                    f"Edge function {function_name} returned invalid JSON",
                    code='INFERENCE_BAD_RESPONSE'
                )

        if not isinstance(response, dict):
            raise InferenceError(
                f"Edge function {function_name} returned {type(response).__name__}, expected an object",
                code='INFERENCE_BAD_RESPONSE'
            )

        if response.get('error'):
            raise InferenceError(
                f"Edge function {function_name} reported: {response['error']}",
                code='INFERENCE_REMOTE_ERROR'
            )

        return response


class OfflineInference(InferenceBoundary):
    """Boundary used when no inference service is reachable; every call fails."""

    def __init__(self, reason: str = 'No inference service configured'):
        self.reason = reason

    async def predict(self, forecast_type, request):
        raise InferenceError(self.reason, code='INFERENCE_UNAVAILABLE')
