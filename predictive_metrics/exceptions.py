class PredictiveMetricsError(Exception):
    """Base exception for the predictive metrics subsystem.

    Subclasses only differ by their default message.
    """

    default_message = "An error occurred in the predictive metrics subsystem"

    def __init__(self, message=None, code=None, details=None):
        """Initialize the exception.

        Args:
            message: Error message (defaults to the class default_message)
            code: Machine readable error code
            details: Additional error details
        """
        self.message = message or self.default_message
        self.code = code
        self.details = details
        super().__init__(self.message)

    def __str__(self):
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message

    def to_dict(self):
        """Convert the exception to a JSON-serializable dictionary."""
        error_dict = {
            'error': self.__class__.__name__,
            'message': self.message,
        }

        if self.code:
            error_dict['code'] = self.code

        if self.details:
            error_dict['details'] = self.details

        return error_dict


class ConfigError(PredictiveMetricsError):
    """Invalid or missing configuration."""
    default_message = "Configuration error"


class DatabaseError(PredictiveMetricsError):
    """Storage backend failure or malformed stored row."""
    default_message = "Database error"


class CacheReadError(DatabaseError):
    """A stored prediction could not be read; treated as a cache miss."""
    default_message = "Cache read error"


class PersistenceError(DatabaseError):
    """A computed prediction could not be stored; the result is still returned."""
    default_message = "Persistence error"


class InferenceError(PredictiveMetricsError):
    """The inference boundary failed or answered with an unusable payload."""
    default_message = "Inference error"


class InferenceTimeoutError(InferenceError):
    """The inference boundary missed its deadline."""
    default_message = "Inference call timed out"


class ValidationError(PredictiveMetricsError):
    """Malformed request parameters or an invalid state transition."""
    default_message = "Validation error"


class NotFoundError(PredictiveMetricsError):
    """A requested resource does not exist."""
    default_message = "Resource not found"
