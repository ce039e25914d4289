from .errors import (
    ConfigurationError,
    ContentTimeoutError,
    DetranLookupError,
    InputNotFoundError,
    NavigationError,
    PlateValidationError,
    SessionLimitError,
)
from .models import ConsultationResult, DebtCategory, DebtLineItem, VehicleRecord

__all__ = [
    "ConfigurationError",
    "ContentTimeoutError",
    "DetranLookupError",
    "InputNotFoundError",
    "NavigationError",
    "PlateValidationError",
    "SessionLimitError",
    "ConsultationResult",
    "DebtCategory",
    "DebtLineItem",
    "VehicleRecord",
]
