from .client import DetranPortalClient, PortalCredentials
from .selectors import DetranSelectors

__all__ = [
    "DetranPortalClient",
    "PortalCredentials",
    "DetranSelectors",
]
