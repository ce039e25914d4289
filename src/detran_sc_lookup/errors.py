from __future__ import annotations


class DetranLookupError(RuntimeError):
    """Base class for failures that abort a plate consultation."""


class PlateValidationError(DetranLookupError, ValueError):
    """
    Raised when the queried plate is absent or malformed.

    Always raised before any browser work starts.
    """


class ConfigurationError(DetranLookupError):
    """Raised when DetranNet credentials (DETRAN_USER / DETRAN_PASS) are missing or config is invalid."""


class NavigationError(DetranLookupError):
    """
    Raised when the DetranNet main frameset cannot be loaded: the host is unreachable, basic-auth
    credentials are rejected, or the main document returns a non-success status.
    """


class ContentTimeoutError(NavigationError):
    """Raised when no frame showed a conclusive result page in time (only with fail_on_content_timeout)."""


class InputNotFoundError(DetranLookupError):
    """
    Raised when no frame exposes the plate input.

    This means the upstream page structure changed; it is distinct from a plate that is simply
    not registered in DetranNet SC (which is a normal result with found_in_source=False).
    """


class SessionLimitError(DetranLookupError):
    """Raised when no browser session slot became free within the configured wait."""
