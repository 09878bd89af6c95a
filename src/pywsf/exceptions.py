"""Custom exception hierarchy for pywsf."""

from __future__ import annotations


class WsfError(Exception):
    """Base exception for all pywsf errors."""


class WsfConfigError(WsfError):
    """Invalid or missing configuration."""


class WsfTransportError(WsfError):
    """Transport-level failure (network, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str = "",
    ) -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(message)


class WsfHttpError(WsfTransportError):
    """Upstream answered with a non-success HTTP status."""


class WsfTimeoutError(WsfTransportError):
    """No response arrived before the transport deadline."""


class WsfScriptLoadError(WsfTransportError):
    """The injected bridge script failed to load."""


class WsfApiError(WsfError):
    """Upstream returned an error envelope instead of data.

    The ferries API reports some validation failures as a 200 response
    carrying ``{"Message": "..."}`` rather than an HTTP error status.
    """

    def __init__(self, message: str, *, url: str = "") -> None:
        self.url = url
        super().__init__(message)
