"""Errors raised by the tracking core and mapped to HTTP responses in app.py."""


class TrackingError(ValueError):
    """Base class for synchronous, caller-facing tracking failures."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidCoordinate(TrackingError):
    """Telemetry sample is missing a device id or has unparsable lat/lon."""


class InvalidQuery(TrackingError):
    """Search request is missing its departure or destination."""


class NotFound(TrackingError, LookupError):
    """No location has been recorded for the requested vehicle."""

    status_code = 404


__all__ = ["TrackingError", "InvalidCoordinate", "InvalidQuery", "NotFound"]
