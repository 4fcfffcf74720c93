class ProviderError(Exception):
    def __init__(self, message, status_code=502, details=None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details or {}


class ConfigurationError(ProviderError):
    def __init__(self, message, details=None):
        super().__init__(message, status_code=500, details=details)


class UpstreamAuthError(ProviderError):
    """Token issuance was rejected or could not be completed."""

    def __init__(self, message, upstream_status=None, body=""):
        super().__init__(
            message,
            status_code=500,
            details={"upstreamStatus": upstream_status, "body": body},
        )
        self.upstream_status = upstream_status
        self.body = body


class UpstreamSearchError(ProviderError):
    """The search endpoint answered with a non-success status.

    ``status_code`` is the upstream status, surfaced to the caller as-is.
    """

    def __init__(self, message, status_code, body=""):
        super().__init__(message, status_code=status_code, details={"body": body})
        self.body = body


class FlightProvider:
    name = "base"

    def search_flights(self, params):
        """
        Returns {"offers": [...], "meta": {...}} for validated search params.
        """
        raise NotImplementedError
