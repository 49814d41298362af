"""Exceptions raised by the connector."""


class UnauthorizedError(Exception):
    """Raised when an inbound event cannot be authenticated."""
    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


class UnsupportedAggregationModeError(Exception):
    """Raised when a customer asks for a bank connection mode we cannot serve."""
    def __init__(self, mode: object):
        self.mode = mode
        super().__init__(f"Invalid bank connection mode {mode}")


class UpstreamApiError(Exception):
    """Raised when an upstream HTTP API returns an error."""

    service = "upstream"

    def __init__(self, status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"{self.service} API error {status_code}: {detail}")


class AlgoanApiError(UpstreamApiError):
    """Raised when the Algoan API returns an error."""

    service = "Algoan"


class BridgeApiError(UpstreamApiError):
    """Raised when the Bridge API returns an error."""

    service = "Bridge"
