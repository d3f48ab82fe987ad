"""
Custom error classes for RP Conseil Hub.
Structured error handling with error codes for the outer surfaces
(data store, webhooks, API). The analytics core never raises these for
malformed rows: it degrades to zeroed values instead.

Hierarchy:
    HubError
    ├── APIError
    │   └── WebhookError
    ├── AuthError
    │   └── InvalidCredentialError
    ├── DataError
    │   ├── ConfigError
    │   ├── DataFetchError
    │   ├── DataWriteError
    │   └── RecordNotFoundError
    └── SimulationError
"""


class HubError(Exception):
    """Base exception for all RP Conseil Hub errors."""

    def __init__(self, message: str, code: str = "UNKNOWN", details: dict = None):
        self.code = code
        self.details = details or {}
        super().__init__(f"[{code}] {message}")


# --- API Errors ---

class APIError(HubError):
    """Base class for external API errors."""

    def __init__(self, message: str, code: str = "API_ERROR",
                 status_code: int = None, url: str = None, **kwargs):
        self.status_code = status_code
        self.url = url
        details = {"status_code": status_code, "url": url, **kwargs}
        super().__init__(message, code=code, details=details)


class WebhookError(APIError):
    """Simulation or render webhook unavailable or failing."""

    def __init__(self, message: str, url: str = None, status_code: int = None):
        super().__init__(
            message, code="WEBHOOK_FAILED", url=url, status_code=status_code,
        )


# --- Auth Errors ---

class AuthError(HubError):
    """Base class for shared-secret failures."""
    pass


class InvalidCredentialError(AuthError):
    """The shared dashboard password is missing or wrong."""

    def __init__(self, message: str = "Invalid dashboard password"):
        super().__init__(message, code="AUTH_INVALID")


# --- Data Errors ---

class DataError(HubError):
    """Base class for data store errors."""
    pass


class ConfigError(DataError):
    """Missing or invalid configuration."""

    def __init__(self, message: str, setting: str = None):
        super().__init__(
            message, code="CONFIG_ERROR",
            details={"setting": setting},
        )


class DataFetchError(DataError):
    """Failed to fetch or load data from storage."""

    def __init__(self, message: str, source: str = None):
        super().__init__(
            message, code="DATA_FETCH_FAILED", details={"source": source},
        )


class DataWriteError(DataError):
    """Failed to update or delete a record in storage."""

    def __init__(self, message: str, table: str = None, record_id=None):
        super().__init__(
            message, code="DATA_WRITE_FAILED",
            details={"table": table, "record_id": record_id},
        )


class RecordNotFoundError(DataError):
    """Requested record does not exist."""

    def __init__(self, table: str, record_id):
        super().__init__(
            f"No record {record_id!r} in {table}", code="NOT_FOUND",
            details={"table": table, "record_id": record_id},
        )


# --- Simulator Errors ---

class SimulationError(HubError):
    """Invalid N+1 simulator input."""

    def __init__(self, message: str, field: str = None, value=None):
        super().__init__(
            message, code="SIMULATION_INVALID",
            details={"field": field, "value": value},
        )
