"""Error taxonomy for the integration posting service.

Item-level errors (mapping and external call failures) are recovered by the
sync dispatcher and recorded on the queue item. Request-level errors
(conflicts, invalid state, missing records) propagate to the API layer and
become HTTP error responses.
"""


class IntegrationError(Exception):
    """Base class for all posting service errors."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(IntegrationError):
    """Invalid or missing configuration."""
    status_code = 500


class NotFoundError(IntegrationError):
    """Connection or queue item does not exist (or belongs to another tenant)."""
    status_code = 404


class ConflictError(IntegrationError):
    """An active connection of this type already exists for the tenant."""
    status_code = 409


class InvalidStateError(IntegrationError):
    """Operation not allowed in the item's current status."""
    status_code = 409

    def __init__(self, message: str, current_status: str = ""):
        super().__init__(message)
        self.current_status = current_status


class UnsupportedMappingError(IntegrationError):
    """No mapper registered for a (doc type, connection type) pair.

    Never retried automatically: it cannot succeed without a code change.
    """
    status_code = 422

    def __init__(self, doc_type: str, connection_type: str):
        super().__init__(
            f"No mapping registered for doc type '{doc_type}' "
            f"on connection type '{connection_type}'"
        )
        self.doc_type = doc_type
        self.connection_type = connection_type


class MappingError(IntegrationError):
    """Document snapshot cannot be mapped (missing or malformed fields)."""
    status_code = 422


class ExternalCallError(IntegrationError):
    """Transient failure talking to the external system (network, timeout, 4xx/5xx)."""
    status_code = 502

    def __init__(self, message: str, http_status: int = 0, response_body: str = ""):
        super().__init__(message)
        self.http_status = http_status
        self.response_body = response_body


class AuthError(ExternalCallError):
    """Provider rejected the connection's credentials (401/403, expired token)."""
    pass


# Errors that can never succeed on retry without operator or code action.
NON_RETRYABLE_ERRORS = (UnsupportedMappingError, MappingError)
