"""
Unified base exception classes for all services.

Each service extends ServiceError with its own base (e.g. OrderServiceError,
DeliveryServiceError) so routers can catch one type per service and turn it
into an HTTP response with the carried status code.
"""


class ServiceError(Exception):
    """Base exception for all service-layer errors."""

    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class TransientStorageError(ServiceError):
    """Persistence failed mid-transition; the whole transaction was rolled back and may be retried."""

    def __init__(self, message: str = "The request could not be completed right now. Please try again."):
        super().__init__(message, 503)
