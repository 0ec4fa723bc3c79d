from typing import Optional


GENERIC_BACKEND_MESSAGE = "Có lỗi xảy ra, vui lòng thử lại"


class StorefrontError(Exception):
    """Base class for errors surfaced to the shopper."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BackendError(StorefrontError):
    """A call to the backend API failed.

    ``message`` is the backend's own message when it supplied one, otherwise
    a generic fallback chosen by the caller.
    """

    def __init__(self, message: str = GENERIC_BACKEND_MESSAGE, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SessionExpiredError(BackendError):
    """The backend rejected the bearer token (HTTP 401)."""

    def __init__(self, audience: str = "customer", message: str = "Phiên đăng nhập đã hết hạn"):
        super().__init__(message, status_code=401)
        self.audience = audience


class CheckoutValidationError(StorefrontError):
    pass


class DuplicateSubmissionError(StorefrontError):
    def __init__(self, message: str = "Đơn hàng đang được xử lý, vui lòng chờ"):
        super().__init__(message)


class CheckoutGuardError(StorefrontError):
    """A checkout step was entered without its prerequisite state."""

    def __init__(self, redirect_to: str, message: str = "Checkout step not available"):
        super().__init__(message)
        self.redirect_to = redirect_to
