"""Custom exceptions for the PharmaPOS application."""


class PosError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv


class BusinessLogicError(PosError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class NotFoundError(PosError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


def _fmt_qty(value):
    return f"{int(value)}" if value % 1 == 0 else f"{value:.2f}".rstrip('0').rstrip('.')


class InsufficientStockError(BusinessLogicError):
    """
    Raised when one or more lines ask for more units than are in stock.

    Carries every shortage so the caller sees all offending lines at once.
    """
    def __init__(self, shortages):
        self.shortages = list(shortages)
        details = '; '.join(
            f"{s.name}: requested {_fmt_qty(s.requested)}, available {_fmt_qty(s.available)}"
            for s in self.shortages
        )
        payload = {'shortages': [s.to_dict() for s in self.shortages]}
        super().__init__(f"Insufficient stock: {details}", status_code=409, payload=payload)


class UnauthorizedError(PosError):
    """Raised when a user lacks permission for an action."""
    def __init__(self, message="Unauthorized access"):
        super().__init__(message, 403)


class AuthenticationError(PosError):
    """Raised when the request carries no valid login."""
    def __init__(self, message="Authentication required"):
        super().__init__(message, 401)


class OrderPersistenceError(PosError):
    """Raised when an order could not be stored; nothing was committed."""
    def __init__(self, message="Failed to create order"):
        super().__init__(message, 500)
