# services/errors.py
"""
Exceptions raised by the inventory services.
Each carries the HTTP status the API answers with and a user-facing message.
"""


class InventoryError(Exception):
    """Base class for errors surfaced to the user"""
    status_code = 400

    def __init__(self, message: str, status_code: int = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationError(InventoryError):
    """Bad or missing form input"""
    status_code = 400

    def __init__(self, message: str, field: str = None):
        self.field = field
        super().__init__(message)


class SessionExpired(InventoryError):
    status_code = 401

    def __init__(self, message: str = "Session expired. Please log in again."):
        super().__init__(message)


class PermissionDenied(InventoryError):
    status_code = 403


class SyncPending(InventoryError):
    """Row is still staged locally and has no server id yet"""
    status_code = 409


class DataClientError(InventoryError):
    """The backing store rejected or failed a request"""
    status_code = 502


class AuthError(InventoryError):
    status_code = 400
