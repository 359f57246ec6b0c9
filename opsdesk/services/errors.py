"""
Domain exceptions raised by the service layer and mapped to HTTP responses in main.py
"""


class OpsdeskError(Exception):
    """Base class for business rule violations"""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(OpsdeskError):
    status_code = 404


class ValidationError(OpsdeskError):
    status_code = 400


class ConflictError(OpsdeskError):
    status_code = 409
