"""
exceptions.py
-------------
Error taxonomy shared by the repository, service and HTTP layers.

Not-found is not an error: repositories return ``None`` / ``False`` for it.
"""


class AntenneError(Exception):
    """Base class for all errors raised by the antennes service."""


class ValidationError(AntenneError):
    """Raised when a payload is missing required fields."""

    def __init__(self, fields: list[str], message: str = None):
        self.fields = fields
        self.message = message or f"Missing required fields: {', '.join(fields)}"
        super().__init__(self.message)


class StoreError(AntenneError):
    """Raised when the database is unreachable or a query fails."""

    def __init__(self, operation: str, message: str = None):
        self.operation = operation
        self.message = message or f"Database operation '{operation}' failed"
        super().__init__(self.message)


class EventBusUnavailable(AntenneError):
    """Raised by the explicit subscribe path when the broker cannot be reached."""
