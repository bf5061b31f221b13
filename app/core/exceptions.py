"""
Service-layer exception hierarchy.

Services raise these; ``create_app`` maps them to status codes once.

Usage:
    from app.core.exceptions import ValidationError

    raise ValidationError("Invalid progression rule update", details={"priority": "..."})
"""


class ValidationError(Exception):
    """Raised when well-formed input violates a business rule.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown; keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)
