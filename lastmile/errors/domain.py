"""Typed domain exceptions for the dispatch pipeline.

Each exception carries the E-XXXX code of its registry entry so an outer
API shell can map it to a response without string matching.

Usage:
    # In service layer
    raise InvalidPageError(page)

    # In the caller
    try:
        page = service.rank_and_page(page=0)
    except ValidationError as e:
        return {"error": e.code, "message": str(e)}
"""


class DomainError(Exception):
    """Base exception for all domain errors."""

    code = "E-4001"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class NotFoundError(DomainError):
    """Resource was not found."""

    code = "E-1003"

    def __init__(self, resource_type: str, identifier: str) -> None:
        super().__init__(f"{resource_type} '{identifier}' not found")
        self.resource_type = resource_type
        self.identifier = identifier


class ValidationError(DomainError):
    """Caller passed an invalid argument."""

    code = "E-2001"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class InvalidPageError(ValidationError):
    """Page number or page size is not a positive integer."""

    def __init__(self, value: object, field: str = "page") -> None:
        super().__init__(f"{field} must be a positive integer, got {value!r}")
        self.value = value
        self.field = field
        self.code = "E-2001" if field == "page" else "E-2003"


class InvalidDateFilterError(ValidationError):
    """Date filter is not a strict YYYY-MM-DD string."""

    code = "E-2002"

    def __init__(self, value: object) -> None:
        super().__init__(f"date filter must be YYYY-MM-DD, got {value!r}")
        self.value = value


class OrderIntegrityError(DomainError):
    """A single order record lacks a required field."""

    code = "E-1001"

    def __init__(self, detail: str, order_id: str | None = None) -> None:
        super().__init__(f"order integrity violation: {detail}")
        self.detail = detail
        self.order_id = order_id
