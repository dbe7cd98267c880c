"""Error code registry with E-XXXX format codes.

Dispatch errors are organized into categories:
- E-1xxx: Order data errors
- E-2xxx: Validation errors (caller usage)
- E-3xxx: External service errors (AI model, mapping provider, order feed)
- E-4xxx: System/internal errors

Each error includes a code, title, message template, and remediation steps.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories for error codes."""

    DATA = "data"  # E-1xxx
    VALIDATION = "validation"  # E-2xxx
    EXTERNAL = "external"  # E-3xxx
    SYSTEM = "system"  # E-4xxx


@dataclass
class ErrorCode:
    """Definition of an error code with metadata.

    Attributes:
        code: Error code in E-XXXX format.
        category: Error category for grouping.
        title: Short title for display.
        message_template: Message with {placeholders} for context.
        remediation: Action the operator should take to resolve.
        is_retryable: Whether the operation can be retried without user action.
    """

    code: str
    category: ErrorCategory
    title: str
    message_template: str
    remediation: str
    is_retryable: bool = False

    def format(self, **context: object) -> str:
        """Render the message template, leaving unknown placeholders intact."""
        try:
            return self.message_template.format(**context)
        except (KeyError, IndexError):
            return self.message_template


ERROR_REGISTRY: dict[str, ErrorCode] = {
    # Data errors (E-1xxx)
    "E-1001": ErrorCode(
        code="E-1001",
        category=ErrorCategory.DATA,
        title="Missing Order Identifier",
        message_template="Order record is missing its identifier: {detail}.",
        remediation="Fix the order in the feed so it carries an id, then rerun the cycle.",
    ),
    "E-1002": ErrorCode(
        code="E-1002",
        category=ErrorCategory.DATA,
        title="Unparseable Dispatch Timestamp",
        message_template="Order '{order_id}' has dispatch time '{value}' not in DD/MM/YYYY HH:mm:ss form.",
        remediation="Correct the timestamp in the feed. The order sorts last until then.",
    ),
    "E-1003": ErrorCode(
        code="E-1003",
        category=ErrorCategory.DATA,
        title="Order Not Found",
        message_template="{resource_type} '{identifier}' not found.",
        remediation="Check the identifier or wait for the next feed ingestion.",
    ),
    # Validation errors (E-2xxx)
    "E-2001": ErrorCode(
        code="E-2001",
        category=ErrorCategory.VALIDATION,
        title="Invalid Page Number",
        message_template="Page must be a positive integer, got {value!r}.",
        remediation="Request page 1 or higher.",
    ),
    "E-2002": ErrorCode(
        code="E-2002",
        category=ErrorCategory.VALIDATION,
        title="Invalid Date Filter",
        message_template="Date filter must be YYYY-MM-DD, got {value!r}.",
        remediation="Pass the dispatch date as YYYY-MM-DD.",
    ),
    "E-2003": ErrorCode(
        code="E-2003",
        category=ErrorCategory.VALIDATION,
        title="Invalid Page Size",
        message_template="Page size must be a positive integer, got {value!r}.",
        remediation="Request a page size of 1 or higher.",
    ),
    # External service errors (E-3xxx)
    "E-3001": ErrorCode(
        code="E-3001",
        category=ErrorCategory.EXTERNAL,
        title="Address Standardization Failed",
        message_template="AI standardization for order '{order_id}' failed after {attempts} attempts.",
        remediation="The original text is kept. Check model availability and API key.",
        is_retryable=True,
    ),
    "E-3002": ErrorCode(
        code="E-3002",
        category=ErrorCategory.EXTERNAL,
        title="Geocoding Failed",
        message_template="Could not geocode '{address}'.",
        remediation="Distance stays unknown. Verify the address or the mapping API key.",
        is_retryable=True,
    ),
    "E-3003": ErrorCode(
        code="E-3003",
        category=ErrorCategory.EXTERNAL,
        title="Route Calculation Failed",
        message_template="Could not compute a route to '{address}'.",
        remediation="Distance stays unknown until the next cycle.",
        is_retryable=True,
    ),
    "E-3004": ErrorCode(
        code="E-3004",
        category=ErrorCategory.EXTERNAL,
        title="Order Feed Unavailable",
        message_template="Order feed '{source}' request failed: {detail}.",
        remediation="The cycle continues with stored orders. Check the feed URL.",
        is_retryable=True,
    ),
    "E-3005": ErrorCode(
        code="E-3005",
        category=ErrorCategory.EXTERNAL,
        title="Order Status Unavailable",
        message_template="Status lookup for order '{order_id}' failed: {detail}.",
        remediation="The stored status is kept until the next sync.",
        is_retryable=True,
    ),
    # System errors (E-4xxx)
    "E-4001": ErrorCode(
        code="E-4001",
        category=ErrorCategory.SYSTEM,
        title="Unexpected Error",
        message_template="An unexpected error occurred: {detail}.",
        remediation="Check the logs for details.",
    ),
}


def get_error(code: str) -> ErrorCode | None:
    """Get error definition by code.

    Args:
        code: Error code in E-XXXX format.

    Returns:
        ErrorCode if found, None otherwise.
    """
    return ERROR_REGISTRY.get(code)


def get_errors_by_category(category: ErrorCategory) -> list[ErrorCode]:
    """Get all errors in a category."""
    return [e for e in ERROR_REGISTRY.values() if e.category == category]
