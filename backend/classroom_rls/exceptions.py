"""Exceptions raised by the access layer.

Authorization denials are deliberately absent: a denied read is an empty
result and a denied write affects zero rows.
"""


class AccessLayerError(Exception):
    """Base exception for access layer errors."""
    pass


class MalformedRequestError(AccessLayerError):
    """Raised when a request cannot be evaluated at all."""
    pass


class UnknownRelationError(MalformedRequestError):
    """Raised when a request names a relation that is not in the catalog."""
    def __init__(self, relation: str, message: str = ""):
        self.relation = relation
        self.message = message or f"Unknown relation: {relation}"
        super().__init__(self.message)


class UnknownOperationError(MalformedRequestError):
    """Raised when a request names an operation the engine does not support."""
    def __init__(self, operation: str, message: str = ""):
        self.operation = operation
        self.message = message or f"Unknown operation: {operation}"
        super().__init__(self.message)


class UnknownColumnError(MalformedRequestError):
    """Raised when a filter, ordering or embed references a missing column."""
    def __init__(self, relation: str, column: str, message: str = ""):
        self.relation = relation
        self.column = column
        self.message = message or f"Unknown column '{column}' on relation '{relation}'"
        super().__init__(self.message)


class UnknownHelperError(MalformedRequestError):
    """Raised when `call` names a helper predicate that is not registered."""
    def __init__(self, name: str, message: str = ""):
        self.name = name
        self.message = message or f"Unknown helper: {name}"
        super().__init__(self.message)


class InvalidPayloadError(MalformedRequestError):
    """Raised when an insert row or update patch fails validation."""
    def __init__(self, relation: str, errors=None, message: str = ""):
        self.relation = relation
        self.errors = errors or []
        self.message = message or f"Invalid payload for relation '{relation}'"
        super().__init__(self.message)


class GradeOutOfRangeError(AccessLayerError):
    """Raised when points_earned would exceed the assignment's max_points."""
    def __init__(self, points_earned, max_points, message: str = ""):
        self.points_earned = points_earned
        self.max_points = max_points
        self.message = message or (
            f"points_earned {points_earned} exceeds max_points {max_points}"
        )
        super().__init__(self.message)
