from typing import Optional


class QueryError(Exception):
    """Base class for errors raised while building or executing catalog queries."""


class SqlValidationError(QueryError):
    """A SQL request referenced a table, column or operator outside the allowlist."""


class MalformedPlanError(QueryError):
    """A plan step is missing a required field or carries a wrongly typed one."""

    def __init__(self, message: str, step_index: Optional[int] = None):
        self.step_index = step_index
        if step_index is not None:
            message = f"step {step_index}: {message}"
        super().__init__(message)
