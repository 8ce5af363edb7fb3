"""Exception hierarchy for the quote costing services."""


class CostingError(Exception):
    """Base class for every error raised by the costing services."""

    status_code: int = 400

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context


class NotFoundError(CostingError):
    status_code = 404


class CommandValidationError(CostingError):
    status_code = 422


class ExplosionError(CostingError):
    """BOM or labour resolution failed; no lines were applied."""
    status_code = 502


class DuplicationError(CostingError):
    status_code = 502


class ReorderError(CostingError):
    status_code = 409


class PersistenceError(CostingError):
    status_code = 502
