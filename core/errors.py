"""Error taxonomy.

Incomplete mappings and validation rejections are deliberately absent:
the first is a precondition checked before analysis, the second silently
excludes rows.
"""


class ReconciliationError(Exception):
    """Base exception for user-visible failures."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class IngestionError(ReconciliationError):
    """A source file could not be loaded (unsupported type, empty, unparseable)."""
    pass


class UnknownEntityError(ReconciliationError):
    """No session exists for the requested entity id."""
    pass


class ExportError(ReconciliationError):
    """The discrepancy export could not be produced."""
    pass
