"""
Error taxonomy for the initiative lifecycle.

Routes translate these into HTTP responses; services raise them unchanged.
"""


class InitiativeError(Exception):
    """Base exception for initiative lifecycle errors"""
    pass


class NotFoundError(InitiativeError):
    """Raised when an initiative id is unknown"""
    def __init__(self, initiative_id: str):
        super().__init__(f"Initiative not found: {initiative_id}")
        self.initiative_id = initiative_id


class InvalidStateError(InitiativeError):
    """Raised when an operation is not legal for the initiative's current status"""
    pass


class GenerationError(InitiativeError):
    """Raised when the language model call or response parsing fails"""
    pass


class RetrievalError(InitiativeError):
    """Raised when the similarity search backend fails"""
    pass


class ConflictError(InitiativeError):
    """Raised when a concurrent write to the same initiative is detected"""
    pass
