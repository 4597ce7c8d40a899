"""Error taxonomy shared by the sync core and the store adapters."""


class ScoreboardError(Exception):
    """Base class for scoreboard sync errors."""


class NetworkError(ScoreboardError):
    """Transient store I/O failure. The local replica stays valid."""


class StaleWriteError(NetworkError):
    """The store refused a write older than the document it holds."""


class NotFoundError(ScoreboardError):
    """The referenced session code does not exist."""

    def __init__(self, code: str):
        super().__init__(f"Session {code} not found")
        self.code = code


class ValidationError(ScoreboardError):
    """Malformed configuration, document or out-of-range input."""


class AuthorityViolation(ScoreboardError):
    """A non-host client attempted a mutating operation."""
