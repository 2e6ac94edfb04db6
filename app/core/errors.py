"""Error types for the bet limit engine.

A limit breach is a normal business outcome and travels as data
(``CheckResult`` / ``CommitOutcome``). Only configuration and storage
problems are raised.
"""


class LimitEngineError(Exception):
    """Base class for limit engine errors with an HTTP status code."""
    status_code: int = 500

    def __init__(self, message: str = "Limit engine error"):
        self.message = message
        super().__init__(message)


class InvalidRuleConfig(LimitEngineError):
    """A range rule, exemption or default limit is malformed.

    Raised at configuration-edit time so a bad rule never reaches the
    check path. Maps to HTTP 422.
    """
    status_code = 422

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class TransientCommitFailure(LimitEngineError):
    """The round lock could not be taken in time or storage failed mid-commit.

    Nothing was written; the caller may retry the whole check-then-commit.
    Maps to HTTP 503.
    """
    status_code = 503

    def __init__(self, message: str = "Commit failed, please retry", cause: Exception | None = None):
        self.cause = cause
        super().__init__(message)
