"""Typed failures raised by the ranking core."""


class RankingError(Exception):
    """Base class for ranking-core failures."""


class RankingUnavailable(RankingError):
    """A feed or suggestion could not be computed because a backing store failed."""

    def __init__(self, operation: str, reason: str = "") -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(f"{operation} unavailable: {reason}" if reason else f"{operation} unavailable")


class UserNotFound(RankingError):
    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")
