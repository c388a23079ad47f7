"""Exception hierarchy for the ladder engine."""

from __future__ import annotations


class ConfigurationError(Exception):
    """Base exception for configuration errors with optional suggestions."""

    def __init__(self, message: str, suggestion: str | None = None) -> None:
        self.message = message
        self.suggestion = suggestion
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        msg = f"[Configuration Error] {self.message}"
        if self.suggestion:
            msg += f"\n[Suggestion] {self.suggestion}"
        return msg


class UnsupportedDatabaseError(ConfigurationError):
    """Error when the database URL names an unsupported backend."""

    def __init__(self, url: str) -> None:
        super().__init__(
            f"Unsupported database URL: {url}",
            "Use a sqlite:/// or postgresql:// URL.",
        )


class LadderError(Exception):
    """Base exception for rejected ladder operations."""


class NotFoundError(LadderError):
    """A member, challenge or live match id does not exist."""

    def __init__(self, kind: str, entity_id: str) -> None:
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} not found: {entity_id}")


class InvalidTransitionError(LadderError):
    """A challenge action is not permitted from the current status."""

    def __init__(
        self,
        current_state: str,
        attempted_action: str,
        detail: str | None = None,
    ) -> None:
        self.current_state = current_state
        self.attempted_action = attempted_action
        self.detail = detail
        msg = f"Cannot {attempted_action} a challenge in state '{current_state}'"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class NotEligibleError(LadderError):
    """Challenge creation blocked by the eligibility policy."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Not eligible: {reason}")


class DuplicateChallengeError(LadderError):
    """An open challenge already exists between the two members."""

    def __init__(self, existing_id: str) -> None:
        self.existing_id = existing_id
        super().__init__(f"An open challenge already exists for this pair: {existing_id}")


class InvalidRankStateError(LadderError):
    """The rank ordering is (or would become) inconsistent."""


class InvalidMatchStateError(LadderError):
    """Scoring on the wrong match, by a non-participant, or after completion."""


class RetryableError(LadderError):
    """Transient failure; the caller may retry the same action."""


class StorageConflictError(RetryableError):
    """Lock timeout or serialization failure in the backing store."""
