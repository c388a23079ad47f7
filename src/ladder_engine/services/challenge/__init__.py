from .lifecycle import ChallengeLifecycle, challenge_payload
from .transitions import ACTORS, TRANSITIONS, Actor, ChallengeAction, check_actor, next_status

__all__ = [
    "ACTORS",
    "TRANSITIONS",
    "Actor",
    "ChallengeAction",
    "ChallengeLifecycle",
    "challenge_payload",
    "check_actor",
    "next_status",
]
