from .scoring import MatchScoring, match_payload, open_live_match

__all__ = ["MatchScoring", "match_payload", "open_live_match"]
