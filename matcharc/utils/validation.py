"""
Input validation for match flow payloads.

All checks here are pure: they run before any database access.
"""

import re
from typing import Optional, Tuple

from matcharc.constants import MatchConstants
from matcharc.utils.match_exceptions import InvalidIdentifier, InvalidPayload

MATCH_ID_REGEX = re.compile(MatchConstants.MATCH_ID_PATTERN)
SCORE_REGEX = re.compile(MatchConstants.SCORE_PATTERN)


def is_valid_match_id(value: Optional[str]) -> bool:
    """Return True if `value` is a CUID-shaped match id"""
    if not value or not isinstance(value, str):
        return False
    return MATCH_ID_REGEX.fullmatch(value) is not None


def require_match_id(value: Optional[str]) -> str:
    if not is_valid_match_id(value):
        raise InvalidIdentifier(value)
    return value


def parse_slot(value) -> int:
    """Parse a 1-based player slot from a payload part"""
    try:
        slot = int(value)
    except (TypeError, ValueError):
        raise InvalidPayload(f"winner slot \"{value}\" must be 1 or 2.")
    if slot not in MatchConstants.PLAYER_SLOTS:
        raise InvalidPayload(f"winner slot \"{value}\" must be 1 or 2.")
    return slot


def parse_score(value: Optional[str]) -> Optional[Tuple[int, int]]:
    """
    Parse a detailed score such as "2-1".

    Returns None for an empty value, a (winner_games, loser_games) tuple
    otherwise. Raises InvalidPayload when the value is malformed or the
    winner's side is not strictly ahead.
    """
    if value is None or value == '':
        return None

    match = SCORE_REGEX.fullmatch(value.strip())
    if not match:
        raise InvalidPayload(f"score \"{value}\" must look like 2-1.")

    winner_games, loser_games = int(match.group(1)), int(match.group(2))
    if winner_games > MatchConstants.MAX_GAME_SCORE or loser_games > MatchConstants.MAX_GAME_SCORE:
        raise InvalidPayload(f"score \"{value}\" is too high.")
    if winner_games <= loser_games:
        raise InvalidPayload(f"score \"{value}\" must list the winner's games first.")
    return winner_games, loser_games
