"""
Match-wide constants for the match lifecycle bot.

Interaction prefixes, identifier formats and limits used by the match
services and the Discord adapter live here instead of as magic values.
"""

class MatchConstants:
    """Constants related to match identifiers and slots."""

    # Match ids are CUIDs: 'c' followed by 24 lowercase alphanumerics
    MATCH_ID_PATTERN = r'^c[a-z0-9]{24}$'

    # Player slots are 1-based, ordered by MatchPlayer id
    PLAYER_SLOTS = (1, 2)
    PLAYERS_PER_MATCH = 2

    # Detailed scores look like "2-1"
    SCORE_PATTERN = r'^(\d{1,2})-(\d{1,2})$'
    MAX_GAME_SCORE = 99

    # Discord thread names are capped at 100 characters
    MAX_THREAD_NAME_LENGTH = 100

class InteractionConstants:
    """Custom id layout for component interactions."""

    SEPARATOR = ':'

    # Score payload from a select menu, e.g. "1|2-1"
    SCORE_SEPARATOR = '|'
    QUICK_REPORT = 'quick'
    SELECT_REPORT = 'select'

class SyncConstants:
    """Constants for result propagation to the bracket service."""

    # Error text stored on the match is trimmed to the column size
    MAX_ERROR_LENGTH = 500

    # Jitter applied on top of exponential backoff (0-30%)
    BACKOFF_JITTER = 0.3
