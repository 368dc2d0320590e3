"""
External integrations for the match flow.

- StartGGClient: reports finalized results to the bracket of record
"""

from .bracket_client import (
    StartGGClient, BracketServiceError, BracketAuthError, BracketRateLimitError
)

__all__ = ['StartGGClient', 'BracketServiceError', 'BracketAuthError', 'BracketRateLimitError']
