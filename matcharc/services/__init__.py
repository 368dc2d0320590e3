"""
Services package for the match lifecycle bot.

Each service owns one step of the match flow and its transactions;
MatchService is the facade the Discord adapter talks to.
"""

from .match_service import MatchService, format_thread_name
from .sync_service import SyncTracker, SyncWorker

__all__ = ['MatchService', 'SyncTracker', 'SyncWorker', 'format_thread_name']
