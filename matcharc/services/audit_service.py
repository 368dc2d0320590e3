"""
Audit trail for administrative and dispute actions.

Entries are added to the caller's session so they commit or roll back
together with the change they describe.
"""

from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from matcharc.database.models import AuditAction, AuditLog, AuditSource, Match


def snapshot_match(match: Match) -> Dict[str, Any]:
    """JSON-safe view of the fields an audit entry compares"""
    return {
        'state': match.state.value,
        'reported_by_id': match.reported_by_id,
        'reported_score': match.reported_score,
        'players': [
            {'id': p.id, 'name': p.player_name, 'outcome': p.outcome.value}
            for p in match.players
        ],
    }


def create_audit_log(
    session: AsyncSession,
    action: AuditAction,
    match_id: str,
    user_id: Optional[int] = None,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
    reason: Optional[str] = None,
    source: AuditSource = AuditSource.DISCORD
) -> AuditLog:
    entry = AuditLog(
        action=action,
        entity_type='match',
        entity_id=match_id,
        user_id=user_id,
        before=before,
        after=after,
        reason=reason,
        source=source
    )
    session.add(entry)
    return entry
