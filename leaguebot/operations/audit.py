"""
Audit Trail Module

Append-only history of every rating change. The trail is diagnostic: it is
written after the primary mutation has committed, in its own transaction, and a
failure here is logged and swallowed rather than undoing the mutation. Undo and
redo never read it.
"""

import json
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select

from leaguebot.constants import AuditConstants
from leaguebot.database.models import ChangeKind, ParticipantType, RatingAudit
from leaguebot.data_models.results import ParticipantChange
from leaguebot.utils.logger import setup_logger

logger = setup_logger(__name__)

# Pseudo-kind accepted by get_all() that matches both undo and redo entries
UNDO_OR_REDO = 'undo_or_redo'


class AuditTrail:
    """Writes and queries rating audit entries"""
    
    def __init__(self, database):
        self.db = database
        self.logger = logger
    
    def _build_entry(self, change: ParticipantChange, change_kind: ChangeKind,
                     admin_id: Optional[str], parameters: Optional[Dict[str, Any]],
                     reason: Optional[str]) -> RatingAudit:
        before, after = change.before, change.after
        return RatingAudit(
            target_type=after.participant_type,
            target_id=after.participant_id,
            display_name=change.display_name,
            change_kind=change_kind,
            mu_before=before.mu,
            sigma_before=before.sigma,
            score_before=before.score,
            mu_after=after.mu,
            sigma_after=after.sigma,
            score_after=after.score,
            wins_before=before.wins,
            losses_before=before.losses,
            draws_before=before.draws,
            wins_after=after.wins,
            losses_after=after.losses,
            draws_after=after.draws,
            acting_admin_id=str(admin_id) if admin_id is not None else None,
            parameters=json.dumps(parameters, default=str) if parameters else None,
            reason=reason,
        )
    
    async def record(self, changes: Sequence[ParticipantChange], change_kind: ChangeKind,
                     admin_id: Optional[str] = None,
                     parameters: Optional[Dict[str, Any]] = None,
                     reason: Optional[str] = None) -> int:
        """
        Append one audit entry per changed participant.
        
        Best-effort: store errors are logged and swallowed.
        
        Args:
            changes: Before/after state per participant
            change_kind: What kind of operation produced the changes
            admin_id: Discord ID of the acting admin, if any
            parameters: Extra context stored as JSON
            reason: Free-text reason supplied by the admin
            
        Returns:
            Number of entries written (0 on failure)
        """
        if not changes:
            return 0
        try:
            async with self.db.transaction() as session:
                for change in changes:
                    session.add(self._build_entry(change, change_kind, admin_id, parameters, reason))
        except Exception as e:
            self.logger.warning(f"Failed to write {len(changes)} {change_kind.value} audit entr(ies): {e}")
            return 0
        
        self.logger.debug(f"Audit: {len(changes)} {change_kind.value} entr(ies) recorded")
        return len(changes)
    
    async def get_for_target(self, target_type: ParticipantType, target_id: str,
                             limit: int = AuditConstants.TARGET_HISTORY_LIMIT) -> List[RatingAudit]:
        """Most recent entries for one participant, newest first"""
        async with self.db.get_session() as session:
            result = await session.execute(
                select(RatingAudit)
                .where(RatingAudit.target_type == target_type, RatingAudit.target_id == target_id)
                .order_by(RatingAudit.created_at.desc(), RatingAudit.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())
    
    async def get_all(self, change_kind: Optional[str] = None,
                      limit: int = AuditConstants.GLOBAL_HISTORY_LIMIT) -> List[RatingAudit]:
        """
        Most recent entries across all participants, newest first.
        
        change_kind may be any ChangeKind value or 'undo_or_redo'.
        """
        query = select(RatingAudit)
        if change_kind == UNDO_OR_REDO:
            query = query.where(RatingAudit.change_kind.in_([ChangeKind.UNDO, ChangeKind.REDO]))
        elif change_kind is not None:
            query = query.where(RatingAudit.change_kind == ChangeKind(change_kind))
        
        async with self.db.get_session() as session:
            result = await session.execute(
                query.order_by(RatingAudit.created_at.desc(), RatingAudit.id.desc()).limit(limit)
            )
            return list(result.scalars().all())
    
    async def get_manual_by_admin(self, admin_id: str,
                                  limit: int = AuditConstants.ADMIN_HISTORY_LIMIT) -> List[RatingAudit]:
        """Manual edits performed by one admin, newest first"""
        async with self.db.get_session() as session:
            result = await session.execute(
                select(RatingAudit)
                .where(RatingAudit.change_kind == ChangeKind.MANUAL,
                       RatingAudit.acting_admin_id == str(admin_id))
                .order_by(RatingAudit.created_at.desc(), RatingAudit.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())
