"""
Operation Log Module

Snapshot-based undo/redo for every rating-affecting operation: confirmed
contests, decay scans and manual edits share one log.

The log is an indexed list with a cursor. Entries before the cursor are
undoable (the newest one first), entries at and after it are redoable. A new
commit discards everything after the cursor. With max_depth=1 this is a single
undo slot and a single redo slot.

Each undo/redo runs in one transaction, followed by the orphan cleanup pass in
the same transaction. The cursor only moves once that transaction commits, so
a failed undo leaves both the store and the log where they were.
"""

from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from leaguebot.config import Config
from leaguebot.database.models import ChangeKind, ContestStatus
from leaguebot.data_models.results import OperationResult, ParticipantChange
from leaguebot.data_models.snapshots import (
    ContestSnapshot, DecaySnapshot, ManualEditSnapshot, ParticipantState, Snapshot
)
from leaguebot.utils.logger import setup_logger
from leaguebot.utils.rating_exceptions import PersistenceFailure

logger = setup_logger(__name__)


def snapshot_kind(snapshot: Snapshot) -> str:
    if isinstance(snapshot, ContestSnapshot):
        return 'contest'
    if isinstance(snapshot, DecaySnapshot):
        return 'decay'
    if isinstance(snapshot, ManualEditSnapshot):
        return 'manual'
    raise TypeError(f"Unknown snapshot type: {type(snapshot).__name__}")


class OperationLog:
    """Undo/redo history of committed rating operations"""
    
    def __init__(self, database, participant_ops, contest_ops, field_writer, audit, clock,
                 max_depth: Optional[int] = None):
        self.db = database
        self.participant_ops = participant_ops
        self.contest_ops = contest_ops
        self.field_writer = field_writer
        self.audit = audit
        self.clock = clock
        self.max_depth = max_depth or Config.OPERATION_LOG_DEPTH
        self.entries: List[Snapshot] = []
        self.cursor = 0
        self.logger = logger
    
    # ------------------------------------------------------------------
    # History management
    # ------------------------------------------------------------------
    
    def commit(self, snapshot: Snapshot):
        """Register a newly committed operation; clears anything redoable"""
        snapshot_kind(snapshot)
        discarded = len(self.entries) - self.cursor
        del self.entries[self.cursor:]
        self.entries.append(snapshot)
        if len(self.entries) > self.max_depth:
            del self.entries[:len(self.entries) - self.max_depth]
        self.cursor = len(self.entries)
        if discarded:
            self.logger.debug(f"Commit discarded {discarded} redoable operation(s)")
        self.logger.info(f"Operation committed: {snapshot.description}")
    
    def can_undo(self) -> bool:
        return self.cursor > 0
    
    def can_redo(self) -> bool:
        return self.cursor < len(self.entries)
    
    def peek_undo(self) -> Optional[Snapshot]:
        return self.entries[self.cursor - 1] if self.can_undo() else None
    
    def peek_redo(self) -> Optional[Snapshot]:
        return self.entries[self.cursor] if self.can_redo() else None
    
    def clear(self):
        self.entries.clear()
        self.cursor = 0
    
    def discard_older_than(self, snapshot: Snapshot) -> int:
        """
        Drop every entry older than snapshot.
        
        Used after a full recalculation: the replayed store no longer matches
        the states those entries would restore.
        """
        index = next(i for i, entry in enumerate(self.entries) if entry is snapshot)
        if index:
            del self.entries[:index]
            self.cursor -= index
            self.logger.info(f"Recalculation discarded {index} older operation(s)")
        return index
    
    def stack_info(self) -> Dict[str, Any]:
        next_undo = self.peek_undo()
        next_redo = self.peek_redo()
        return {
            'undo_count': self.cursor,
            'redo_count': len(self.entries) - self.cursor,
            'max_depth': self.max_depth,
            'next_undo': next_undo.description if next_undo else None,
            'next_redo': next_redo.description if next_redo else None,
        }
    
    # ------------------------------------------------------------------
    # Undo / redo
    # ------------------------------------------------------------------
    
    async def undo(self, admin_id: Optional[str] = None) -> OperationResult:
        """Revert the most recent undoable operation"""
        snapshot = self.peek_undo()
        if snapshot is None:
            return OperationResult(performed=False, description="Nothing to undo")
        
        changes, recalculated = await self._run(snapshot, forward=False)
        self.cursor -= 1
        return await self._finish(snapshot, changes, recalculated, ChangeKind.UNDO, admin_id)
    
    async def redo(self, admin_id: Optional[str] = None) -> OperationResult:
        """Re-apply the most recently undone operation"""
        snapshot = self.peek_redo()
        if snapshot is None:
            return OperationResult(performed=False, description="Nothing to redo")
        
        changes, recalculated = await self._run(snapshot, forward=True)
        self.cursor += 1
        return await self._finish(snapshot, changes, recalculated, ChangeKind.REDO, admin_id)
    
    async def _run(self, snapshot: Snapshot, forward: bool) -> Tuple[List[ParticipantChange], bool]:
        action = 'redo' if forward else 'undo'
        kind = snapshot_kind(snapshot)
        try:
            async with self.db.transaction() as session:
                if kind == 'contest':
                    changes = await self._apply_contest(snapshot, forward, session)
                    recalculated = False
                elif kind == 'decay':
                    changes = await self._apply_decay(snapshot, forward, session)
                    recalculated = False
                else:
                    values = snapshot.after if forward else snapshot.before
                    changes, recalculated = await self.field_writer.write_fields(snapshot, values, session)
                await self.participant_ops.cleanup_orphans(session)
        except Exception as e:
            self.logger.error(f"Failed to {action} {snapshot.description}: {e}")
            raise PersistenceFailure(action, str(e)) from e
        return changes, recalculated
    
    async def _finish(self, snapshot: Snapshot, changes: List[ParticipantChange], recalculated: bool,
                      change_kind: ChangeKind, admin_id: Optional[str]) -> OperationResult:
        if recalculated:
            self.clock.reset()
            self.discard_older_than(snapshot)
        
        verb = 'Undid' if change_kind == ChangeKind.UNDO else 'Redid'
        kind = snapshot_kind(snapshot)
        self.logger.info(f"{verb} {snapshot.description} ({len(changes)} participant(s))")
        
        await self.audit.record(
            changes, change_kind, admin_id=admin_id,
            parameters={'operation': kind, 'description': snapshot.description},
        )
        return OperationResult(
            performed=True,
            description=f"{verb} {snapshot.description}",
            kind=kind,
            changes=tuple(changes),
            contest_id=snapshot.contest_id if kind == 'contest' else None,
        )
    
    async def _write_states(self, states, session: AsyncSession) -> List[ParticipantChange]:
        changes = []
        for target in states:
            current = await self.participant_ops.get_state_or_default(
                target.participant_type, target.participant_id, target.display_name, session=session
            )
            await self.participant_ops.write_state(target, session=session)
            changes.append(ParticipantChange(before=current, after=target))
        return changes
    
    async def _apply_contest(self, snapshot: ContestSnapshot, forward: bool,
                             session: AsyncSession) -> List[ParticipantChange]:
        if not forward:
            changes = await self._write_states(snapshot.before, session)
            await self.contest_ops.set_status(snapshot.contest_id, ContestStatus.UNDONE, False, session=session)
            return changes
        
        await self.contest_ops.ensure_contest(
            snapshot.contest_id, snapshot.sequence, snapshot.kind,
            snapshot.created_at, snapshot.submitted_by, session=session
        )
        await self.contest_ops.set_status(snapshot.contest_id, ContestStatus.CONFIRMED, True, session=session)
        await self.contest_ops.recreate_missing_records(
            snapshot.contest_id, snapshot.records, snapshot.created_at, session=session
        )
        return await self._write_states(snapshot.after, session)
    
    async def _apply_decay(self, snapshot: DecaySnapshot, forward: bool,
                           session: AsyncSession) -> List[ParticipantChange]:
        states: List[ParticipantState] = [
            entry.after if forward else entry.before for entry in snapshot.entries
        ]
        return await self._write_states(states, session)
