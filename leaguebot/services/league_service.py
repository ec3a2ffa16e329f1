"""
League service for the rating bot.

Builds the rating operations around one Database and exposes the few entry
points the cogs need. Construction order matters: the operation log must exist
before anything that commits to it.
"""

from datetime import datetime
from typing import Callable, Optional

from leaguebot.database.models import ChangeKind
from leaguebot.data_models.results import DecayRunResult, OperationResult
from leaguebot.operations.audit import AuditTrail
from leaguebot.operations.confirmation import ConfirmationWorkflow
from leaguebot.operations.contest_operations import ContestOperations
from leaguebot.operations.decay import TRIGGER_VIRTUAL, DecayEngine, VirtualClock
from leaguebot.operations.manual_edit import ManualEditOperations, ManualFieldWriter
from leaguebot.operations.operation_log import OperationLog
from leaguebot.operations.participant_operations import ParticipantOperations
from leaguebot.operations.rating_engine import RatingUpdateEngine
from leaguebot.utils.clock import utc_now
from leaguebot.utils.logger import setup_logger
from leaguebot.utils.rating_exceptions import PersistenceFailure

logger = setup_logger(__name__)


class LeagueService:
    """Wires the rating subsystem together for one database"""
    
    def __init__(self, database, now: Callable[[], datetime] = utc_now,
                 required_approvals: int = None, log_depth: int = None):
        self.db = database
        self.now = now
        
        self.engine = RatingUpdateEngine()
        self.clock = VirtualClock(now=now)
        self.participants = ParticipantOperations(database)
        self.contests = ContestOperations(database)
        self.audit = AuditTrail(database)
        self.field_writer = ManualFieldWriter(self.participants, self.contests, self.engine)
        self.operation_log = OperationLog(
            database, self.participants, self.contests, self.field_writer,
            self.audit, self.clock, max_depth=log_depth
        )
        self.confirmations = ConfirmationWorkflow(
            database, self.participants, self.contests, self.engine,
            self.operation_log, self.audit, required_approvals=required_approvals, now=now
        )
        self.decay = DecayEngine(
            database, self.participants, self.operation_log, self.audit, self.clock, now=now
        )
        self.manual_edits = ManualEditOperations(
            database, self.participants, self.contests, self.field_writer,
            self.operation_log, self.audit, self.clock
        )
    
    async def undo(self, admin_id: Optional[str] = None) -> OperationResult:
        return await self.operation_log.undo(admin_id=admin_id)
    
    async def redo(self, admin_id: Optional[str] = None) -> OperationResult:
        return await self.operation_log.redo(admin_id=admin_id)
    
    async def timewalk(self, days: Optional[int] = None, admin_id: Optional[str] = None) -> DecayRunResult:
        """Advance virtual time (by the minimum useful amount if days is omitted) and run decay"""
        if days is None:
            days = await self.decay.min_days_for_next_decay()
        return await self.decay.run(trigger=TRIGGER_VIRTUAL, virtual_days_offset=days, admin_id=admin_id)
    
    async def recalculate(self, admin_id: Optional[str] = None) -> int:
        """
        Rebuild every rating by replaying live contests.
        
        The replay rewrites history the operation log's snapshots were taken
        against, so the log is cleared along with the virtual clock.
        """
        try:
            async with self.db.transaction() as session:
                changes = await self.contests.recalculate_all(self.engine, session)
                await self.participants.cleanup_orphans(session)
        except Exception as e:
            logger.error(f"Recalculation failed: {e}")
            raise PersistenceFailure("recalculation", str(e)) from e
        
        self.clock.reset()
        self.operation_log.clear()
        await self.audit.record(changes, ChangeKind.MANUAL, admin_id=admin_id,
                                parameters={'operation': 'recalculate'}, reason="Full recalculation")
        return len(changes)
