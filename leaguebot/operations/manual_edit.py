"""
Manual Edit Operations Module

Admin edits that bypass result confirmation: setting a rating (directly or as
a target score), a W/L/D record, a player's default deck, a match record's turn
order, or a contest's active flag. Each edit is committed to the operation log
as a ManualEditSnapshot so it can be undone like any other operation.
"""

from dataclasses import replace
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from leaguebot.config import Config
from leaguebot.database.models import ChangeKind, ParticipantType
from leaguebot.data_models.results import ParticipantChange
from leaguebot.data_models.snapshots import ManualEditKind, ManualEditSnapshot, ParticipantState
from leaguebot.utils.logger import setup_logger
from leaguebot.utils.rating import RatingConverter
from leaguebot.utils.rating_exceptions import InvalidEditError, PersistenceFailure, UnknownTargetError

logger = setup_logger(__name__)

RATING_FIELDS = {'mu', 'sigma', 'score'}
RECORD_FIELDS = {'wins', 'losses', 'draws'}
CONTEST_TARGET = 'contest'


class ManualFieldWriter:
    """
    Writes a set of edited fields to the store.
    
    Shared by the initial edit and by undo/redo so both directions go through
    exactly the same code path.
    """
    
    def __init__(self, participant_ops, contest_ops, engine):
        self.participant_ops = participant_ops
        self.contest_ops = contest_ops
        self.engine = engine
        self.logger = logger
    
    async def write_fields(self, snapshot: ManualEditSnapshot, values: Dict[str, Any],
                           session: AsyncSession) -> Tuple[List[ParticipantChange], bool]:
        """
        Apply field values for the snapshot's target
        
        Args:
            snapshot: The edit being applied, undone or redone
            values: Field values to write (snapshot.before or snapshot.after)
            session: Transaction session
            
        Returns:
            (participant changes, whether a full recalculation ran)
        """
        if snapshot.edit_kind == ManualEditKind.CONTEST_ACTIVE:
            contest = await self.contest_ops.get(snapshot.target_id, session=session)
            if contest is None:
                raise UnknownTargetError(CONTEST_TARGET, snapshot.target_id)
            contest.active = bool(values['active'])
            await session.flush()
            changes = await self.contest_ops.recalculate_all(self.engine, session)
            return changes, True
        
        participant_type = ParticipantType(snapshot.target_type)
        
        if snapshot.edit_kind == ManualEditKind.TURN_ORDER:
            await self.contest_ops.set_turn_order(
                snapshot.contest_id, participant_type, snapshot.target_id,
                values['turn_order'], session=session
            )
            return [], False
        
        current = await self.participant_ops.get_state(participant_type, snapshot.target_id, session=session)
        if current is None:
            current = ParticipantState.default(participant_type, snapshot.target_id)
        updated = replace(current, **values)
        await self.participant_ops.write_state(updated, session=session)
        return [ParticipantChange(before=current, after=updated)], False


class ManualEditOperations:
    """Validates admin edits, applies them and commits them to the operation log"""
    
    def __init__(self, database, participant_ops, contest_ops, field_writer: ManualFieldWriter,
                 operation_log, audit, clock):
        self.db = database
        self.participant_ops = participant_ops
        self.contest_ops = contest_ops
        self.field_writer = field_writer
        self.operation_log = operation_log
        self.audit = audit
        self.clock = clock
        self.logger = logger
    
    def _edit_kind_for(self, target_type: str, fields: Dict[str, Any]) -> ManualEditKind:
        keys = set(fields)
        if not keys:
            raise InvalidEditError("No fields to change were given")
        if target_type == CONTEST_TARGET:
            if keys != {'active'}:
                raise InvalidEditError("Only 'active' can be changed on a contest")
            return ManualEditKind.CONTEST_ACTIVE
        if target_type not in {t.value for t in ParticipantType}:
            raise InvalidEditError(f"Unknown target type '{target_type}'")
        if keys <= RATING_FIELDS:
            if 'score' in keys and 'mu' in keys:
                raise InvalidEditError("Give either a score or a mu, not both")
            return ManualEditKind.RATING
        if keys <= RECORD_FIELDS:
            return ManualEditKind.RECORD
        if keys == {'default_deck'}:
            if target_type != ParticipantType.PLAYER.value:
                raise InvalidEditError("Only players have a default deck")
            return ManualEditKind.DECK_ASSIGNMENT
        if keys == {'turn_order'}:
            return ManualEditKind.TURN_ORDER
        raise InvalidEditError(f"Cannot combine or change fields: {', '.join(sorted(keys))}")
    
    def _resolve_rating_fields(self, current: ParticipantState, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Turn mu/sigma/score input into concrete mu and sigma values"""
        sigma = float(fields.get('sigma', current.sigma))
        if not Config.MIN_SIGMA <= sigma <= Config.MAX_SIGMA:
            raise InvalidEditError(f"Sigma must be between {Config.MIN_SIGMA} and {Config.MAX_SIGMA}")
        if 'score' in fields:
            try:
                mu = RatingConverter.mu_for(float(fields['score']), sigma)
            except ValueError as e:
                raise InvalidEditError(str(e))
        else:
            mu = float(fields.get('mu', current.mu))
            # A sigma-only edit keeps the displayed score stable
            if 'mu' not in fields and 'sigma' in fields:
                mu = RatingConverter.mu_for(current.score, sigma)
        return {'mu': mu, 'sigma': sigma}
    
    async def apply(self, target_type: str, target_id: str, fields: Dict[str, Any],
                    admin_id: Optional[str] = None, reason: Optional[str] = None,
                    contest_id: Optional[str] = None) -> ManualEditSnapshot:
        """
        Apply an admin edit and commit it to the operation log
        
        Args:
            target_type: 'player', 'deck' or 'contest'
            target_id: Participant id or contest id
            fields: Field values to set
            admin_id: Discord ID of the acting admin
            reason: Free-text reason for the audit trail
            contest_id: Contest whose record is edited (turn order edits only)
            
        Returns:
            The committed ManualEditSnapshot
        """
        edit_kind = self._edit_kind_for(target_type, fields)
        
        async with self.db.get_session() as session:
            if edit_kind == ManualEditKind.CONTEST_ACTIVE:
                contest = await self.contest_ops.get(target_id, session=session)
                if contest is None:
                    raise UnknownTargetError(CONTEST_TARGET, target_id)
                before = {'active': contest.active}
                after = {'active': bool(fields['active'])}
            elif edit_kind == ManualEditKind.TURN_ORDER:
                if not contest_id:
                    raise InvalidEditError("A contest id is required to change turn order")
                records = await self.contest_ops.get_records(contest_id, session=session)
                record = next((r for r in records
                               if r.participant_type.value == target_type and r.participant_id == target_id), None)
                if record is None:
                    raise UnknownTargetError(target_type, target_id)
                before = {'turn_order': record.turn_order}
                after = {'turn_order': fields['turn_order']}
            else:
                current = await self.participant_ops.get_state(
                    ParticipantType(target_type), target_id, session=session
                )
                if current is None:
                    raise UnknownTargetError(target_type, target_id)
                if edit_kind == ManualEditKind.RATING:
                    after = self._resolve_rating_fields(current, fields)
                elif edit_kind == ManualEditKind.RECORD:
                    after = {}
                    for name, value in fields.items():
                        if int(value) < 0:
                            raise InvalidEditError(f"{name} cannot be negative")
                        after[name] = int(value)
                else:
                    after = {'default_deck': fields['default_deck']}
                before = {name: getattr(current, name) for name in after}
        
        snapshot = ManualEditSnapshot(
            target_type=target_type,
            target_id=target_id,
            edit_kind=edit_kind,
            before=before,
            after=after,
            contest_id=contest_id,
            admin_id=str(admin_id) if admin_id is not None else None,
            reason=reason,
        )
        
        try:
            async with self.db.transaction() as session:
                changes, recalculated = await self.field_writer.write_fields(snapshot, after, session)
                if recalculated:
                    await self.participant_ops.cleanup_orphans(session)
        except (UnknownTargetError, InvalidEditError):
            raise
        except Exception as e:
            self.logger.error(f"Manual edit of {target_type} {target_id} failed: {e}")
            raise PersistenceFailure("manual edit", str(e)) from e
        
        self.operation_log.commit(snapshot)
        if recalculated:
            self.clock.reset()
            self.operation_log.discard_older_than(snapshot)
        self.logger.info(f"Manual edit committed: {snapshot.description} by {admin_id}")
        
        await self.audit.record(
            changes, ChangeKind.MANUAL, admin_id=admin_id,
            parameters={'edit_kind': edit_kind.value, 'fields': after, 'contest_id': contest_id},
            reason=reason,
        )
        return snapshot
