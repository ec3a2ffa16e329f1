"""
Confirmation Workflow Module

Gates a submitted result behind a number of independent approvals before it
touches the store.

A submission gets provisional ratings immediately, but nothing is persisted
until the approval threshold is reached. Each submission is keyed by its
announcement (the message the approvals are attached to), so concurrent
submissions never interfere. State machine:

    active --(threshold reached)--> confirmed
    active --(admin cancel)-------> disabled

Both terminal states ignore further approvals.
"""

from collections import OrderedDict
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from leaguebot.config import Config
from leaguebot.constants import ContestConstants
from leaguebot.database.models import ChangeKind, Outcome, ParticipantType
from leaguebot.data_models.results import (
    ApprovalResult, ConfirmationState, OperationResult, ParticipantChange
)
from leaguebot.data_models.snapshots import ContestSnapshot, MatchRecordState, ParticipantState
from leaguebot.operations.rating_engine import RatingEntry
from leaguebot.utils.clock import utc_now
from leaguebot.utils.logger import setup_logger
from leaguebot.utils.rating import Rating
from leaguebot.utils.rating_exceptions import (
    InvalidOutcomeComposition, ParticipantRestricted, PersistenceFailure
)

logger = setup_logger(__name__)


@dataclass(frozen=True)
class SubmittedEntry:
    """One line of a submitted result"""
    participant_id: str
    outcome: str  # 'w', 'l' or 'd'
    participant_type: ParticipantType = ParticipantType.PLAYER
    display_name: Optional[str] = None
    deck: Optional[str] = None  # Players only; falls back to the player's default deck
    team: Optional[str] = None
    score: Optional[float] = None
    turn_order: Optional[int] = None


@dataclass
class PendingConfirmation:
    """An uncommitted result waiting for approvals"""
    announcement_id: str
    entries: Tuple[SubmittedEntry, ...]
    before: Tuple[ParticipantState, ...]
    provisional: Tuple[Rating, ...]
    required_approvals: int
    kind: str = '1v1'
    scope_id: Optional[str] = None
    submitted_by: Optional[str] = None
    approver_ids: Set[str] = field(default_factory=set)
    state: ConfirmationState = ConfirmationState.ACTIVE
    created_at: datetime = field(default_factory=utc_now)
    
    @property
    def approvals(self) -> int:
        return len(self.approver_ids)


@dataclass
class ConfirmationScope:
    """Per-guild shortcut pointers used by the quick undo command"""
    scope_id: str
    latest_pending_id: Optional[str] = None
    latest_confirmed_contest_id: Optional[str] = None


def validate_composition(entries: Sequence[SubmittedEntry]):
    """Raise InvalidOutcomeComposition unless the entries form a ratable result"""
    if len(entries) < 2:
        raise InvalidOutcomeComposition("A result needs at least two participants")
    
    seen = set()
    for entry in entries:
        key = (entry.participant_type, entry.participant_id)
        if key in seen:
            raise InvalidOutcomeComposition(f"{entry.participant_id} appears more than once")
        seen.add(key)
        if entry.outcome not in {o.value for o in Outcome}:
            raise InvalidOutcomeComposition(f"Unknown outcome '{entry.outcome}' for {entry.participant_id}")
    
    outcomes = {entry.outcome for entry in entries}
    if Outcome.WIN.value not in outcomes:
        raise InvalidOutcomeComposition("A result needs at least one winner")
    if Outcome.LOSS.value not in outcomes:
        raise InvalidOutcomeComposition("A result needs at least one loser")


class ConfirmationWorkflow:
    """Tracks pending submissions and commits them once approved"""
    
    def __init__(self, database, participant_ops, contest_ops, engine, operation_log, audit,
                 required_approvals: int = None, now: Callable[[], datetime] = utc_now):
        self.db = database
        self.participant_ops = participant_ops
        self.contest_ops = contest_ops
        self.engine = engine
        self.operation_log = operation_log
        self.audit = audit
        self.required_approvals = required_approvals or Config.RANK_UPVOTES_REQUIRED
        self.now = now
        self.pending: Dict[str, PendingConfirmation] = {}
        self.closed: Dict[str, ConfirmationState] = OrderedDict()
        self.scopes: Dict[str, ConfirmationScope] = {}
        self.logger = logger
    
    def scope(self, scope_id: str) -> ConfirmationScope:
        if scope_id not in self.scopes:
            self.scopes[scope_id] = ConfirmationScope(scope_id=scope_id)
        return self.scopes[scope_id]
    
    def get(self, announcement_id: str) -> Optional[PendingConfirmation]:
        return self.pending.get(announcement_id)
    
    def state_of(self, announcement_id: str) -> Optional[ConfirmationState]:
        """State of an open or recently closed submission, None if unknown"""
        pending = self.pending.get(announcement_id)
        if pending is not None:
            return pending.state
        return self.closed.get(announcement_id)
    
    def _close(self, pending: PendingConfirmation):
        """Drop a submission that reached a terminal state, remembering only its id"""
        self.pending.pop(pending.announcement_id, None)
        self.closed[pending.announcement_id] = pending.state
        while len(self.closed) > ContestConstants.CLOSED_SUBMISSION_LIMIT:
            self.closed.popitem(last=False)
    
    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------
    
    def _with_decks(self, entries: Sequence[SubmittedEntry],
                    players: Dict[str, ParticipantState]) -> List[SubmittedEntry]:
        """
        Add a deck entry alongside each player.
        
        Decks are only rated when every player resolved a distinct deck,
        otherwise the deck side of the result is dropped.
        """
        deck_entries = []
        for entry in entries:
            if entry.participant_type != ParticipantType.PLAYER:
                return []
            deck = entry.deck or players[entry.participant_id].default_deck
            if not deck:
                return []
            deck_entries.append(SubmittedEntry(
                participant_id=deck,
                outcome=entry.outcome,
                participant_type=ParticipantType.DECK,
                team=entry.team,
                score=entry.score,
                turn_order=entry.turn_order,
            ))
        if len({e.participant_id for e in deck_entries}) != len(deck_entries):
            self.logger.debug("Skipping deck ratings: the same deck appears on both sides")
            return []
        return deck_entries
    
    def _rate(self, entries: Sequence[SubmittedEntry],
              states: Dict[Tuple[ParticipantType, str], ParticipantState]
              ) -> Dict[Tuple[ParticipantType, str], Rating]:
        """Rate the player side and the deck side as two independent results"""
        ratings: Dict[Tuple[ParticipantType, str], Rating] = {}
        for participant_type in ParticipantType:
            group = [e for e in entries if e.participant_type == participant_type]
            if not group:
                continue
            validate_composition(group)
            rating_entries = [
                RatingEntry(
                    rating=states[(e.participant_type, e.participant_id)].rating,
                    outcome=e.outcome, team=e.team, score=e.score,
                )
                for e in group
            ]
            for entry, rating in zip(group, self.engine.rate(rating_entries)):
                ratings[(entry.participant_type, entry.participant_id)] = rating
        return ratings
    
    async def start(self, announcement_id: str, entries: Sequence[SubmittedEntry],
                    submitted_by: Optional[str] = None, scope_id: Optional[str] = None,
                    kind: str = None) -> PendingConfirmation:
        """
        Register a submitted result and compute its provisional ratings
        
        Args:
            announcement_id: Identity of the message approvals will arrive on
            entries: Participants with outcomes; players may name a deck
            submitted_by: Discord ID of the submitter
            scope_id: Guild (or other scope) for the quick-undo pointer
            kind: Contest kind label, defaults to '1v1' or '<n>p'
            
        Returns:
            The new PendingConfirmation, in the active state
        """
        entries = tuple(entries)
        validate_composition(entries)
        if announcement_id in self.pending or announcement_id in self.closed:
            raise ValueError(f"Announcement {announcement_id} already has a result")
        
        async with self.db.get_session() as session:
            states: Dict[Tuple[ParticipantType, str], ParticipantState] = {}
            for entry in entries:
                states[(entry.participant_type, entry.participant_id)] = \
                    await self.participant_ops.get_state_or_default(
                        entry.participant_type, entry.participant_id, entry.display_name, session=session
                    )
            
            for key, state in states.items():
                if state.restricted:
                    raise ParticipantRestricted(key[1])
            
            players = {pid: state for (ptype, pid), state in states.items() if ptype == ParticipantType.PLAYER}
            deck_entries = self._with_decks(entries, players)
            for entry in deck_entries:
                states[(entry.participant_type, entry.participant_id)] = \
                    await self.participant_ops.get_state_or_default(
                        entry.participant_type, entry.participant_id, session=session
                    )
        
        all_entries = entries + tuple(deck_entries)
        provisional = self._rate(all_entries, states)
        
        keys = [(e.participant_type, e.participant_id) for e in all_entries]
        pending = PendingConfirmation(
            announcement_id=announcement_id,
            entries=all_entries,
            before=tuple(states[key] for key in keys),
            provisional=tuple(provisional[key] for key in keys),
            required_approvals=self.required_approvals,
            kind=kind or ('1v1' if len(entries) == 2 else f"{len(entries)}p"),
            scope_id=scope_id,
            submitted_by=str(submitted_by) if submitted_by is not None else None,
            created_at=self.now(),
        )
        self.pending[announcement_id] = pending
        if scope_id is not None:
            self.scope(scope_id).latest_pending_id = announcement_id
        
        self.logger.info(f"Result {announcement_id} pending: {len(entries)} participant(s), "
                         f"{self.required_approvals} approval(s) required")
        return pending
    
    # ------------------------------------------------------------------
    # Approval
    # ------------------------------------------------------------------
    
    def _result(self, pending: PendingConfirmation, **kwargs) -> ApprovalResult:
        return ApprovalResult(
            announcement_id=pending.announcement_id,
            state=pending.state,
            approvals=pending.approvals,
            required=pending.required_approvals,
            **kwargs,
        )
    
    async def approve(self, announcement_id: str, approver_id: str) -> ApprovalResult:
        """
        Record one approval; commits the result when the threshold is reached.
        
        Duplicate approvals, approvals on unknown announcements and approvals
        after a terminal state are no-ops.
        """
        pending = self.pending.get(announcement_id)
        if pending is None:
            return ApprovalResult(announcement_id=announcement_id, state=self.closed.get(announcement_id),
                                  approvals=0, required=self.required_approvals)
        
        approver_id = str(approver_id)
        if pending.state != ConfirmationState.ACTIVE or approver_id in pending.approver_ids:
            return self._result(pending)
        
        pending.approver_ids.add(approver_id)
        if pending.approvals < pending.required_approvals:
            self.logger.debug(f"Result {announcement_id}: {pending.approvals}/{pending.required_approvals} approvals")
            return self._result(pending)
        
        # Flip before awaiting so a concurrent approval cannot commit twice
        pending.state = ConfirmationState.CONFIRMED
        try:
            contest_id, changes = await self._commit(pending)
        except Exception:
            # Nothing was persisted, the submission is simply dropped
            self.pending.pop(announcement_id, None)
            raise
        self._close(pending)
        
        return self._result(pending, newly_confirmed=True, contest_id=contest_id, changes=tuple(changes))
    
    async def _commit(self, pending: PendingConfirmation) -> Tuple[str, List[ParticipantChange]]:
        now = self.now()
        records: List[MatchRecordState] = []
        before_states: List[ParticipantState] = []
        after_states: List[ParticipantState] = []
        
        try:
            async with self.db.transaction() as session:
                contest_id = await self.contest_ops.generate_contest_id(session)
                sequence = await self.contest_ops.next_sequence(session)
                
                current_states: Dict[Tuple[ParticipantType, str], ParticipantState] = {}
                for entry in pending.entries:
                    current_states[(entry.participant_type, entry.participant_id)] = \
                        await self.participant_ops.get_state_or_default(
                            entry.participant_type, entry.participant_id, entry.display_name, session=session
                        )
                
                ratings = {
                    (entry.participant_type, entry.participant_id): rating
                    for entry, rating in zip(pending.entries, pending.provisional)
                }
                moved = [
                    submitted.participant_id for submitted in pending.before
                    if current_states[submitted.key].rating != submitted.rating
                ]
                if moved:
                    # Another result touched these participants after submission
                    self.logger.info(f"Result {pending.announcement_id}: re-rating, "
                                     f"{', '.join(moved)} changed since submission")
                    ratings = self._rate(pending.entries, current_states)
                
                for entry in pending.entries:
                    current = current_states[(entry.participant_type, entry.participant_id)]
                    rating = ratings[(entry.participant_type, entry.participant_id)]
                    after = replace(
                        current.with_rating(rating),
                        wins=current.wins + (entry.outcome == Outcome.WIN.value),
                        losses=current.losses + (entry.outcome == Outcome.LOSS.value),
                        draws=current.draws + (entry.outcome == Outcome.DRAW.value),
                        last_activity_at=now,
                        decay_days_applied=0,
                    )
                    await self.participant_ops.write_state(after, session=session)
                    before_states.append(current)
                    after_states.append(after)
                    records.append(MatchRecordState(
                        participant_type=entry.participant_type,
                        participant_id=entry.participant_id,
                        outcome=Outcome(entry.outcome),
                        mu_before=current.mu,
                        sigma_before=current.sigma,
                        mu_after=rating.mu,
                        sigma_after=rating.sigma,
                        team=entry.team,
                        score=entry.score,
                        turn_order=entry.turn_order,
                    ))
                
                await self.contest_ops.record_contest(
                    contest_id, sequence, pending.kind, records, now, pending.submitted_by, session=session
                )
        except Exception as e:
            self.logger.error(f"Failed to commit result {pending.announcement_id}: {e}")
            raise PersistenceFailure("result confirmation", str(e)) from e
        
        snapshot = ContestSnapshot(
            contest_id=contest_id,
            sequence=sequence,
            kind=pending.kind,
            records=tuple(records),
            before=tuple(before_states),
            after=tuple(after_states),
            created_at=now,
            submitted_by=pending.submitted_by,
        )
        self.operation_log.commit(snapshot)
        
        if pending.scope_id is not None:
            scope = self.scope(pending.scope_id)
            scope.latest_confirmed_contest_id = contest_id
            if scope.latest_pending_id == pending.announcement_id:
                scope.latest_pending_id = None
        
        changes = [ParticipantChange(before=b, after=a) for b, a in zip(before_states, after_states)]
        await self.audit.record(
            changes, ChangeKind.CONTEST,
            parameters={
                'contest_id': contest_id,
                'announcement_id': pending.announcement_id,
                'approvers': sorted(pending.approver_ids),
            },
        )
        self.logger.info(f"Result {pending.announcement_id} confirmed as contest {contest_id} (seq {sequence})")
        return contest_id, changes
    
    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------
    
    def disable(self, announcement_id: str) -> bool:
        """Cancel an active submission; returns False if it was not active"""
        pending = self.pending.get(announcement_id)
        if pending is None or pending.state != ConfirmationState.ACTIVE:
            return False
        pending.state = ConfirmationState.DISABLED
        self._close(pending)
        if pending.scope_id is not None:
            scope = self.scope(pending.scope_id)
            if scope.latest_pending_id == announcement_id:
                scope.latest_pending_id = None
        self.logger.info(f"Result {announcement_id} disabled")
        return True
    
    def disable_all(self, scope_id: Optional[str] = None) -> int:
        """Cancel every active submission, optionally only within one scope"""
        disabled = 0
        for announcement_id, pending in list(self.pending.items()):
            if scope_id is not None and pending.scope_id != scope_id:
                continue
            if self.disable(announcement_id):
                disabled += 1
        return disabled
    
    async def undo_latest(self, scope_id: str, admin_id: Optional[str] = None) -> OperationResult:
        """
        Quick undo for a scope.
        
        Cancels the scope's latest submission if it is still waiting for
        approvals, otherwise undoes the most recent committed operation.
        """
        scope = self.scope(scope_id)
        if scope.latest_pending_id is not None:
            announcement_id = scope.latest_pending_id
            if self.disable(announcement_id):
                return OperationResult(
                    performed=True,
                    description=f"Disabled pending result {announcement_id}",
                    kind='pending',
                )
            scope.latest_pending_id = None
        return await self.operation_log.undo(admin_id=admin_id)
