"""
Decay Engine Module

Erodes the score of inactive participants towards a floor.

Decay is linear: every day past the grace window costs a fixed number of
score points and raises sigma slightly. It is computed incrementally from a
per-participant checkpoint (decay_days_applied), so running a scan twice
without time passing changes nothing. A real contest resets the checkpoint.
Decay never touches last_activity_at: it must not look like activity.

Virtual time lets an admin simulate elapsed days ("timewalk") without waiting.
Virtual days only apply to participants who have not played since the current
timewalk session started.
"""

from dataclasses import replace
from datetime import datetime
from typing import Callable, List, Optional

from leaguebot.config import Config
from leaguebot.database.models import ChangeKind
from leaguebot.data_models.results import DecayRunResult, ParticipantChange
from leaguebot.data_models.snapshots import DecayEntry, DecayMetadata, DecaySnapshot, ParticipantState
from leaguebot.utils.clock import utc_now, whole_days_between
from leaguebot.utils.logger import setup_logger
from leaguebot.utils.rating import RatingConverter
from leaguebot.utils.rating_exceptions import PersistenceFailure

logger = setup_logger(__name__)

TRIGGER_REAL = 'real'
TRIGGER_VIRTUAL = 'virtual'


class VirtualClock:
    """Process-wide simulated extra days for decay testing"""
    
    def __init__(self, now: Callable[[], datetime] = utc_now):
        self.now = now
        self.days = 0
        self.session_started_at: Optional[datetime] = None
    
    def advance(self, days: int) -> int:
        """Add simulated days, starting a session if none is running; returns the new total"""
        if days <= 0:
            raise ValueError("Virtual days must be positive")
        if self.session_started_at is None:
            self.session_started_at = self.now()
        self.days += days
        logger.info(f"Virtual clock advanced by {days} day(s), total {self.days}")
        return self.days
    
    def reset(self):
        if self.days or self.session_started_at:
            logger.info(f"Virtual clock reset (was {self.days} day(s))")
        self.days = 0
        self.session_started_at = None
    
    def applicable_days(self, last_activity_at: Optional[datetime]) -> int:
        """Virtual days that count for a participant last active at last_activity_at"""
        if not self.days or self.session_started_at is None:
            return 0
        if last_activity_at is not None and last_activity_at > self.session_started_at:
            return 0
        return self.days


class DecayEngine:
    """Scans participants and applies inactivity decay"""
    
    def __init__(self, database, participant_ops, operation_log, audit, clock: VirtualClock,
                 now: Callable[[], datetime] = utc_now,
                 grace_days: int = None, score_per_day: int = None, score_floor: int = None,
                 sigma_step: float = None, sigma_step_cap: float = None, max_sigma: float = None):
        self.db = database
        self.participant_ops = participant_ops
        self.operation_log = operation_log
        self.audit = audit
        self.clock = clock
        self.now = now
        self.grace_days = Config.DECAY_START_DAYS if grace_days is None else grace_days
        self.score_per_day = Config.DECAY_SCORE_PER_DAY if score_per_day is None else score_per_day
        self.score_floor = Config.DECAY_SCORE_FLOOR if score_floor is None else score_floor
        self.sigma_step = Config.DECAY_SIGMA_STEP if sigma_step is None else sigma_step
        self.sigma_step_cap = Config.DECAY_SIGMA_STEP_CAP if sigma_step_cap is None else sigma_step_cap
        self.max_sigma = Config.MAX_SIGMA if max_sigma is None else max_sigma
        self.logger = logger
    
    def _elapsed_days(self, state: ParticipantState, now: datetime) -> int:
        return (whole_days_between(state.last_activity_at, now)
                + self.clock.applicable_days(state.last_activity_at))
    
    def decayed_state(self, state: ParticipantState, now: datetime) -> Optional[ParticipantState]:
        """
        Compute a participant's state after decay
        
        Args:
            state: Current participant state
            now: Real current time
            
        Returns:
            The decayed state, or None when the participant does not decay
        """
        if state.contests_played <= 0 or state.last_activity_at is None:
            return None
        
        total_past_grace = max(0, self._elapsed_days(state, now) - self.grace_days)
        new_days = total_past_grace - state.decay_days_applied
        if new_days <= 0:
            return None
        
        current_score = state.score
        if current_score <= self.score_floor:
            return None
        
        decay_amount = new_days * self.score_per_day
        if decay_amount <= 0:
            return None
        target_score = max(current_score - decay_amount, self.score_floor)
        
        sigma_increase = min(new_days * self.sigma_step, self.sigma_step_cap)
        new_sigma = max(state.sigma, min(state.sigma + sigma_increase, self.max_sigma))
        new_mu = RatingConverter.mu_for(target_score, new_sigma)
        
        return replace(
            state,
            mu=new_mu,
            sigma=new_sigma,
            decay_days_applied=total_past_grace,
        )
    
    async def run(self, trigger: str = TRIGGER_REAL, virtual_days_offset: Optional[int] = None,
                  admin_id: Optional[str] = None) -> DecayRunResult:
        """
        Run one decay scan over every participant
        
        Args:
            trigger: 'real' for the scheduled scan, 'virtual' for a timewalk
            virtual_days_offset: Days to advance the virtual clock before scanning
            admin_id: Discord ID of the admin who triggered a timewalk
            
        Returns:
            DecayRunResult with one change per decayed participant
        """
        if trigger not in (TRIGGER_REAL, TRIGGER_VIRTUAL):
            raise ValueError(f"Unknown decay trigger '{trigger}'")
        
        previous_clock = (self.clock.days, self.clock.session_started_at)
        if virtual_days_offset:
            self.clock.advance(virtual_days_offset)
        
        now = self.now()
        entries: List[DecayEntry] = []
        try:
            async with self.db.transaction() as session:
                for participant in await self.participant_ops.list_all(session=session):
                    state = ParticipantState.from_model(participant)
                    decayed = self.decayed_state(state, now)
                    if decayed is None:
                        continue
                    await self.participant_ops.write_state(decayed, session=session)
                    entries.append(DecayEntry(before=state, after=decayed))
        except Exception as e:
            self.clock.days, self.clock.session_started_at = previous_clock
            self.logger.error(f"Decay scan failed: {e}")
            raise PersistenceFailure("decay", str(e)) from e
        
        changes = tuple(ParticipantChange(before=e.before, after=e.after) for e in entries)
        
        if entries:
            if trigger == TRIGGER_VIRTUAL:
                description = f"timewalk decay of {len(entries)} participant(s) (+{self.clock.days} virtual days)"
            else:
                description = f"decay of {len(entries)} participant(s)"
            metadata = DecayMetadata(
                grace_days=self.grace_days,
                score_floor=self.score_floor,
                score_per_day=self.score_per_day,
                trigger=trigger,
                ran_at=now,
                admin_id=str(admin_id) if admin_id is not None else None,
                virtual_days_offset=virtual_days_offset,
                description=description,
            )
            self.operation_log.commit(DecaySnapshot(entries=tuple(entries), metadata=metadata))
            await self.audit.record(
                changes, ChangeKind.DECAY, admin_id=admin_id,
                parameters={
                    'trigger': trigger,
                    'grace_days': self.grace_days,
                    'score_floor': self.score_floor,
                    'score_per_day': self.score_per_day,
                    'virtual_days': self.clock.days,
                },
            )
            self.logger.info(f"Decay ({trigger}) applied to {len(entries)} participant(s)")
        else:
            self.logger.info(f"Decay ({trigger}) found nobody to decay")
        
        return DecayRunResult(trigger=trigger, changes=changes, virtual_days=self.clock.days)
    
    async def min_days_for_next_decay(self) -> int:
        """
        Smallest number of extra days after which someone would decay.
        
        Returns 1 when someone already has undecayed days pending, and
        grace + 1 when nobody is eligible at all.
        """
        now = self.now()
        needed: List[int] = []
        for participant in await self.participant_ops.list_all():
            state = ParticipantState.from_model(participant)
            if state.contests_played <= 0 or state.last_activity_at is None:
                continue
            if state.score <= self.score_floor:
                continue
            elapsed = self._elapsed_days(state, now)
            needed.append(self.grace_days + state.decay_days_applied + 1 - elapsed)
        
        if not needed:
            return self.grace_days + 1
        return max(1, min(needed))
