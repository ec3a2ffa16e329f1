"""
Snapshot data models for the undo/redo operation log.

A snapshot records the before/after state of one committed operation so the
operation can be reversed and re-applied exactly. Snapshots are immutable and
never read back from the store; the log owns them.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from leaguebot.config import Config
from leaguebot.database.models import Outcome, Participant, ParticipantType
from leaguebot.utils.rating import Rating, RatingConverter


@dataclass(frozen=True)
class ParticipantState:
    """Everything undo/redo needs to put a participant row back exactly."""
    participant_type: ParticipantType
    participant_id: str
    display_name: Optional[str]
    mu: float
    sigma: float
    wins: int = 0
    losses: int = 0
    draws: int = 0
    last_activity_at: Optional[datetime] = None
    decay_days_applied: int = 0
    default_deck: Optional[str] = None
    restricted: bool = False  # Read only; changed through ParticipantOperations.set_restricted
    
    @classmethod
    def from_model(cls, participant: Participant) -> 'ParticipantState':
        return cls(
            participant_type=participant.participant_type,
            participant_id=participant.participant_id,
            display_name=participant.display_name,
            mu=participant.mu,
            sigma=participant.sigma,
            wins=participant.wins or 0,
            losses=participant.losses or 0,
            draws=participant.draws or 0,
            last_activity_at=participant.last_activity_at,
            decay_days_applied=participant.decay_days_applied or 0,
            default_deck=participant.default_deck,
            restricted=bool(participant.restricted),
        )
    
    @classmethod
    def default(cls, participant_type: ParticipantType, participant_id: str,
                display_name: Optional[str] = None) -> 'ParticipantState':
        """A never-seen participant at the default prior"""
        return cls(
            participant_type=participant_type,
            participant_id=participant_id,
            display_name=display_name or participant_id,
            mu=Config.DEFAULT_MU,
            sigma=Config.DEFAULT_SIGMA,
        )
    
    @property
    def key(self) -> Tuple[ParticipantType, str]:
        return (self.participant_type, self.participant_id)
    
    @property
    def rating(self) -> Rating:
        return Rating(mu=self.mu, sigma=self.sigma)
    
    @property
    def score(self) -> int:
        return RatingConverter.score_of(self.mu, self.sigma)
    
    @property
    def contests_played(self) -> int:
        return self.wins + self.losses + self.draws
    
    def with_rating(self, rating: Rating) -> 'ParticipantState':
        return replace(self, mu=rating.mu, sigma=rating.sigma)
    
    def apply_to(self, participant: Participant):
        """Write this state onto a participant row"""
        participant.display_name = self.display_name
        participant.mu = self.mu
        participant.sigma = self.sigma
        participant.wins = self.wins
        participant.losses = self.losses
        participant.draws = self.draws
        participant.last_activity_at = self.last_activity_at
        participant.decay_days_applied = self.decay_days_applied
        participant.default_deck = self.default_deck
        participant.recount()


@dataclass(frozen=True)
class MatchRecordState:
    """A match row as it was written at commit time."""
    participant_type: ParticipantType
    participant_id: str
    outcome: Outcome
    mu_before: float
    sigma_before: float
    mu_after: float
    sigma_after: float
    team: Optional[str] = None
    score: Optional[float] = None
    turn_order: Optional[int] = None

    @property
    def key(self) -> Tuple[ParticipantType, str]:
        return (self.participant_type, self.participant_id)


@dataclass(frozen=True)
class ContestSnapshot:
    """A confirmed contest: participants before submission and as persisted."""
    contest_id: str
    sequence: float
    kind: str
    records: Tuple[MatchRecordState, ...]
    before: Tuple[ParticipantState, ...]
    after: Tuple[ParticipantState, ...]
    created_at: Optional[datetime] = None
    submitted_by: Optional[str] = None
    
    @property
    def description(self) -> str:
        names = ", ".join(state.display_name or state.participant_id for state in self.after)
        return f"contest {self.contest_id} ({names})"


@dataclass(frozen=True)
class DecayEntry:
    """One decayed participant from a scan."""
    before: ParticipantState
    after: ParticipantState
    
    @property
    def participant_id(self) -> str:
        return self.before.participant_id
    
    @property
    def days_decayed(self) -> int:
        return self.after.decay_days_applied - self.before.decay_days_applied


@dataclass(frozen=True)
class DecayMetadata:
    grace_days: int
    score_floor: int
    score_per_day: int
    trigger: str  # 'real' or 'virtual'
    ran_at: datetime
    admin_id: Optional[str] = None
    virtual_days_offset: Optional[int] = None
    description: str = ""


@dataclass(frozen=True)
class DecaySnapshot:
    """Every participant decayed by a single scan."""
    entries: Tuple[DecayEntry, ...]
    metadata: DecayMetadata
    
    @property
    def description(self) -> str:
        return self.metadata.description or f"decay of {len(self.entries)} participant(s)"


class ManualEditKind(Enum):
    RATING = "rating"                    # mu / sigma / score
    RECORD = "record"                    # wins / losses / draws
    DECK_ASSIGNMENT = "deck_assignment"  # player's default deck
    TURN_ORDER = "turn_order"            # match record turn order
    CONTEST_ACTIVE = "contest_active"    # contest active flag, forces recalculation


@dataclass(frozen=True)
class ManualEditSnapshot:
    """
    An admin edit applied outside the confirmation workflow.
    
    before/after map field names to values; only the fields the edit touched
    are present. target_type is 'player', 'deck' or 'contest'. For turn order
    edits contest_id names the contest whose record was changed.
    """
    target_type: str
    target_id: str
    edit_kind: ManualEditKind
    before: Dict[str, Any] = field(default_factory=dict)
    after: Dict[str, Any] = field(default_factory=dict)
    contest_id: Optional[str] = None
    admin_id: Optional[str] = None
    reason: Optional[str] = None
    
    @property
    def description(self) -> str:
        fields = ", ".join(sorted(self.after))
        return f"{self.edit_kind.value} edit of {self.target_type} {self.target_id} ({fields})"


Snapshot = Union[ContestSnapshot, DecaySnapshot, ManualEditSnapshot]
