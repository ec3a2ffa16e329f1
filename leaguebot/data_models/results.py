"""
Result data models returned by rating operations.

These are structured values for the cog layer to render; nothing here formats
user-facing text beyond short summaries.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from leaguebot.data_models.snapshots import ParticipantState


@dataclass(frozen=True)
class ParticipantChange:
    """Before/after state of one participant touched by an operation."""
    before: ParticipantState
    after: ParticipantState
    
    @property
    def participant_type(self):
        return self.after.participant_type
    
    @property
    def participant_id(self) -> str:
        return self.after.participant_id
    
    @property
    def display_name(self) -> str:
        return self.after.display_name or self.after.participant_id
    
    @property
    def score_before(self) -> int:
        return self.before.score
    
    @property
    def score_after(self) -> int:
        return self.after.score
    
    @property
    def score_delta(self) -> int:
        return self.score_after - self.score_before


@dataclass(frozen=True)
class OperationResult:
    """Outcome of an undo or redo request."""
    performed: bool
    description: str
    kind: Optional[str] = None  # 'contest', 'decay' or 'manual'
    changes: Tuple[ParticipantChange, ...] = ()
    contest_id: Optional[str] = None


@dataclass(frozen=True)
class DecayRunResult:
    """Outcome of one decay scan."""
    trigger: str
    changes: Tuple[ParticipantChange, ...]
    virtual_days: int = 0
    
    @property
    def count(self) -> int:
        return len(self.changes)


class ConfirmationState(Enum):
    ACTIVE = "active"
    CONFIRMED = "confirmed"
    DISABLED = "disabled"


@dataclass(frozen=True)
class ApprovalResult:
    """Outcome of one approval signal."""
    announcement_id: str
    state: Optional[ConfirmationState]  # None when the announcement is unknown
    approvals: int
    required: int
    newly_confirmed: bool = False
    contest_id: Optional[str] = None
    changes: Tuple[ParticipantChange, ...] = ()
