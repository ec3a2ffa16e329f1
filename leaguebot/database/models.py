from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Text, Float,
    ForeignKey, Enum as SQLEnum, UniqueConstraint, Index, and_
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func
from enum import Enum

from leaguebot.utils.rating import Rating, RatingConverter

Base = declarative_base()

class ParticipantType(Enum):
    PLAYER = "player"
    DECK = "deck"

class Outcome(Enum):
    WIN = "w"
    LOSS = "l"
    DRAW = "d"

class ContestStatus(Enum):
    CONFIRMED = "confirmed"
    UNDONE = "undone"

class ChangeKind(Enum):
    CONTEST = "contest"
    MANUAL = "manual"
    DECAY = "decay"
    UNDO = "undo"
    REDO = "redo"

class Participant(Base):
    """
    A rated entity: a player or a deck.
    
    Players and decks are rated independently, so the primary key is the pair
    (participant_type, participant_id). Rows are created lazily with the default
    prior the first time a confirmed contest references them.
    """
    __tablename__ = 'participants'
    
    participant_type = Column(SQLEnum(ParticipantType), primary_key=True)
    participant_id = Column(String(100), primary_key=True)
    display_name = Column(String(100))
    
    # Rating
    mu = Column(Float, nullable=False)
    sigma = Column(Float, nullable=False)
    
    # Record; contests_played is always wins + losses + draws
    wins = Column(Integer, default=0, nullable=False)
    losses = Column(Integer, default=0, nullable=False)
    draws = Column(Integer, default=0, nullable=False)
    contests_played = Column(Integer, default=0, nullable=False)
    
    # Decay tracking
    last_activity_at = Column(DateTime, nullable=True)
    decay_days_applied = Column(Integer, default=0, nullable=False)  # Days past grace already decayed
    
    # Players only: deck used when a submission names none
    default_deck = Column(String(100), nullable=True)
    
    # Players only: barred from submitted results until vindicated
    restricted = Column(Boolean, default=False, nullable=False)
    
    created_at = Column(DateTime, default=func.now())
    
    def __repr__(self):
        return (f"<Participant({self.participant_type.value}:{self.participant_id}, "
                f"mu={self.mu:.3f}, sigma={self.sigma:.3f})>")
    
    @property
    def rating(self) -> Rating:
        return Rating(mu=self.mu, sigma=self.sigma)
    
    @property
    def score(self) -> int:
        return RatingConverter.score_of(self.mu, self.sigma)
    
    @property
    def record(self) -> str:
        return f"{self.wins}-{self.losses}-{self.draws}"
    
    def recount(self):
        """Recompute contests_played from the W/L/D record"""
        self.contests_played = (self.wins or 0) + (self.losses or 0) + (self.draws or 0)

class Contest(Base):
    """A confirmed (or later undone) game; one row per contest id"""
    __tablename__ = 'contests'
    
    contest_id = Column(String(16), primary_key=True)
    
    # Total order for chronological replay, independent of wall clock
    sequence = Column(Float, nullable=False, index=True)
    kind = Column(String(20), default='1v1', nullable=False)
    status = Column(SQLEnum(ContestStatus), default=ContestStatus.CONFIRMED, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    
    submitted_by = Column(String(50), nullable=True)
    created_at = Column(DateTime, default=func.now())
    
    records = relationship("MatchRecord", back_populates="contest", cascade="all, delete-orphan")
    
    def __repr__(self):
        return f"<Contest({self.contest_id}, seq={self.sequence}, {self.status.value}, active={self.active})>"
    
    @classmethod
    def live_criteria(cls):
        """SQL criteria for contests that count towards ratings and participant retention"""
        return and_(cls.status == ContestStatus.CONFIRMED, cls.active.is_(True))

class MatchRecord(Base):
    """
    One participant's result in one contest.
    
    participant_id is deliberately not a foreign key: undone contests keep their
    rows even after the participant itself has been cleaned up, so redo can
    recreate the participant from the record.
    """
    __tablename__ = 'match_records'
    
    id = Column(Integer, primary_key=True)
    contest_id = Column(String(16), ForeignKey('contests.contest_id'), nullable=False, index=True)
    participant_type = Column(SQLEnum(ParticipantType), nullable=False)
    participant_id = Column(String(100), nullable=False)
    
    outcome = Column(SQLEnum(Outcome), nullable=False)
    team = Column(String(50), nullable=True)
    score = Column(Float, nullable=True)  # In-game score, ranks the contest when every entry has one
    turn_order = Column(Integer, nullable=True)
    
    mu_before = Column(Float, nullable=False)
    sigma_before = Column(Float, nullable=False)
    mu_after = Column(Float, nullable=False)
    sigma_after = Column(Float, nullable=False)
    
    created_at = Column(DateTime, default=func.now())
    
    contest = relationship("Contest", back_populates="records")
    
    __table_args__ = (
        UniqueConstraint('contest_id', 'participant_type', 'participant_id', name='uq_record_contest_participant'),
        Index('ix_record_participant', 'participant_type', 'participant_id'),
    )
    
    def __repr__(self):
        return f"<MatchRecord({self.contest_id}, {self.participant_id}, {self.outcome.value})>"
    
    @property
    def score_change(self) -> int:
        return (RatingConverter.score_of(self.mu_after, self.sigma_after)
                - RatingConverter.score_of(self.mu_before, self.sigma_before))

class RatingAudit(Base):
    """Append-only history of every rating change; never read by undo/redo"""
    __tablename__ = 'rating_audits'
    
    id = Column(Integer, primary_key=True)
    target_type = Column(SQLEnum(ParticipantType), nullable=False)
    target_id = Column(String(100), nullable=False)
    display_name = Column(String(100))
    change_kind = Column(SQLEnum(ChangeKind), nullable=False, index=True)
    
    mu_before = Column(Float)
    sigma_before = Column(Float)
    score_before = Column(Integer)
    mu_after = Column(Float)
    sigma_after = Column(Float)
    score_after = Column(Integer)
    
    wins_before = Column(Integer)
    losses_before = Column(Integer)
    draws_before = Column(Integer)
    wins_after = Column(Integer)
    losses_after = Column(Integer)
    draws_after = Column(Integer)
    
    acting_admin_id = Column(String(50), nullable=True, index=True)
    parameters = Column(Text)  # JSON string
    reason = Column(Text)
    
    created_at = Column(DateTime, default=func.now(), index=True)
    
    __table_args__ = (
        Index('ix_audit_target', 'target_type', 'target_id'),
    )
    
    def __repr__(self):
        return (f"<RatingAudit({self.change_kind.value} {self.target_type.value}:{self.target_id}, "
                f"{self.score_before}->{self.score_after})>")
    
    @property
    def score_delta(self) -> int:
        if self.score_before is None or self.score_after is None:
            return 0
        return self.score_after - self.score_before
