"""
Contest Operations Module

Store access for contests and their match records: identifier allocation,
sequencing, status changes used by undo/redo, and the full chronological
rating replay.
"""

import secrets
import uuid
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple
from contextlib import asynccontextmanager
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from leaguebot.constants import ContestConstants
from leaguebot.database.models import (
    Contest, ContestStatus, MatchRecord, Participant, ParticipantType
)
from leaguebot.data_models.results import ParticipantChange
from leaguebot.data_models.snapshots import MatchRecordState, ParticipantState
from leaguebot.operations.rating_engine import RatingEntry, RatingUpdateEngine
from leaguebot.utils.logger import setup_logger

logger = setup_logger(__name__)


class ContestOperations:
    """Contest lifecycle and replay"""
    
    def __init__(self, database):
        self.db = database
        self.logger = logger
    
    @asynccontextmanager
    async def _get_session_context(self, session: Optional[AsyncSession] = None):
        """
        Provides a session context. Uses the provided session if available,
        otherwise creates and manages a new session.
        """
        if session:
            yield session
        else:
            async with self.db.get_session() as new_session:
                yield new_session
    
    async def get(self, contest_id: str, session: Optional[AsyncSession] = None) -> Optional[Contest]:
        async with self._get_session_context(session) as s:
            return await s.get(Contest, contest_id)
    
    async def get_records(self, contest_id: str,
                          session: Optional[AsyncSession] = None) -> List[MatchRecord]:
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(MatchRecord).where(MatchRecord.contest_id == contest_id).order_by(MatchRecord.id)
            )
            return list(result.scalars().all())
    
    async def generate_contest_id(self, session: AsyncSession) -> str:
        """
        Allocate a short unique contest id.
        
        Six uppercase hex characters from three random bytes; "0" and "000000"
        are never handed out. After too many collisions falls back to a longer
        uuid prefix.
        """
        for _ in range(ContestConstants.MAX_ID_ATTEMPTS):
            candidate = secrets.token_hex(ContestConstants.ID_BYTES).upper()
            if candidate in ContestConstants.RESERVED_IDS:
                continue
            if await session.get(Contest, candidate) is None:
                return candidate
        
        fallback = uuid.uuid4().hex[:ContestConstants.FALLBACK_ID_LENGTH].upper()
        self.logger.warning(f"Contest id space crowded, falling back to {fallback}")
        return fallback
    
    async def next_sequence(self, session: AsyncSession) -> float:
        """
        Next sequence number, strictly above every existing contest.
        
        Undone contests keep their sequence so a later redo never collides.
        """
        result = await session.execute(select(func.max(Contest.sequence)))
        highest = result.scalar()
        if highest is None:
            return ContestConstants.FIRST_SEQUENCE
        return float(int(highest) + 1)
    
    async def record_contest(self, contest_id: str, sequence: float, kind: str,
                             records: Sequence[MatchRecordState], created_at: datetime,
                             submitted_by: Optional[str], session: AsyncSession) -> Contest:
        """Create the contest row and one match record per participant"""
        contest = Contest(
            contest_id=contest_id,
            sequence=sequence,
            kind=kind,
            status=ContestStatus.CONFIRMED,
            active=True,
            submitted_by=submitted_by,
            created_at=created_at,
        )
        session.add(contest)
        for record in records:
            session.add(self._record_from_state(contest_id, record, created_at))
        await session.flush()
        return contest
    
    def _record_from_state(self, contest_id: str, record: MatchRecordState,
                           created_at: Optional[datetime]) -> MatchRecord:
        return MatchRecord(
            contest_id=contest_id,
            participant_type=record.participant_type,
            participant_id=record.participant_id,
            outcome=record.outcome,
            team=record.team,
            score=record.score,
            turn_order=record.turn_order,
            mu_before=record.mu_before,
            sigma_before=record.sigma_before,
            mu_after=record.mu_after,
            sigma_after=record.sigma_after,
            created_at=created_at,
        )
    
    async def set_status(self, contest_id: str, status: ContestStatus, active: bool,
                         session: AsyncSession) -> Contest:
        contest = await session.get(Contest, contest_id)
        if contest is None:
            raise LookupError(f"Contest {contest_id} not found")
        contest.status = status
        contest.active = active
        return contest
    
    async def ensure_contest(self, contest_id: str, sequence: float, kind: str,
                             created_at: Optional[datetime], submitted_by: Optional[str],
                             session: AsyncSession) -> Contest:
        """Get the contest row, recreating it under its original id and sequence if missing"""
        contest = await session.get(Contest, contest_id)
        if contest is None:
            contest = Contest(
                contest_id=contest_id,
                sequence=sequence,
                kind=kind,
                status=ContestStatus.CONFIRMED,
                active=True,
                submitted_by=submitted_by,
                created_at=created_at,
            )
            session.add(contest)
            self.logger.info(f"Recreated missing contest {contest_id} at sequence {sequence}")
        return contest
    
    async def recreate_missing_records(self, contest_id: str, records: Sequence[MatchRecordState],
                                       created_at: Optional[datetime], session: AsyncSession) -> int:
        """Re-insert any match record of the contest that no longer exists"""
        existing = {
            (record.participant_type, record.participant_id)
            for record in await self.get_records(contest_id, session=session)
        }
        missing = [record for record in records if record.key not in existing]
        for record in missing:
            session.add(self._record_from_state(contest_id, record, created_at))
        if missing:
            await session.flush()
            self.logger.info(f"Recreated {len(missing)} match record(s) for contest {contest_id}")
        return len(missing)
    
    async def set_turn_order(self, contest_id: str, participant_type: ParticipantType,
                             participant_id: str, turn_order: Optional[int],
                             session: AsyncSession) -> Optional[int]:
        """Change one record's turn order, returning the previous value"""
        result = await session.execute(
            select(MatchRecord).where(
                MatchRecord.contest_id == contest_id,
                MatchRecord.participant_type == participant_type,
                MatchRecord.participant_id == participant_id,
            )
        )
        record = result.scalar_one_or_none()
        if record is None:
            raise LookupError(f"{participant_id} has no record in contest {contest_id}")
        previous = record.turn_order
        record.turn_order = turn_order
        return previous
    
    async def live_contests(self, session: AsyncSession) -> List[Contest]:
        """Confirmed, active contests in sequence order"""
        result = await session.execute(
            select(Contest)
            .where(Contest.live_criteria())
            .order_by(Contest.sequence, Contest.created_at)
        )
        return list(result.scalars().all())
    
    @staticmethod
    def _is_ratable(entries: Sequence[RatingEntry]) -> bool:
        """At least one winner, one loser and two opposing teams"""
        outcomes = {entry.outcome for entry in entries}
        teams = {entry.team if entry.team is not None else index for index, entry in enumerate(entries)}
        return 'w' in outcomes and 'l' in outcomes and len(teams) > 1
    
    async def recalculate_all(self, engine: RatingUpdateEngine,
                              session: AsyncSession) -> List[ParticipantChange]:
        """
        Recompute every rating from scratch by replaying live contests in order.
        
        All participants are reset to the prior with an empty record, then each
        live contest is re-rated in sequence order. Match record before/after
        ratings are rewritten to the replayed values and last activity becomes
        the time of the participant's latest live contest. The caller is
        responsible for resetting the virtual decay clock.
        
        Returns:
            Changes for every participant whose state differs after the replay
        """
        result = await session.execute(select(Participant))
        rows: Dict[Tuple[ParticipantType, str], Participant] = {
            (p.participant_type, p.participant_id): p for p in result.scalars().all()
        }
        before = {key: ParticipantState.from_model(p) for key, p in rows.items()}
        
        default = engine.default_rating()
        for participant in rows.values():
            participant.mu = default.mu
            participant.sigma = default.sigma
            participant.wins = participant.losses = participant.draws = 0
            participant.last_activity_at = None
            participant.decay_days_applied = 0
            participant.recount()
        
        contests = await self.live_contests(session)
        for contest in contests:
            records = await self.get_records(contest.contest_id, session=session)
            if not records:
                continue
            
            for record in records:
                key = (record.participant_type, record.participant_id)
                if key not in rows:
                    participant = Participant(
                        participant_type=record.participant_type,
                        participant_id=record.participant_id,
                        display_name=record.participant_id,
                        mu=default.mu, sigma=default.sigma,
                        wins=0, losses=0, draws=0, contests_played=0,
                        restricted=False,
                        decay_days_applied=0,
                    )
                    session.add(participant)
                    rows[key] = participant
            
            # Players and decks are separate results, as at confirmation
            for participant_type in ParticipantType:
                group = [r for r in records if r.participant_type == participant_type]
                if not group:
                    continue
                entries = [
                    RatingEntry(
                        rating=rows[(r.participant_type, r.participant_id)].rating,
                        outcome=r.outcome.value,
                        team=r.team,
                        score=r.score,
                    )
                    for r in group
                ]
                if self._is_ratable(entries):
                    rated = engine.rate(entries)
                else:
                    self.logger.warning(f"Contest {contest.contest_id}: {participant_type.value} side "
                                        f"cannot be rated, replaying the record only")
                    rated = [entry.rating for entry in entries]
                for record, entry, after in zip(group, entries, rated):
                    record.mu_before, record.sigma_before = entry.rating.mu, entry.rating.sigma
                    record.mu_after, record.sigma_after = after.mu, after.sigma
            
            for record in records:
                participant = rows[(record.participant_type, record.participant_id)]
                participant.mu, participant.sigma = record.mu_after, record.sigma_after
                if record.outcome.value == 'w':
                    participant.wins += 1
                elif record.outcome.value == 'l':
                    participant.losses += 1
                else:
                    participant.draws += 1
                participant.recount()
                participant.last_activity_at = contest.created_at
        
        await session.flush()
        
        changes = []
        for key, participant in rows.items():
            after_state = ParticipantState.from_model(participant)
            before_state = before.get(key)
            if before_state is None:
                before_state = ParticipantState.default(key[0], key[1], participant.display_name)
            if before_state != after_state:
                changes.append(ParticipantChange(before=before_state, after=after_state))
        
        self.logger.info(f"Recalculated ratings from {len(contests)} live contest(s), "
                         f"{len(changes)} participant(s) changed")
        return changes
