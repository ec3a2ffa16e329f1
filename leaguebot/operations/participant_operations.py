"""
Participant Operations Module

Store access for rated participants (players and decks). Every mutating method
expects the caller's transaction session so that a rating operation writes all
of its rows atomically.
"""

from typing import List, Optional, Tuple
from contextlib import asynccontextmanager
from sqlalchemy import select, exists, and_
from sqlalchemy.ext.asyncio import AsyncSession

from leaguebot.database.models import (
    Participant, ParticipantType, MatchRecord, Contest
)
from leaguebot.data_models.snapshots import ParticipantState
from leaguebot.utils.logger import setup_logger

logger = setup_logger(__name__)


class ParticipantOperations:
    """Lookup, lazy creation, state writes and orphan cleanup for participants"""
    
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
    
    async def get(self, participant_type: ParticipantType, participant_id: str,
                  session: Optional[AsyncSession] = None) -> Optional[Participant]:
        async with self._get_session_context(session) as s:
            return await s.get(Participant, (participant_type, participant_id))
    
    async def get_state(self, participant_type: ParticipantType, participant_id: str,
                        session: Optional[AsyncSession] = None) -> Optional[ParticipantState]:
        participant = await self.get(participant_type, participant_id, session=session)
        return ParticipantState.from_model(participant) if participant else None
    
    async def get_state_or_default(self, participant_type: ParticipantType, participant_id: str,
                                   display_name: Optional[str] = None,
                                   session: Optional[AsyncSession] = None) -> ParticipantState:
        """Current state, or the default prior for a participant never seen before"""
        state = await self.get_state(participant_type, participant_id, session=session)
        if state is None:
            return ParticipantState.default(participant_type, participant_id, display_name)
        return state
    
    async def list_all(self, participant_type: Optional[ParticipantType] = None,
                       session: Optional[AsyncSession] = None) -> List[Participant]:
        async with self._get_session_context(session) as s:
            query = select(Participant)
            if participant_type is not None:
                query = query.where(Participant.participant_type == participant_type)
            result = await s.execute(query.order_by(Participant.participant_type, Participant.participant_id))
            return list(result.scalars().all())
    
    async def write_state(self, state: ParticipantState, session: AsyncSession) -> Participant:
        """
        Upsert a participant row to exactly the given state.
        
        contests_played is recomputed from the record on every write.
        """
        participant = await session.get(Participant, state.key)
        if participant is None:
            participant = Participant(
                participant_type=state.participant_type,
                participant_id=state.participant_id,
            )
            session.add(participant)
            self.logger.debug(f"Creating participant {state.participant_type.value}:{state.participant_id}")
        state.apply_to(participant)
        return participant
    
    async def cleanup_orphans(self, session: AsyncSession) -> List[Tuple[ParticipantType, str]]:
        """
        Delete participants that no live contest references.
        
        A contest is live when it is confirmed and active. This is derived
        state and is never recorded in the operation log. Restricted players
        are kept so the restriction outlives their games.
        
        Returns:
            Keys of the removed participants
        """
        has_live_record = exists().where(and_(
            MatchRecord.participant_type == Participant.participant_type,
            MatchRecord.participant_id == Participant.participant_id,
            MatchRecord.contest_id == Contest.contest_id,
            Contest.live_criteria(),
        ))
        result = await session.execute(
            select(Participant).where(~has_live_record, Participant.restricted.is_(False))
        )
        orphans = list(result.scalars().all())
        
        removed = []
        for participant in orphans:
            removed.append((participant.participant_type, participant.participant_id))
            await session.delete(participant)
        
        if removed:
            self.logger.info(f"Cleanup removed {len(removed)} participant(s) with no live matches: "
                             f"{', '.join(pid for _, pid in removed)}")
        return removed
    
    async def set_restricted(self, participant_id: str, restricted: bool) -> bool:
        """
        Restrict or vindicate a player.
        
        A player never seen before gets a row at the default prior so the
        restriction applies to their first submission.
        
        Returns:
            True if the flag changed
        """
        async with self.db.transaction() as session:
            participant = await session.get(Participant, (ParticipantType.PLAYER, participant_id))
            if participant is None:
                if not restricted:
                    return False
                participant = await self.write_state(
                    ParticipantState.default(ParticipantType.PLAYER, participant_id), session=session
                )
            elif bool(participant.restricted) == restricted:
                return False
            participant.restricted = restricted
        
        self.logger.info(f"Player {participant_id} {'restricted' if restricted else 'vindicated'}")
        return True
