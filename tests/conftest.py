from datetime import datetime, timedelta

import pytest

from leaguebot.database.database import Database
from leaguebot.database.models import Outcome, ParticipantType
from leaguebot.data_models.snapshots import MatchRecordState, ParticipantState
from leaguebot.operations.confirmation import SubmittedEntry
from leaguebot.services.league_service import LeagueService
from leaguebot.utils.rating import RatingConverter


class FakeNow:
    """Controllable clock shared by the service under test"""
    
    def __init__(self, start: datetime = datetime(2024, 3, 1, 12, 0, 0)):
        self.current = start
    
    def __call__(self) -> datetime:
        return self.current
    
    def advance(self, days: float = 0, hours: float = 0):
        self.current += timedelta(days=days, hours=hours)


@pytest.fixture
def now():
    return FakeNow()


@pytest.fixture
async def db(tmp_path):
    database = Database(f"sqlite:///{tmp_path / 'league.db'}")
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def service(db, now):
    league = LeagueService(db, now=now, required_approvals=3, log_depth=1)
    league.decay.grace_days = 6
    league.decay.score_per_day = 1
    league.decay.score_floor = 1050
    league.decay.sigma_step = 0.01
    league.decay.sigma_step_cap = 2.0
    league.decay.max_sigma = 10.0
    return league


def player(participant_id, outcome, **kwargs):
    return SubmittedEntry(participant_id=participant_id, outcome=outcome, **kwargs)


async def confirm(service, announcement_id, entries, approvers=('u1', 'u2', 'u3'), scope_id='guild'):
    """Submit a result and approve it until it commits"""
    await service.confirmations.start(announcement_id, entries, submitted_by='submitter', scope_id=scope_id)
    result = None
    for approver in approvers:
        result = await service.confirmations.approve(announcement_id, approver)
    return result


async def seed_participant(service, participant_id, score, last_activity_at, wins=1, losses=0,
                           sigma=8.333, participant_type=ParticipantType.PLAYER, decay_days_applied=0):
    """Write a participant with a given score and last activity, backed by one live contest"""
    state = ParticipantState(
        participant_type=participant_type,
        participant_id=participant_id,
        display_name=participant_id,
        mu=RatingConverter.mu_for(score, sigma),
        sigma=sigma,
        wins=wins,
        losses=losses,
        last_activity_at=last_activity_at,
        decay_days_applied=decay_days_applied,
    )
    record = MatchRecordState(
        participant_type=participant_type,
        participant_id=participant_id,
        outcome=Outcome.WIN,
        mu_before=state.mu, sigma_before=sigma,
        mu_after=state.mu, sigma_after=sigma,
    )
    async with service.db.transaction() as session:
        await service.participants.write_state(state, session=session)
        contest_id = await service.contests.generate_contest_id(session)
        sequence = await service.contests.next_sequence(session)
        await service.contests.record_contest(
            contest_id, sequence, "seed", [record], last_activity_at or service.now(), None, session=session
        )
    return state


async def state_of(service, participant_id, participant_type=ParticipantType.PLAYER):
    return await service.participants.get_state_or_default(participant_type, participant_id)
