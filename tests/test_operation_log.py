import pytest

from leaguebot.database.models import ContestStatus, ParticipantType
from leaguebot.services.league_service import LeagueService
from leaguebot.utils.rating_exceptions import PersistenceFailure

from conftest import confirm, player, state_of


class TestUndoRedo:
    async def test_nothing_to_undo_or_redo(self, service):
        undo = await service.undo()
        redo = await service.redo()
        assert not undo.performed and undo.description == "Nothing to undo"
        assert not redo.performed and redo.description == "Nothing to redo"
    
    async def test_contest_undo_restores_prior(self, service):
        result = await confirm(service, 'msg-1', [player('A', 'w'), player('B', 'l')])
        
        undo = await service.undo(admin_id='admin')
        assert undo.performed
        assert undo.kind == 'contest'
        assert undo.contest_id == result.contest_id
        
        for pid in ('A', 'B'):
            state = await state_of(service, pid)
            assert (state.mu, state.sigma) == (25.0, 8.333)
            assert (state.wins, state.losses, state.draws) == (0, 0, 0)
        
        contest = await service.contests.get(result.contest_id)
        assert contest.status == ContestStatus.UNDONE
        assert contest.active is False
        # Rows are kept for a later redo
        assert len(await service.contests.get_records(result.contest_id)) == 2
    
    async def test_commit_undo_redo_round_trip(self, service):
        result = await confirm(service, 'msg-1', [player('A', 'w'), player('B', 'l')])
        after_commit = {pid: await state_of(service, pid) for pid in ('A', 'B')}
        
        await service.undo()
        redo = await service.redo()
        assert redo.performed and redo.kind == 'contest'
        
        for pid in ('A', 'B'):
            assert await state_of(service, pid) == after_commit[pid]
        contest = await service.contests.get(result.contest_id)
        assert contest.status == ContestStatus.CONFIRMED
        assert contest.active is True
    
    async def test_round_trip_for_existing_participants(self, service):
        await confirm(service, 'msg-1', [player('A', 'w'), player('B', 'l')])
        await confirm(service, 'msg-2', [player('B', 'w'), player('A', 'l')])
        after_commit = {pid: await state_of(service, pid) for pid in ('A', 'B')}
        
        await service.undo()
        a = await state_of(service, 'A')
        assert (a.wins, a.losses) == (1, 0)
        
        await service.redo()
        for pid in ('A', 'B'):
            assert await state_of(service, pid) == after_commit[pid]
    
    async def test_new_commit_clears_redo(self, service):
        await confirm(service, 'msg-1', [player('A', 'w'), player('B', 'l')])
        await service.undo()
        await confirm(service, 'msg-2', [player('C', 'w'), player('D', 'l')])
        
        redo = await service.redo()
        assert not redo.performed
        assert redo.description == "Nothing to redo"
    
    async def test_depth_one_keeps_a_single_undo(self, service):
        await confirm(service, 'msg-1', [player('A', 'w'), player('B', 'l')])
        await confirm(service, 'msg-2', [player('C', 'w'), player('D', 'l')])
        
        assert (await service.undo()).performed
        assert not (await service.undo()).performed
        # The first contest is still in effect
        assert (await state_of(service, 'A')).wins == 1
    
    async def test_redo_recreates_removed_records(self, service, db):
        result = await confirm(service, 'msg-1', [player('A', 'w'), player('B', 'l')])
        await service.undo()
        
        async with db.transaction() as session:
            for record in await service.contests.get_records(result.contest_id, session=session):
                await session.delete(record)
        
        await service.redo()
        records = await service.contests.get_records(result.contest_id)
        assert {r.participant_id for r in records} == {'A', 'B'}
        contest = await service.contests.get(result.contest_id)
        assert contest.sequence == 1.0
    
    async def test_undo_failure_keeps_cursor(self, service, monkeypatch):
        await confirm(service, 'msg-1', [player('A', 'w'), player('B', 'l')])
        
        async def broken(*args, **kwargs):
            raise RuntimeError("locked")
        monkeypatch.setattr(service.contests, 'set_status', broken)
        
        with pytest.raises(PersistenceFailure):
            await service.undo()
        assert service.operation_log.can_undo()
        assert (await state_of(service, 'A')).wins == 1


class TestMultiStep:
    @pytest.fixture
    def deep_service(self, db, now):
        return LeagueService(db, now=now, required_approvals=3, log_depth=3)
    
    async def test_undo_and_redo_several_steps(self, deep_service):
        service = deep_service
        await confirm(service, 'm1', [player('A', 'w'), player('B', 'l')])
        await confirm(service, 'm2', [player('A', 'w'), player('B', 'l')])
        await confirm(service, 'm3', [player('A', 'w'), player('B', 'l')])
        final = await state_of(service, 'A')
        assert final.wins == 3
        
        for expected_wins in (2, 1, 0):
            assert (await service.undo()).performed
            assert (await state_of(service, 'A')).wins == expected_wins
        assert not (await service.undo()).performed
        
        for _ in range(3):
            assert (await service.redo()).performed
        assert await state_of(service, 'A') == final
    
    async def test_oldest_entries_fall_off(self, deep_service):
        service = deep_service
        for index in range(5):
            await confirm(service, f'm{index}', [player('A', 'w'), player('B', 'l')])
        
        info = service.operation_log.stack_info()
        assert info['undo_count'] == 3
        assert info['redo_count'] == 0
        for _ in range(3):
            await service.undo()
        assert not service.operation_log.can_undo()
        assert (await state_of(service, 'A')).wins == 2
    
    async def test_commit_truncates_after_cursor(self, deep_service):
        service = deep_service
        await confirm(service, 'm1', [player('A', 'w'), player('B', 'l')])
        await confirm(service, 'm2', [player('A', 'w'), player('B', 'l')])
        await service.undo()
        await service.undo()
        await confirm(service, 'm3', [player('C', 'w'), player('D', 'l')])
        
        assert service.operation_log.stack_info()['redo_count'] == 0
        assert not (await service.redo()).performed
    
    async def test_recalculating_edit_drops_older_history(self, deep_service):
        service = deep_service
        first = await confirm(service, 'm1', [player('A', 'w'), player('B', 'l')])
        await confirm(service, 'm2', [player('A', 'w'), player('C', 'l')])
        
        await service.manual_edits.apply('contest', first.contest_id, {'active': False})
        
        info = service.operation_log.stack_info()
        assert info['undo_count'] == 1
        assert info['next_undo'].startswith('contest_active')
        
        undo = await service.undo()
        assert undo.kind == 'manual'
        assert not (await service.undo()).performed
        assert (await state_of(service, 'A')).wins == 2
        assert (await state_of(service, 'B')).losses == 1
        
        assert (await service.redo()).performed
        assert (await state_of(service, 'A')).wins == 1


async def test_unknown_snapshot_type_rejected(service):
    with pytest.raises(TypeError):
        service.operation_log.commit(object())


async def test_cleanup_keeps_participants_with_live_matches(service):
    await confirm(service, 'm1', [player('A', 'w'), player('B', 'l')])
    await confirm(service, 'm2', [player('A', 'w'), player('C', 'l')])
    await service.undo()
    
    assert await service.participants.get(ParticipantType.PLAYER, 'A') is not None
    assert await service.participants.get(ParticipantType.PLAYER, 'B') is not None
    assert await service.participants.get(ParticipantType.PLAYER, 'C') is None
