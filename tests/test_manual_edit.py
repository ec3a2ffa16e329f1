import pytest

from leaguebot.database.models import ParticipantType
from leaguebot.data_models.snapshots import ManualEditKind
from leaguebot.utils.rating_exceptions import InvalidEditError, UnknownTargetError

from conftest import confirm, player, state_of


@pytest.fixture
async def played(service):
    return await confirm(service, 'msg-1', [player('A', 'w'), player('B', 'l')])


class TestManualEdits:
    async def test_set_score(self, service, played):
        before = await state_of(service, 'A')
        
        snapshot = await service.manual_edits.apply('player', 'A', {'score': 1200}, admin_id='admin', reason='fix')
        
        assert snapshot.edit_kind == ManualEditKind.RATING
        a = await state_of(service, 'A')
        assert a.score == 1200
        assert a.sigma == before.sigma
        assert (a.wins, a.losses) == (before.wins, before.losses)
    
    async def test_sigma_only_edit_keeps_score(self, service, played):
        before = await state_of(service, 'A')
        await service.manual_edits.apply('player', 'A', {'sigma': 5.0})
        a = await state_of(service, 'A')
        assert a.sigma == 5.0
        assert a.score == before.score
    
    async def test_undo_restores_exact_rating(self, service, played):
        before = await state_of(service, 'A')
        await service.manual_edits.apply('player', 'A', {'mu': 40.0, 'sigma': 3.0})
        
        undo = await service.undo()
        
        assert undo.kind == 'manual'
        assert await state_of(service, 'A') == before
        
        await service.redo()
        a = await state_of(service, 'A')
        assert (a.mu, a.sigma) == (40.0, 3.0)
    
    async def test_record_edit_recounts(self, service, played):
        await service.manual_edits.apply('player', 'B', {'wins': 4, 'draws': 2})
        b = await state_of(service, 'B')
        assert (b.wins, b.losses, b.draws) == (4, 1, 2)
        assert b.contests_played == 7
        
        stored = await service.participants.get(ParticipantType.PLAYER, 'B')
        assert stored.contests_played == 7
    
    async def test_deck_assignment_used_for_next_result(self, service, played):
        await service.manual_edits.apply('player', 'A', {'default_deck': 'Atraxa'})
        await service.manual_edits.apply('player', 'B', {'default_deck': 'Krenko'})
        
        await confirm(service, 'msg-2', [player('A', 'w'), player('B', 'l')])
        
        assert (await state_of(service, 'Atraxa', ParticipantType.DECK)).wins == 1
        assert (await state_of(service, 'Krenko', ParticipantType.DECK)).losses == 1
    
    async def test_turn_order_edit_and_undo(self, service, played):
        contest_id = played.contest_id
        await service.manual_edits.apply('player', 'A', {'turn_order': 2}, contest_id=contest_id)
        records = {r.participant_id: r for r in await service.contests.get_records(contest_id)}
        assert records['A'].turn_order == 2
        
        await service.undo()
        records = {r.participant_id: r for r in await service.contests.get_records(contest_id)}
        assert records['A'].turn_order is None
    
    async def test_deactivating_contest_recalculates(self, service, played):
        await confirm(service, 'msg-2', [player('A', 'w'), player('C', 'l')])
        await service.timewalk(2)
        after_both = await state_of(service, 'A')
        
        await service.manual_edits.apply('contest', played.contest_id, {'active': False})
        
        a = await state_of(service, 'A')
        assert (a.wins, a.losses) == (1, 0)
        assert await service.participants.get(ParticipantType.PLAYER, 'B') is None
        assert service.clock.days == 0
        
        await service.undo()
        a = await state_of(service, 'A')
        assert a.wins == 2
        assert (a.mu, a.sigma) == pytest.approx((after_both.mu, after_both.sigma))
        assert (await state_of(service, 'B')).losses == 1


class TestRecalculation:
    async def snapshot_all(self, service):
        return {
            (p.participant_type, p.participant_id): (p.mu, p.sigma, p.wins, p.losses)
            for p in await service.participants.list_all()
        }
    
    @pytest.mark.parametrize("results", [
        [
            [player('A', 'w', deck='Atraxa'), player('B', 'l', deck='Krenko')],
            [player('A', 'l', deck='Atraxa'), player('C', 'w', deck='Krenko')],
        ],
        [
            [player('A', 'w', deck='Atraxa', team='t1'), player('B', 'w', deck='Krenko', team='t1'),
             player('C', 'l', deck='Edgar', team='t2'), player('D', 'l', deck='Yuriko', team='t2')],
        ],
        [
            [player('A', 'w', deck='Atraxa'), player('B', 'l', deck='Krenko'),
             player('C', 'l', deck='Edgar')],
        ],
    ], ids=["decks", "teams", "three-way"])
    async def test_replay_reproduces_committed_ratings(self, service, results):
        for index, entries in enumerate(results):
            await confirm(service, f'm{index}', entries)
        committed = await self.snapshot_all(service)
        assert (ParticipantType.DECK, 'Atraxa') in committed
        
        await service.recalculate()
        
        replayed = await self.snapshot_all(service)
        assert replayed.keys() == committed.keys()
        for key, values in committed.items():
            assert replayed[key] == pytest.approx(values), key


class TestValidation:
    async def test_unknown_participant(self, service):
        with pytest.raises(UnknownTargetError):
            await service.manual_edits.apply('player', 'ghost', {'score': 1100})
    
    async def test_unknown_contest(self, service):
        with pytest.raises(UnknownTargetError):
            await service.manual_edits.apply('contest', 'ABCDEF', {'active': False})
    
    @pytest.mark.parametrize("target_type,fields", [
        ('player', {}),
        ('player', {'score': 1100, 'wins': 3}),
        ('player', {'score': 1100, 'mu': 30.0}),
        ('player', {'sigma': 50.0}),
        ('player', {'wins': -1}),
        ('deck', {'default_deck': 'Atraxa'}),
        ('contest', {'wins': 1}),
        ('team', {'wins': 1}),
    ])
    async def test_invalid_edits(self, service, played, target_type, fields):
        with pytest.raises(InvalidEditError):
            await service.manual_edits.apply(target_type, 'A', fields)
    
    async def test_turn_order_needs_contest(self, service, played):
        with pytest.raises(InvalidEditError):
            await service.manual_edits.apply('player', 'A', {'turn_order': 1})
