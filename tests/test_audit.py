import json

from leaguebot.database.models import ChangeKind, ParticipantType

from conftest import confirm, player


async def test_contest_writes_one_entry_per_participant(service):
    await confirm(service, 'msg-1', [player('A', 'w'), player('B', 'l')])
    
    entries = await service.audit.get_all()
    assert len(entries) == 2
    assert {e.change_kind for e in entries} == {ChangeKind.CONTEST}
    a = next(e for e in entries if e.target_id == 'A')
    assert (a.wins_before, a.wins_after) == (0, 1)
    assert a.score_before == 1000
    assert a.score_after > 1000
    assert json.loads(a.parameters)['announcement_id'] == 'msg-1'


async def test_undo_and_redo_entries(service):
    await confirm(service, 'msg-1', [player('A', 'w'), player('B', 'l')])
    await service.undo(admin_id='42')
    await service.redo(admin_id='42')
    
    reversals = await service.audit.get_all('undo_or_redo')
    assert len(reversals) == 4
    assert {e.change_kind for e in reversals} == {ChangeKind.UNDO, ChangeKind.REDO}
    assert all(e.acting_admin_id == '42' for e in reversals)
    assert len(await service.audit.get_all('undo')) == 2


async def test_history_for_target_newest_first(service):
    await confirm(service, 'msg-1', [player('A', 'w'), player('B', 'l')])
    await confirm(service, 'msg-2', [player('A', 'w'), player('C', 'l')])
    
    history = await service.audit.get_for_target(ParticipantType.PLAYER, 'A')
    assert len(history) == 2
    assert history[0].wins_after == 2
    assert history[1].wins_after == 1
    
    assert len(await service.audit.get_for_target(ParticipantType.PLAYER, 'A', limit=1)) == 1


async def test_manual_changes_by_admin(service):
    await confirm(service, 'msg-1', [player('A', 'w'), player('B', 'l')])
    await service.manual_edits.apply('player', 'A', {'score': 1111}, admin_id='7', reason='typo')
    await service.manual_edits.apply('player', 'B', {'score': 999}, admin_id='8')
    
    by_seven = await service.audit.get_manual_by_admin('7')
    assert len(by_seven) == 1
    assert by_seven[0].target_id == 'A'
    assert by_seven[0].score_after == 1111
    assert by_seven[0].reason == 'typo'


async def test_audit_failure_does_not_roll_back_primary_write(service, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("audit table missing")
    monkeypatch.setattr(service.audit, '_build_entry', broken)
    
    result = await confirm(service, 'msg-1', [player('A', 'w'), player('B', 'l')])
    
    assert result.newly_confirmed
    assert (await service.participants.get(ParticipantType.PLAYER, 'A')).wins == 1
    assert service.operation_log.can_undo()
    assert await service.audit.get_all() == []


async def test_record_with_no_changes_writes_nothing(service):
    assert await service.audit.record([], ChangeKind.DECAY) == 0
