from datetime import timedelta
from types import SimpleNamespace

import pytest

from leaguebot.cogs.admin import parse_field_value
from leaguebot.cogs.events import EventsCog
from leaguebot.cogs.housekeeping import HousekeepingCog
from leaguebot.config import Config
from leaguebot.utils.rating_exceptions import InvalidEditError

from conftest import player, seed_participant

BOT_USER_ID = 999


def make_bot(service):
    return SimpleNamespace(
        league=service,
        user=SimpleNamespace(id=BOT_USER_ID),
        get_channel=lambda channel_id: None,
    )


class TestApprovalListener:
    async def test_reactions_confirm_result(self, service):
        cog = EventsCog(make_bot(service))
        await service.confirmations.start('123', [player('A', 'w'), player('B', 'l')])
        
        for user_id in (1, 2):
            await cog.handle_approval(123, user_id, Config.RANK_UPVOTE_EMOJI)
        result = await cog.handle_approval(123, 3, Config.RANK_UPVOTE_EMOJI)
        
        assert result.newly_confirmed
    
    async def test_other_emoji_and_bot_reactions_ignored(self, service):
        cog = EventsCog(make_bot(service))
        await service.confirmations.start('123', [player('A', 'w'), player('B', 'l')])
        
        assert await cog.handle_approval(123, 1, '🎉') is None
        assert await cog.handle_approval(123, BOT_USER_ID, Config.RANK_UPVOTE_EMOJI) is None
        assert service.confirmations.get('123').approvals == 0


class TestHousekeeping:
    async def test_decay_once(self, service, now):
        await seed_participant(service, 'A', 1100, now() - timedelta(days=10))
        cog = HousekeepingCog(make_bot(service))
        assert await cog.decay_once() == 1
    
    async def test_decay_errors_are_logged_not_raised(self, service, monkeypatch):
        async def broken(*args, **kwargs):
            raise RuntimeError("db gone")
        monkeypatch.setattr(service.decay, 'run', broken)
        cog = HousekeepingCog(make_bot(service))
        assert await cog.decay_once() == 0


class TestFieldParsing:
    @pytest.mark.parametrize("field,raw,expected", [
        ('score', '1200', 1200.0),
        ('sigma', '4.5', 4.5),
        ('wins', '3', 3),
        ('turn_order', '2', 2),
        ('active', 'False', False),
        ('active', 'yes', True),
        ('default_deck', ' Atraxa ', 'Atraxa'),
    ])
    def test_parses(self, field, raw, expected):
        assert parse_field_value(field, raw) == expected
    
    @pytest.mark.parametrize("field,raw", [('wins', 'many'), ('active', 'maybe'), ('colour', 'red')])
    def test_rejects(self, field, raw):
        with pytest.raises(InvalidEditError):
            parse_field_value(field, raw)
