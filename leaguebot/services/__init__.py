"""
Services package for the league rating bot.
"""

from .league_service import LeagueService

__all__ = ['LeagueService']
