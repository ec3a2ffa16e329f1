import discord
from discord import app_commands
from discord.ext import commands
from typing import Optional

from leaguebot.config import Config
from leaguebot.operations.confirmation import SubmittedEntry
from leaguebot.utils.logger import setup_logger
from leaguebot.utils.rating_exceptions import RatingException

logger = setup_logger(__name__)


class MatchCommandsCog(commands.Cog):
    """Result submission"""
    
    def __init__(self, bot):
        self.bot = bot
        self.logger = logger
    
    @app_commands.command(name="report-game", description="Report a game result for confirmation")
    @app_commands.describe(
        winner="Player who won",
        loser="Player who lost",
        winner_deck="Deck the winner played (defaults to their assigned deck)",
        loser_deck="Deck the loser played (defaults to their assigned deck)"
    )
    async def report_game(self, interaction: discord.Interaction, winner: discord.Member,
                          loser: discord.Member, winner_deck: Optional[str] = None,
                          loser_deck: Optional[str] = None):
        entries = [
            SubmittedEntry(participant_id=str(winner.id), outcome='w',
                           display_name=winner.display_name, deck=winner_deck, turn_order=1),
            SubmittedEntry(participant_id=str(loser.id), outcome='l',
                           display_name=loser.display_name, deck=loser_deck, turn_order=2),
        ]
        
        await interaction.response.send_message(
            f"📝 **Pending result**: {winner.mention} beat {loser.mention}\n"
            f"React with {Config.RANK_UPVOTE_EMOJI} to confirm "
            f"({Config.RANK_UPVOTES_REQUIRED} approvals needed)."
        )
        message = await interaction.original_response()
        
        try:
            pending = await self.bot.league.confirmations.start(
                str(message.id), entries,
                submitted_by=str(interaction.user.id),
                scope_id=str(interaction.guild_id) if interaction.guild_id else None,
            )
        except RatingException as e:
            await message.edit(content=e.user_message)
            return
        
        await message.add_reaction(Config.RANK_UPVOTE_EMOJI)
        self.logger.info(f"Result {message.id} submitted by {interaction.user.id} "
                         f"with {len(pending.entries)} rated entries")


async def setup(bot):
    await bot.add_cog(MatchCommandsCog(bot))
