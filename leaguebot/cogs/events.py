import discord
from discord.ext import commands

from leaguebot.config import Config
from leaguebot.utils.logger import setup_logger

logger = setup_logger(__name__)


class EventsCog(commands.Cog):
    """Reaction listener feeding result approvals into the confirmation workflow"""
    
    def __init__(self, bot):
        self.bot = bot
        self.logger = logger
    
    async def handle_approval(self, message_id: int, user_id: int, emoji: str, channel_id: int = None):
        """Count an approval reaction; announces the result once it is confirmed"""
        if emoji != Config.RANK_UPVOTE_EMOJI:
            return None
        if self.bot.user is not None and user_id == self.bot.user.id:
            return None
        
        result = await self.bot.league.confirmations.approve(str(message_id), str(user_id))
        if not result.newly_confirmed:
            return result
        
        self.logger.info(f"Result {message_id} confirmed as contest {result.contest_id}")
        channel = self.bot.get_channel(channel_id) if channel_id else None
        if channel is not None:
            lines = [
                f"**{change.display_name}**: {change.score_before} → {change.score_after} "
                f"({change.score_delta:+d})"
                for change in result.changes
            ]
            embed = discord.Embed(
                title=f"✅ Game {result.contest_id} confirmed",
                description="\n".join(lines),
                color=discord.Color.green()
            )
            await channel.send(embed=embed)
        return result
    
    @commands.Cog.listener()
    async def on_raw_reaction_add(self, payload: discord.RawReactionActionEvent):
        try:
            await self.handle_approval(payload.message_id, payload.user_id, str(payload.emoji), payload.channel_id)
        except Exception as e:
            self.logger.error(f"Failed to process approval on {payload.message_id}: {e}", exc_info=True)


async def setup(bot):
    await bot.add_cog(EventsCog(bot))
