"""
Housekeeping Cog - Background Tasks

Runs the scheduled inactivity decay scan.
"""

from discord.ext import commands, tasks

from leaguebot.config import Config
from leaguebot.utils.logger import setup_logger

logger = setup_logger(__name__)


class HousekeepingCog(commands.Cog):
    """Background maintenance tasks"""
    
    def __init__(self, bot):
        self.bot = bot
        self.logger = logger
    
    @commands.Cog.listener()
    async def on_ready(self):
        """Start background tasks after bot is ready"""
        if self.bot.league is None:
            self.logger.error("HousekeepingCog: League service not available")
            return
        if not self.run_decay.is_running():
            self.run_decay.start()
            self.logger.info("HousekeepingCog: Decay task started")
    
    def cog_unload(self):
        """Stop background tasks when cog is unloaded"""
        self.run_decay.cancel()
        self.logger.info("HousekeepingCog: Background tasks stopped")
    
    async def decay_once(self) -> int:
        """One scheduled decay scan; errors are logged so the loop keeps running"""
        try:
            result = await self.bot.league.decay.run()
        except Exception as e:
            self.logger.error(f"Error in decay task: {e}", exc_info=True)
            return 0
        if result.count:
            self.logger.info(f"Scheduled decay affected {result.count} participant(s)")
        return result.count
    
    @tasks.loop(hours=Config.DECAY_CHECK_HOURS)
    async def run_decay(self):
        """Background task applying real-time decay"""
        await self.decay_once()
    
    @run_decay.before_loop
    async def before_decay_task(self):
        """Wait for bot to be ready before starting decay task"""
        await self.bot.wait_until_ready()


async def setup(bot):
    await bot.add_cog(HousekeepingCog(bot))
