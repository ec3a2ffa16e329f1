import asyncio
import logging
import traceback
from typing import Optional

import discord
from discord.ext import commands
from discord import app_commands

from leaguebot.config import Config
from leaguebot.database.database import Database
from leaguebot.services.league_service import LeagueService
from leaguebot.utils.logger import setup_logger
from leaguebot.utils.rating_exceptions import RatingException

class LeagueBot(commands.Bot):
    def __init__(self):
        intents = discord.Intents.default()
        intents.message_content = True
        intents.guilds = True
        intents.members = True
        intents.reactions = True
        
        super().__init__(
            command_prefix=Config.COMMAND_PREFIX,
            intents=intents,
            help_command=None
        )
        
        self.tree.on_error = self.on_app_command_error
        
        self.db: Optional[Database] = None
        self.league: Optional[LeagueService] = None
        self.logger = setup_logger(__name__)
        
    async def setup_hook(self):
        """Called when the bot is starting up"""
        self.logger.info("Setting up League Bot...")
        
        self.db = Database()
        await self.db.initialize()
        
        self.league = LeagueService(self.db)
        self.logger.info("League service initialized")
        
        await self.load_cogs()
        await self._sync_commands()
        
        self.logger.info("League Bot setup complete!")
        
    async def load_cogs(self):
        """Load all cogs"""
        cogs_to_load = [
            'leaguebot.cogs.admin',
            'leaguebot.cogs.events',
            'leaguebot.cogs.match_commands',
            'leaguebot.cogs.housekeeping',
        ]
        
        for cog in cogs_to_load:
            try:
                await self.load_extension(cog)
                self.logger.info(f"Loaded cog: {cog}")
            except Exception as e:
                self.logger.error(f"Failed to load cog {cog}: {e}", exc_info=True)
    
    async def _sync_commands(self):
        """Sync slash commands with Discord"""
        if not self.tree.get_commands():
            self.logger.warning("No application commands found to sync. Check for cog loading errors.")
            return
            
        try:
            guild_ids = Config.get_guild_ids()
            
            if guild_ids:
                total_synced = 0
                for guild_id in guild_ids:
                    try:
                        guild = discord.Object(id=guild_id)
                        self.tree.copy_global_to(guild=guild)
                        synced = await self.tree.sync(guild=guild)
                        self.logger.info(f"Successfully synced {len(synced)} command(s) to guild {guild_id}")
                        total_synced += len(synced)
                    except discord.errors.Forbidden:
                        self.logger.error(f"Permission error syncing to guild {guild_id}. Ensure the bot has the 'application.commands' scope and is in the guild.", exc_info=True)
                    except discord.errors.HTTPException as e:
                        self.logger.error(f"HTTP error syncing to guild {guild_id}. Status: {e.status}, Response: {e.text}", exc_info=True)
                
                self.logger.info(f"Multi-guild sync complete: {total_synced} total command instances deployed")
            else:
                self.logger.info("Attempting to sync commands globally... (Note: This can take up to an hour to propagate)")
                synced = await self.tree.sync()
                self.logger.info(f"Successfully synced {len(synced)} command(s) globally")
        except Exception as e:
            self.logger.error(f"Failed to sync commands: {e}", exc_info=True)
            # Bot keeps working without slash commands
                
    async def on_ready(self):
        """Called when the bot is ready"""
        self.logger.info(f'{self.user} has connected to Discord!')
        self.logger.info(f'Bot is in {len(self.guilds)} guilds')
        
        await self.change_presence(
            activity=discord.Game(name="League ratings | /report-game")
        )
    
    async def on_app_command_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError):
        """Global error handler for slash commands"""
        command_name = interaction.command.name if interaction.command else 'Unknown'
        original = getattr(error, 'original', error)
        
        if isinstance(error, app_commands.CheckFailure):
            self.logger.info(f"Permission denied for command '{command_name}' by user {interaction.user}")
            if command_name.startswith('admin-'):
                error_message = "❌ Administrative Privileges Required\n\nThis command is restricted to league administrators."
            else:
                error_message = "❌ Permission Denied\n\nYou don't have the required permissions to use this command."
        elif isinstance(original, RatingException):
            self.logger.warning(f"Command '{command_name}' rejected: {original}")
            error_message = original.user_message
        else:
            self.logger.error(f"Error in app command '{command_name}': {error}", exc_info=True)
            error_message = "❌ An unexpected error occurred while processing your command. The developers have been notified."
        
        try:
            error_embed = discord.Embed(
                title=error_message.split('\n')[0],
                description='\n'.join(error_message.split('\n')[1:]) if '\n' in error_message else None,
                color=discord.Color.red()
            )
            
            if interaction.response.is_done():
                await interaction.followup.send(embed=error_embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=error_embed, ephemeral=True)
        except Exception as e:
            self.logger.error(f"Failed to send error response: {e}")
        
    async def close(self):
        """Cleanup when bot is shutting down"""
        self.logger.info("Shutting down League Bot...")
        
        if self.db:
            await self.db.close()
            
        await super().close()

async def main():
    """Main entry point"""
    Config.validate()
    
    bot = LeagueBot()
    
    try:
        await bot.start(Config.DISCORD_TOKEN)
    except KeyboardInterrupt:
        await bot.close()
    except Exception as e:
        logging.error(f"Fatal error: {e}")
        traceback.print_exc()
    finally:
        await bot.close()

if __name__ == "__main__":
    asyncio.run(main())
