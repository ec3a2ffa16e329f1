import discord
from discord import app_commands
from discord.ext import commands
from typing import Optional

from leaguebot.config import Config
from leaguebot.constants import UIConstants
from leaguebot.data_models.results import OperationResult
from leaguebot.database.models import ParticipantType
from leaguebot.utils.logger import setup_logger
from leaguebot.utils.rating import RatingConverter
from leaguebot.utils.rating_exceptions import InvalidEditError, RatingException

logger = setup_logger(__name__)

FLOAT_FIELDS = {'mu', 'sigma', 'score'}
INT_FIELDS = {'wins', 'losses', 'draws', 'turn_order'}


def parse_field_value(field: str, raw: str):
    """Convert a slash-command string into the typed value for a manual edit field"""
    try:
        if field in FLOAT_FIELDS:
            return float(raw)
        if field in INT_FIELDS:
            return int(raw)
    except ValueError:
        raise InvalidEditError(f"'{raw}' is not a valid value for {field}")
    if field == 'active':
        lowered = raw.strip().lower()
        if lowered not in ('true', 'false', 'yes', 'no', '1', '0'):
            raise InvalidEditError("active must be true or false")
        return lowered in ('true', 'yes', '1')
    if field == 'default_deck':
        return raw.strip() or None
    raise InvalidEditError(f"Unknown field '{field}'")


def is_league_admin():
    async def predicate(interaction: discord.Interaction) -> bool:
        return interaction.user.id in Config.get_admin_ids()
    return app_commands.check(predicate)


class AdminCog(commands.Cog):
    """Admin-only commands for undo/redo, decay and manual rating edits"""
    
    def __init__(self, bot):
        self.bot = bot
        self.logger = logger
    
    @property
    def league(self):
        return self.bot.league
    
    def _operation_embed(self, result: OperationResult, title: str) -> discord.Embed:
        if not result.performed:
            return discord.Embed(title=f"ℹ️ {result.description}", color=UIConstants.WARNING_COLOR)
        embed = discord.Embed(title=title, description=result.description, color=UIConstants.SUCCESS_COLOR)
        for change in result.changes[:20]:
            embed.add_field(
                name=change.display_name,
                value=(f"{change.score_before} → {change.score_after} "
                       f"({RatingConverter.format_change(change.score_before, change.score_after)})\n"
                       f"{change.before.wins}-{change.before.losses}-{change.before.draws} → "
                       f"{change.after.wins}-{change.after.losses}-{change.after.draws}"),
                inline=True
            )
        return embed
    
    @app_commands.command(name="admin-undo", description="Undo the latest pending result or committed operation")
    @is_league_admin()
    async def admin_undo(self, interaction: discord.Interaction):
        await interaction.response.defer()
        result = await self.league.confirmations.undo_latest(
            str(interaction.guild_id), admin_id=str(interaction.user.id)
        )
        self.logger.info(f"admin-undo by {interaction.user.id}: {result.description}")
        await interaction.followup.send(embed=self._operation_embed(result, f"{UIConstants.UNDO_EMOJI} Undone"))
    
    @app_commands.command(name="admin-redo", description="Re-apply the most recently undone operation")
    @is_league_admin()
    async def admin_redo(self, interaction: discord.Interaction):
        await interaction.response.defer()
        result = await self.league.redo(admin_id=str(interaction.user.id))
        self.logger.info(f"admin-redo by {interaction.user.id}: {result.description}")
        await interaction.followup.send(embed=self._operation_embed(result, f"{UIConstants.REDO_EMOJI} Redone"))
    
    @app_commands.command(name="admin-timewalk", description="Simulate elapsed days and run decay")
    @app_commands.describe(days="Days to simulate (defaults to the minimum that decays someone)")
    @is_league_admin()
    async def admin_timewalk(self, interaction: discord.Interaction,
                             days: Optional[app_commands.Range[int, 1, 365]] = None):
        await interaction.response.defer()
        result = await self.league.timewalk(days, admin_id=str(interaction.user.id))
        embed = discord.Embed(
            title=f"{UIConstants.DECAY_EMOJI} Timewalk",
            description=(f"Virtual time is now **+{result.virtual_days} day(s)**.\n"
                         f"Decay applied to **{result.count}** participant(s)."),
            color=UIConstants.DEFAULT_EMBED_COLOR
        )
        for change in result.changes[:20]:
            embed.add_field(name=change.display_name,
                            value=f"{change.score_before} → {change.score_after}", inline=True)
        await interaction.followup.send(embed=embed)
    
    @app_commands.command(name="admin-snap", description="Cancel every result still waiting for approvals")
    @is_league_admin()
    async def admin_snap(self, interaction: discord.Interaction):
        count = self.league.confirmations.disable_all(str(interaction.guild_id))
        self.logger.info(f"admin-snap by {interaction.user.id}: {count} pending result(s) disabled")
        await interaction.response.send_message(f"🫰 Disabled {count} pending result(s).")
    
    @app_commands.command(name="admin-cancel", description="Cancel one pending result by its message id")
    @is_league_admin()
    async def admin_cancel(self, interaction: discord.Interaction, message_id: str):
        if self.league.confirmations.disable(message_id):
            await interaction.response.send_message(f"✅ Pending result {message_id} disabled.")
        else:
            await interaction.response.send_message(
                f"ℹ️ No active pending result for {message_id}.", ephemeral=True
            )
    
    @app_commands.command(name="admin-set", description="Manually change a rating, record, deck or contest")
    @app_commands.describe(
        target_type="What to edit",
        target_id="Player Discord ID, deck name or contest id",
        field="mu, sigma, score, wins, losses, draws, default_deck, turn_order or active",
        value="New value",
        contest_id="Contest whose turn order is changed (turn_order only)",
        reason="Reason recorded in the audit trail"
    )
    @app_commands.choices(target_type=[
        app_commands.Choice(name="player", value="player"),
        app_commands.Choice(name="deck", value="deck"),
        app_commands.Choice(name="contest", value="contest"),
    ])
    @is_league_admin()
    async def admin_set(self, interaction: discord.Interaction, target_type: app_commands.Choice[str],
                        target_id: str, field: str, value: str,
                        contest_id: Optional[str] = None, reason: Optional[str] = None):
        await interaction.response.defer()
        try:
            parsed = parse_field_value(field, value)
            snapshot = await self.league.manual_edits.apply(
                target_type.value, target_id, {field: parsed},
                admin_id=str(interaction.user.id), reason=reason, contest_id=contest_id
            )
        except RatingException as e:
            await interaction.followup.send(e.user_message, ephemeral=True)
            return
        await interaction.followup.send(f"✅ Applied {snapshot.description}.")
    
    @app_commands.command(name="admin-recalculate", description="Rebuild all ratings from game history")
    @is_league_admin()
    async def admin_recalculate(self, interaction: discord.Interaction):
        await interaction.response.defer()
        changed = await self.league.recalculate(admin_id=str(interaction.user.id))
        await interaction.followup.send(
            f"✅ Recalculated ratings; {changed} participant(s) changed. Undo history was cleared."
        )
    
    @app_commands.command(name="restrict", description="Ban a player from ranked games")
    @is_league_admin()
    async def restrict(self, interaction: discord.Interaction, member: discord.Member):
        if await self.league.participants.set_restricted(str(member.id), True):
            self.logger.info(f"restrict by {interaction.user.id}: {member.id}")
            await interaction.response.send_message(f"🚫 {member.mention} is now restricted from ranked games.")
        else:
            await interaction.response.send_message(f"ℹ️ {member.mention} is already restricted.", ephemeral=True)
    
    @app_commands.command(name="vindicate", description="Lift a player's ranked games restriction")
    @is_league_admin()
    async def vindicate(self, interaction: discord.Interaction, member: discord.Member):
        if await self.league.participants.set_restricted(str(member.id), False):
            self.logger.info(f"vindicate by {interaction.user.id}: {member.id}")
            await interaction.response.send_message(f"✅ {member.mention} may play ranked games again.")
        else:
            await interaction.response.send_message(f"ℹ️ {member.mention} is not restricted.", ephemeral=True)
    
    @app_commands.command(name="admin-history",description="Show recent rating changes for a player or deck")
    @app_commands.choices(target_type=[
        app_commands.Choice(name="player", value="player"),
        app_commands.Choice(name="deck", value="deck"),
    ])
    @is_league_admin()
    async def admin_history(self, interaction: discord.Interaction,
                            target_type: app_commands.Choice[str], target_id: str):
        entries = await self.league.audit.get_for_target(ParticipantType(target_type.value), target_id, limit=10)
        if not entries:
            await interaction.response.send_message("No rating history found.", ephemeral=True)
            return
        lines = [
            f"`{entry.created_at:%Y-%m-%d %H:%M}` **{entry.change_kind.value}** "
            f"{entry.score_before} → {entry.score_after}"
            for entry in entries
        ]
        embed = discord.Embed(
            title=f"History for {entries[0].display_name or target_id}",
            description="\n".join(lines),
            color=UIConstants.DEFAULT_EMBED_COLOR
        )
        info = self.league.operation_log.stack_info()
        embed.set_footer(text=f"Undo: {info['undo_count']} | Redo: {info['redo_count']}")
        await interaction.response.send_message(embed=embed, ephemeral=True)


async def setup(bot):
    await bot.add_cog(AdminCog(bot))
