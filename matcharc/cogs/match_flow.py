"""
Match Flow Cog - buttons, admin commands and the sync retry sweep

Component clicks (check-in, report, confirm, dispute) arrive through the
on_interaction listener, are parsed into ButtonPayloads and dispatched to
MatchService. Every answer is ephemeral and carries the service's message;
rendering match threads and embeds is left to the scheduler side.
"""

from datetime import datetime, timezone
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands, tasks

from matcharc.config import Config
from matcharc.data_models.match_status import OperationResult
from matcharc.utils.interactions import InteractionDispatcher, parse_interaction_id
from matcharc.utils.match_exceptions import MatchOperationError
from matcharc.utils.logger import setup_logger

logger = setup_logger(__name__)


def build_result_embed(result: OperationResult) -> discord.Embed:
    """Small ephemeral embed summarising an operation result"""
    color = discord.Color.green() if result.success else discord.Color.red()
    embed = discord.Embed(
        description=("✅ " if result.success else "❌ ") + result.message,
        color=color
    )
    status = result.match_status
    if status is not None:
        embed.set_footer(text=f"{status.round_text} ({status.identifier}) • {status.state.value}")
    return embed


class MatchFlowCog(commands.Cog):
    """Player-facing match flow and owner-only match administration"""

    def __init__(self, bot):
        self.bot = bot
        self.match_service = bot.match_service
        self.sync_tracker = bot.sync_tracker
        self.dispatcher = InteractionDispatcher(self.match_service)
        self.logger = logger

    async def cog_load(self):
        if self.sync_tracker is not None:
            self.retry_sync.change_interval(minutes=Config.SYNC_RETRY_INTERVAL_MINUTES)
            self.retry_sync.start()
            self.logger.info("MatchFlowCog: sync retry sweep started")

    def cog_unload(self):
        self.retry_sync.cancel()
        self.logger.info("MatchFlowCog: sync retry sweep stopped")

    # ============================================================================
    # Component interactions
    # ============================================================================

    @commands.Cog.listener()
    async def on_interaction(self, interaction: discord.Interaction):
        if interaction.type != discord.InteractionType.component:
            return

        data = interaction.data or {}
        custom_id = data.get('custom_id', '')

        try:
            payload = parse_interaction_id(custom_id, data.get('values'))
            if payload is None:
                return  # Another cog's component

            await interaction.response.defer(ephemeral=True, thinking=True)
            result = await self.dispatcher.dispatch(payload, interaction.user.id)
        except MatchOperationError as e:
            # Rejected before reaching the service (bad custom id or select value)
            self.logger.info(f"Rejected interaction {custom_id!r} from {interaction.user.id}: {e}")
            await self._respond(interaction, OperationResult.failed(e))
            return
        except Exception as e:
            self.logger.error(f"Error handling interaction {custom_id!r}: {e}", exc_info=True)
            await self._respond_error(interaction)
            return

        self.logger.info(
            f"Interaction {payload.kind.value} on Match {payload.match_id} by {interaction.user.id}: "
            f"{'ok' if result.success else result.error.value}"
        )
        await self._respond(interaction, result)

    async def _respond(self, interaction: discord.Interaction, result: OperationResult):
        embed = build_result_embed(result)
        try:
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException as e:
            self.logger.error(f"Failed to send interaction response: {e}")

    async def _respond_error(self, interaction: discord.Interaction):
        embed = discord.Embed(
            title="❌ An error occurred",
            description="Something went wrong while processing that. Please try again.",
            color=discord.Color.red()
        )
        try:
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException as e:
            self.logger.error(f"Failed to send error response: {e}")

    # ============================================================================
    # Admin commands
    # ============================================================================

    @app_commands.command(
        name="admin-match-dq",
        description="Disqualify a player from a match (Owner only)"
    )
    @app_commands.describe(
        match_id="Match ID",
        player="Slot of the player to disqualify (1 or 2)",
        reason="Reason for the DQ"
    )
    async def admin_match_dq(
        self,
        interaction: discord.Interaction,
        match_id: str,
        player: app_commands.Range[int, 1, 2],
        reason: Optional[str] = None
    ):
        if interaction.user.id != Config.OWNER_DISCORD_ID:
            await interaction.response.send_message(
                "❌ **Access Denied**\nThis command is restricted to the bot owner.",
                ephemeral=True
            )
            return

        await interaction.response.defer(ephemeral=True)

        status_result = await self.match_service.get_match_status(match_id)
        if not status_result.success:
            await interaction.followup.send(embed=build_result_embed(status_result), ephemeral=True)
            return

        dq_player = status_result.match_status.players[player - 1]
        result = await self.match_service.disqualify(
            match_id, dq_player.player_id, reason, admin_discord_id=interaction.user.id
        )
        await interaction.followup.send(embed=build_result_embed(result), ephemeral=True)

        self.logger.info(
            f"Admin DQ by {interaction.user.id} ({interaction.user.name}) on Match {match_id}, "
            f"slot {player}: {result.message}"
        )

    @app_commands.command(
        name="admin-match-resync",
        description="Push a finished match result to start.gg again (Owner only)"
    )
    @app_commands.describe(match_id="Match ID")
    async def admin_match_resync(self, interaction: discord.Interaction, match_id: str):
        if interaction.user.id != Config.OWNER_DISCORD_ID:
            await interaction.response.send_message(
                "❌ **Access Denied**\nThis command is restricted to the bot owner.",
                ephemeral=True
            )
            return

        await interaction.response.defer(ephemeral=True)
        result = await self.match_service.resync(match_id, admin_discord_id=interaction.user.id)

        embed = build_result_embed(result)
        embed.timestamp = datetime.now(timezone.utc)
        await interaction.followup.send(embed=embed, ephemeral=True)

    # ============================================================================
    # Background tasks
    # ============================================================================

    @tasks.loop(minutes=15)
    async def retry_sync(self):
        """Re-queue finished matches whose start.gg sync failed or stalled"""
        try:
            await self.sync_tracker.retry_failed()
        except Exception as e:
            self.logger.error(f"Error in sync retry sweep: {e}", exc_info=True)

    @retry_sync.before_loop
    async def before_retry_sync(self):
        await self.bot.wait_until_ready()


async def setup(bot):
    await bot.add_cog(MatchFlowCog(bot))
