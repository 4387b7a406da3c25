"""
Button views for role update confirmation and leaderboard paging
"""

import logging

import discord

from moolabot.core.reconciler import Thresholds
from moolabot.services.embeds import role_update_summary

logger = logging.getLogger(__name__)


class RoleUpdateConfirmView(discord.ui.View):
    """Proceed / Cancel buttons shown under a role update simulation"""

    def __init__(self, bot, team_type: str, thresholds: Thresholds, target_team: str, timeout: float = 300):
        super().__init__(timeout=timeout)
        self.bot = bot
        self.team_type = team_type
        # the concrete team shown in the preview
        self.target_team = target_team
        self.thresholds = thresholds
        self.applied = False

    def _disable_all_buttons(self):
        for child in self.children:
            if isinstance(child, discord.ui.Button):
                child.disabled = True

    @discord.ui.button(label="Proceed with Update", style=discord.ButtonStyle.primary)
    async def confirm(self, interaction: discord.Interaction, _: discord.ui.Button):
        if not self.bot.is_admin(interaction.user):
            await interaction.response.send_message(
                "You don't have permission to confirm this action.", ephemeral=True
            )
            return
        if self.applied:
            await interaction.response.send_message("This role update was already applied.", ephemeral=True)
            return

        self.applied = True
        self._disable_all_buttons()
        self.stop()
        await interaction.response.edit_message(content="Executing role updates...", embed=None, view=None)

        try:
            log, _ = await self.bot.run_role_update(
                interaction.guild, self.team_type, self.thresholds, dry_run=False,
                target_team=self.target_team
            )
            await interaction.edit_original_response(content=role_update_summary(log))
            self.bot.logger.info(f"Role update applied by {interaction.user}: {log.to_dict()}")
        except Exception as e:
            logger.error(f"Error executing role updates: {e}")
            await interaction.edit_original_response(content="An error occurred while updating roles.")

    @discord.ui.button(label="Cancel", style=discord.ButtonStyle.secondary)
    async def cancel(self, interaction: discord.Interaction, _: discord.ui.Button):
        if not self.bot.is_admin(interaction.user):
            await interaction.response.send_message(
                "You don't have permission to cancel this action.", ephemeral=True
            )
            return

        self._disable_all_buttons()
        self.stop()
        await interaction.response.edit_message(content="Role update cancelled.", embed=None, view=None)


class LeaderboardView(discord.ui.View):
    """Previous / Next paging, usable only by whoever ran /leaderboard"""

    def __init__(self, bot, invoker_id: int, team: str, page: int, total_pages: int, timeout: float = 180):
        super().__init__(timeout=timeout)
        self.bot = bot
        self.invoker_id = invoker_id
        self.team = team
        self.page = page
        self.total_pages = total_pages
        self._sync_buttons()

    def _sync_buttons(self):
        self.previous_page.disabled = self.page <= 1
        self.next_page.disabled = self.page >= self.total_pages

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if interaction.user.id == self.invoker_id:
            return True
        await interaction.response.send_message(
            "Only the user who ran this command can use these buttons.", ephemeral=True
        )
        return False

    async def _show_page(self, interaction: discord.Interaction, page: int):
        await interaction.response.defer()
        try:
            embed, board = await self.bot.build_leaderboard(self.team, page, interaction.user)
        except Exception as e:
            logger.error(f"Error handling leaderboard pagination: {e}")
            await interaction.edit_original_response(
                content="An error occurred while updating the leaderboard.", embed=None, view=None
            )
            return

        if board is None:
            await interaction.edit_original_response(content="No users found.", embed=None, view=None)
            return

        self.page = board.page
        self.total_pages = board.total_pages
        self._sync_buttons()
        await interaction.edit_original_response(embed=embed, view=self)

    @discord.ui.button(label="Previous", style=discord.ButtonStyle.secondary)
    async def previous_page(self, interaction: discord.Interaction, _: discord.ui.Button):
        await self._show_page(interaction, self.page - 1)

    @discord.ui.button(label="Next", style=discord.ButtonStyle.secondary)
    async def next_page(self, interaction: discord.Interaction, _: discord.ui.Button):
        await self._show_page(interaction, self.page + 1)
