"""
Discord bot for the Bullas vs Beras moola war
Handles wallet linking, point adjustments, threshold roles, snapshots
and the paginated leaderboard
"""

import discord
from discord import app_commands
from discord.ext import commands
import asyncio
import logging
import uuid
from typing import Dict, Iterable, List, Optional, Tuple

from moolabot.clients.membership_gateway import MembershipGateway
from moolabot.core.database import Database
from moolabot.core.errors import (
    InsufficientPointsError,
    InvalidInputError,
    RoleNotFoundError,
    UserNotFoundError,
)
from moolabot.core.link_watcher import LinkWatcher
from moolabot.core.points import PointsLedger
from moolabot.core.ranking import LeaderboardPage, RankingService, clamp_page, total_pages_for
from moolabot.core.reconciler import (
    LOSING,
    WINNING,
    RoleUpdateLog,
    ThresholdReconciler,
    Thresholds,
    build_role_categories,
    select_target_team,
)
from moolabot.core.role_assigner import (
    BulkAssignResult,
    BulkRoleAssigner,
    PurgeResult,
    ZeroBalancePurger,
    team_role_mapping,
)
from moolabot.core.settings import RuntimeSettings
from moolabot.core.teams import TEAMS, other_team
from moolabot.services.embeds import (
    bulk_assign_embed,
    error_embed,
    leaderboard_embed,
    mask_address,
    moola_embed,
    role_simulation_embed,
    war_status_embed,
)
from moolabot.services.views import LeaderboardView, RoleUpdateConfirmView
from moolabot.utils.config_loader import (
    get_admin_role_ids,
    get_bulk_settings,
    get_database_path,
    get_leaderboard_settings,
    get_link_settings,
    get_rate_limits,
    get_role_ids,
    get_snapshot_settings,
    get_whitelist_minimum,
    load_config,
)
from moolabot.utils.csv_export import build_snapshot_rows, cleanup_files, format_snapshot_csv, save_csv

NO_PERMISSION = "You don't have permission to use this command."


class MoolaBot(commands.Bot):
    def __init__(self, config: Dict, database: Optional[Database] = None):
        intents = discord.Intents.default()
        intents.members = True

        super().__init__(command_prefix='!', intents=intents)

        self.config = config
        self.logger = logging.getLogger(__name__)

        bot_config = config.get('discord_bot', {})
        self.link_base_url = bot_config.get('link_base_url', '').rstrip('/')
        self.presence_text = bot_config.get('presence', 'Moola war')

        self.role_ids = get_role_ids(config)
        self.admin_role_ids = set(get_admin_role_ids(config))
        self.role_categories = build_role_categories(self.role_ids)
        self.team_roles = team_role_mapping(self.role_ids)
        self.rate_limits = get_rate_limits(config)
        self.bulk_settings = get_bulk_settings(config)
        self.snapshot_settings = get_snapshot_settings(config)

        self.database = database or Database(get_database_path(config))
        self.settings = RuntimeSettings(self.database, get_whitelist_minimum(config))
        self.ledger = PointsLedger(self.database)

        leaderboard = get_leaderboard_settings(config)
        self.ranking = RankingService(
            self.database,
            page_size=leaderboard['page_size'],
            excluded_ids=leaderboard['excluded_user_ids'],
            allow_all_teams=leaderboard['allow_all_teams'],
        )

        link = get_link_settings(config)
        self.link_watcher = LinkWatcher(
            self.database,
            poll_interval=link['poll_interval_sec'],
            max_lifetime=link['max_lifetime_sec'],
        )

        self.tree.error(self.on_app_command_error)
        self.logger.info("MoolaBot initialized")

    async def setup_hook(self):
        """Setup hook for the bot"""
        await self.database.initialize()
        await self.settings.load()
        await self.tree.sync()
        self.logger.info(f"Synced {len(self.tree.get_commands())} command(s)")

    async def on_ready(self):
        """Event triggered when bot is ready"""
        self.logger.info(f'Logged in as {self.user} (ID: {self.user.id})')
        await self.change_presence(
            status=discord.Status.online,
            activity=discord.Game(name=self.presence_text)
        )

    async def on_member_join(self, member: discord.Member):
        """Give every new member the default role"""
        role = member.guild.get_role(self.role_ids['mootard'])
        if role is None:
            self.logger.warning("Default member role not found, skipping join role")
            return
        try:
            await member.add_roles(role, reason="New member")
            self.logger.info(f"Added default role to new member: {member}")
        except discord.HTTPException as e:
            self.logger.error(f"Error adding default role to {member}: {e}")

    async def on_error(self, event_method: str, *args, **kwargs):
        self.logger.exception(f"Unhandled error in {event_method}")

    async def on_app_command_error(self, interaction: discord.Interaction,
                                   error: app_commands.AppCommandError):
        command = interaction.command.name if interaction.command else "unknown"
        self.logger.error(f"Error in /{command}: {error}", exc_info=error)
        message = "An unexpected error occurred. Please try again later."
        try:
            if interaction.response.is_done():
                await interaction.followup.send(message, ephemeral=True)
            else:
                await interaction.response.send_message(message, ephemeral=True)
        except discord.HTTPException as e:
            self.logger.error(f"Could not report error for /{command}: {e}")

    async def close(self):
        await self.link_watcher.stop_all()
        await super().close()

    def is_admin(self, user) -> bool:
        roles = getattr(user, 'roles', None) or []
        return any(role.id in self.admin_role_ids for role in roles)

    def gateway_for(self, guild: discord.Guild) -> MembershipGateway:
        return MembershipGateway(
            guild,
            batch_size=int(self.rate_limits['batch_size']),
            batch_delay=self.rate_limits['batch_delay_sec'],
        )

    def link_url(self, token: str, discord_id: str, path: str = "") -> str:
        return f"{self.link_base_url}{path}?token={token}&discord={discord_id}"

    async def run_role_update(self, guild: discord.Guild, team_type: str, thresholds: Thresholds,
                              dry_run: bool, target_team: Optional[str] = None) -> Tuple[RoleUpdateLog, str]:
        """
        Reconcile threshold roles for the winning or losing team

        Args:
            target_team: concrete team from an earlier preview; when given,
                team_type is not re-resolved against the current standings

        Returns:
            The update log and the concrete team it ran against
        """
        gateway = self.gateway_for(guild)
        reconciler = ThresholdReconciler(
            gateway, self.role_categories, mutation_delay=self.rate_limits['mutation_delay_sec']
        )
        gateway.require_roles(reconciler.role_ids())

        if target_team is None:
            team_points = await self.database.get_team_points()
            target_team = select_target_team(team_points, team_type)
        elif target_team not in TEAMS:
            raise InvalidInputError(f"Unknown team '{target_team}'")
        players = await self.database.get_team_players(target_team)
        self.logger.info(
            f"{'Simulating' if dry_run else 'Processing'} {len(players)} players in {target_team} team"
        )

        current_roles = await gateway.fetch_roles_for(p['discord_id'] for p in players)
        log = await reconciler.reconcile(players, current_roles, thresholds, dry_run=dry_run)
        return log, target_team

    async def run_already_wanked(self, guild: discord.Guild, progress_callback=None) -> BulkAssignResult:
        gateway = self.gateway_for(guild)
        role_id = self.role_ids['already_wanked']
        gateway.get_role(role_id)

        assigner = BulkRoleAssigner(
            gateway,
            mutation_delay=self.rate_limits['mutation_delay_sec'],
            progress_every=self.bulk_settings['progress_every'],
        )
        population = self.database.iter_verified_users(self.bulk_settings['page_size'])
        return await assigner.assign_flag_role(population, role_id, progress_callback)

    async def run_zero_balance_purge(self, guild: discord.Guild) -> PurgeResult:
        gateway = self.gateway_for(guild)
        purger = ZeroBalancePurger(
            gateway, self.team_roles, mutation_delay=self.rate_limits['mutation_delay_sec']
        )
        users = await self.database.get_zero_balance_users()
        return await purger.purge(users)

    async def resolve_display_names(self, discord_ids: Iterable[str]) -> Dict[str, str]:
        names = {}
        for discord_id in discord_ids:
            user = self.get_user(int(discord_id))
            if user is None:
                try:
                    user = await self.fetch_user(int(discord_id))
                except discord.HTTPException:
                    user = None
            names[discord_id] = user.name if user else f"User {discord_id}"
        return names

    async def build_leaderboard(self, team: str, page: int,
                                viewer) -> Tuple[Optional[discord.Embed], Optional[LeaderboardPage]]:
        """
        Render one leaderboard page for a viewer

        Out-of-range pages are pulled back to the nearest valid page.

        Returns:
            (embed, page), or (None, None) when no users match
        """
        ranked = await self.ranking.rank(team)
        if not ranked:
            return None, None

        total_pages = total_pages_for(len(ranked), self.ranking.page_size)
        board = self.ranking.page(ranked, clamp_page(page, total_pages))
        self_entry = self.ranking.find_self(ranked, str(viewer.id))

        names = await self.resolve_display_names(entry.discord_id for entry in board.entries)
        embed = leaderboard_embed(team, board, names, self_entry, viewer.name)
        return embed, board

    async def build_snapshot_files(self, guild: discord.Guild) -> List[str]:
        """Write the three snapshot CSVs and return their paths"""
        team_points = await self.database.get_team_points()
        winning_team = select_target_team(team_points, WINNING)
        losing_team = other_team(winning_team)

        winning_ranked = await self.ranking.rank(winning_team, excluded=())
        losing_ranked = await self.ranking.rank(losing_team, excluded=())
        all_players = sorted(winning_ranked + losing_ranked, key=lambda e: (-e.points, e.discord_id))

        gateway = self.gateway_for(guild)
        member_roles = await gateway.fetch_roles_for(e.discord_id for e in all_players)

        winning_top = self.snapshot_settings['winning_top']
        losing_top = self.snapshot_settings['losing_top']
        exports = [
            (winning_ranked[:winning_top], False, f"top_{winning_top}_{winning_team}.csv"),
            (losing_ranked[:losing_top], False, f"top_{losing_top}_{losing_team}.csv"),
            (all_players, True, "all_players.csv"),
        ]

        paths = []
        for entries, include_id, filename in exports:
            rows = build_snapshot_rows(entries, member_roles, self.role_categories)
            content = format_snapshot_csv(rows, include_id=include_id)
            paths.append(save_csv(content, filename, self.snapshot_settings['temp_dir']))
        return paths


# Create the bot instance
bot = None


def setup_bot(config: Optional[Dict] = None, database: Optional[Database] = None):
    """Setup and return the bot instance"""
    global bot

    config = config if config is not None else load_config()

    bot_token = config.get('discord_bot', {}).get('bot_token')
    if not bot_token:
        raise ValueError("Discord bot token not found in config! Add discord_bot.bot_token to your config.yml")

    bot = MoolaBot(config, database)

    async def deny_non_admin(interaction: discord.Interaction) -> bool:
        if bot.is_admin(interaction.user):
            return False
        await interaction.response.send_message(NO_PERMISSION, ephemeral=True)
        return True

    @bot.tree.command(name='updateroles', description='Manually update roles')
    @app_commands.describe(
        team='Team to update roles for',
        ml_threshold='MOOLA threshold for ML role',
        freemint_threshold='MOOLA threshold for Free Mint role',
        wl_threshold='MOOLA threshold for WL role (defaults to the whitelist minimum)',
    )
    @app_commands.choices(team=[
        app_commands.Choice(name='Winning', value=WINNING),
        app_commands.Choice(name='Losing', value=LOSING),
    ])
    async def update_roles(interaction: discord.Interaction, team: str, ml_threshold: int,
                           freemint_threshold: int, wl_threshold: Optional[int] = None):
        """Handle /updateroles - simulate first, apply on confirmation"""
        if await deny_non_admin(interaction):
            return

        try:
            thresholds = Thresholds(
                wl=wl_threshold if wl_threshold is not None else bot.settings.whitelist_minimum,
                ml=ml_threshold,
                freemint=freemint_threshold,
            )
        except InvalidInputError as e:
            await interaction.response.send_message(str(e), ephemeral=True)
            return

        await interaction.response.defer()

        if not interaction.guild:
            await interaction.followup.send("Failed to simulate: Guild not found.")
            return

        try:
            log, target_team = await bot.run_role_update(interaction.guild, team, thresholds, dry_run=True)
            view = RoleUpdateConfirmView(bot, team, thresholds, target_team)
            await interaction.followup.send(embed=role_simulation_embed(log, target_team), view=view)
        except RoleNotFoundError as e:
            bot.logger.error(f"Role update aborted: {e}")
            await interaction.followup.send("One or more roles were not found. Aborting role update.")
        except Exception as e:
            bot.logger.error(f"Error in update simulation: {e}")
            await interaction.followup.send("An error occurred while simulating role updates.")

    @bot.tree.command(name='alreadywanked', description='Assign new role to all verified users (Admin only)')
    async def already_wanked(interaction: discord.Interaction):
        """Handle /alreadywanked"""
        if await deny_non_admin(interaction):
            return

        await interaction.response.defer()

        if not interaction.guild:
            await interaction.followup.send("Failed to find guild.")
            return

        try:
            total = await bot.database.count_verified_users()

            async def report_progress(progress: BulkAssignResult):
                await interaction.edit_original_response(
                    embed=bulk_assign_embed(progress, total=total, finished=False)
                )

            result = await bot.run_already_wanked(interaction.guild, report_progress)
            await interaction.edit_original_response(embed=bulk_assign_embed(result))
            bot.logger.info(f"/alreadywanked by {interaction.user}: {result.to_dict()}")
        except RoleNotFoundError:
            await interaction.followup.send("Failed to find the new role.")
        except Exception as e:
            bot.logger.error(f"Error in alreadywanked command: {e}")
            await interaction.followup.send("An error occurred while assigning roles to verified users.")

    @bot.tree.command(name='purgezerobalance',
                      description='Remove team roles from accounts with 0 moola balance (Admin only)')
    async def purge_zero_balance(interaction: discord.Interaction):
        """Handle /purgezerobalance"""
        if await deny_non_admin(interaction):
            return

        await interaction.response.defer()

        if not interaction.guild:
            await interaction.followup.send("Failed to find guild.")
            return

        try:
            result = await bot.run_zero_balance_purge(interaction.guild)
            message = f"Removed team roles from {result.removed} accounts with 0 moola balance."
            if result.errors:
                message += f" {result.errors} accounts could not be updated."
            await interaction.followup.send(message)
        except Exception as e:
            bot.logger.error(f"Error executing purgezerobalance command: {e}")
            await interaction.followup.send("An error occurred while purging zero balance accounts.")

    @bot.tree.command(name='transfer', description='Transfer points to another user (Admin only)')
    @app_commands.describe(user='The user to transfer points to', amount='The amount of points to transfer')
    async def transfer(interaction: discord.Interaction, user: discord.User, amount: int):
        """Handle /transfer - moves points from the invoking admin"""
        if await deny_non_admin(interaction):
            return

        sender_id = str(interaction.user.id)
        try:
            await bot.ledger.transfer(sender_id, str(user.id), amount)
        except InvalidInputError as e:
            await interaction.response.send_message(str(e), ephemeral=True)
            return
        except UserNotFoundError as e:
            if e.discord_id == sender_id:
                await interaction.response.send_message("You don't have a linked account to transfer from.")
            else:
                await interaction.response.send_message("The specified user does not exist.")
            return
        except InsufficientPointsError:
            await interaction.response.send_message("Insufficient points to transfer.")
            return
        except Exception as e:
            bot.logger.error(f"Error handling transfer command: {e}")
            await interaction.response.send_message("An error occurred while transferring points.")
            return

        await interaction.response.send_message(f"Successfully transferred {amount} points to <@{user.id}>.")

    @bot.tree.command(name='fine', description='Fine a user (Admin only)')
    @app_commands.describe(user='The user to fine', amount='The amount to fine')
    async def fine(interaction: discord.Interaction, user: discord.User, amount: int):
        """Handle /fine"""
        if await deny_non_admin(interaction):
            return

        try:
            new_balance = await bot.ledger.fine(str(user.id), amount)
        except InvalidInputError:
            await interaction.response.send_message("Please provide a valid user and a positive amount.")
            return
        except UserNotFoundError:
            await interaction.response.send_message("User not found.")
            return
        except InsufficientPointsError:
            await interaction.response.send_message("The user doesn't have enough points for this fine.")
            return
        except Exception as e:
            bot.logger.error(f"Error handling fine command: {e}")
            await interaction.response.send_message("An error occurred while processing the fine command.")
            return

        await interaction.response.send_message(
            f"Successfully fined <@{user.id}> {amount} points. Their new balance is {new_balance} points."
        )

    @bot.tree.command(name='wankme', description='Link your wallet to your Discord account')
    async def wankme(interaction: discord.Interaction):
        """Handle /wankme - start the wallet link flow"""
        discord_id = str(interaction.user.id)
        try:
            user = await bot.database.get_user(discord_id)
            if user and user.get('address'):
                await interaction.response.send_message(
                    f"Your account is already linked to {mask_address(user['address'])}. "
                    "Use /updatewallet to change it.",
                    ephemeral=True
                )
                return

            token = str(uuid.uuid4())
            await bot.database.insert_token(token, discord_id)
        except Exception as e:
            bot.logger.error(f"Error inserting token: {e}")
            await interaction.response.send_message(
                "An error occurred while generating the token.", ephemeral=True
            )
            return

        await interaction.response.send_message(
            f"Hey {interaction.user.name}, to link your account, click this link:\n\n"
            f"{bot.link_url(token, discord_id)}",
            ephemeral=True
        )

        guild = interaction.guild

        async def on_linked(linked_user: Dict):
            team = linked_user.get('team')
            role_id = bot.team_roles.get(team)
            if guild and role_id is not None:
                try:
                    await bot.gateway_for(guild).add_role(discord_id, role_id, reason="Wallet linked")
                except Exception as e:
                    bot.logger.error(f"Error adding {team} role to {discord_id} after linking: {e}")
            await interaction.followup.send(
                f"Wallet {mask_address(linked_user['address'])} linked"
                + (f" - welcome to the {team}!" if team else "!"),
                ephemeral=True
            )

        async def on_expired(_: str):
            await interaction.followup.send(
                "The link expired before your wallet was verified. Run /wankme again.", ephemeral=True
            )

        bot.link_watcher.start(discord_id, on_linked, on_expired)

    @bot.tree.command(name='updatewallet', description='Update your wallet address')
    async def update_wallet(interaction: discord.Interaction):
        """Handle /updatewallet"""
        discord_id = str(interaction.user.id)
        try:
            user = await bot.database.get_user(discord_id)
            if not user:
                await interaction.response.send_message(
                    "You need to link your account first. Use /wankme to get started.", ephemeral=True
                )
                return

            token = str(uuid.uuid4())
            await bot.database.insert_token(token, discord_id)
        except Exception as e:
            bot.logger.error(f"Error inserting token: {e}")
            await interaction.response.send_message(
                "An error occurred while generating the token.", ephemeral=True
            )
            return

        await interaction.response.send_message(
            f"Hey {interaction.user.name}, to update your wallet address, click this link:\n\n"
            f"{bot.link_url(token, discord_id, '/update-wallet')}",
            ephemeral=True
        )

        async def on_linked(linked_user: Dict):
            await interaction.followup.send(
                f"Wallet updated to {mask_address(linked_user['address'])}.", ephemeral=True
            )

        bot.link_watcher.start(discord_id, on_linked, previous_address=user.get('address'))

    @bot.tree.command(name='moola', description='Check your moola balance')
    async def moola(interaction: discord.Interaction):
        """Handle /moola"""
        try:
            points = await bot.ledger.balance(str(interaction.user.id))
        except UserNotFoundError:
            await interaction.response.send_message("No account found for your Discord user. Try /wankme first.")
            return
        except Exception as e:
            bot.logger.error(f"Error fetching user: {e}")
            await interaction.response.send_message("An error occurred while fetching the user.")
            return

        await interaction.response.send_message(
            embed=moola_embed(interaction.user.name, points, interaction.user.display_avatar.url)
        )

    @bot.tree.command(name='warstatus', description='Check the current war status')
    async def war_status(interaction: discord.Interaction):
        """Handle /warstatus"""
        try:
            team_points = await bot.database.get_team_points()
            await interaction.response.send_message(embed=war_status_embed(team_points))
        except Exception as e:
            bot.logger.error(f"Error fetching war status: {e}")
            await interaction.response.send_message("An error occurred while fetching the war status.")

    @bot.tree.command(name='snapshot', description='Take a snapshot of the current standings')
    async def snapshot(interaction: discord.Interaction):
        """Handle /snapshot - admin only CSV export"""
        if await deny_non_admin(interaction):
            return

        # Defer to avoid 3-second timeout
        await interaction.response.defer(ephemeral=True)

        if not interaction.guild:
            await interaction.followup.send("Guild not found.", ephemeral=True)
            return

        paths = []
        try:
            paths = await bot.build_snapshot_files(interaction.guild)
            await interaction.followup.send(
                "Here are the snapshot files with role information:",
                files=[discord.File(path) for path in paths],
                ephemeral=True
            )
            bot.logger.info(f"Snapshot taken by {interaction.user}")
        except Exception as e:
            bot.logger.error(f"Error handling snapshot command: {e}")
            await interaction.followup.send(
                "An error occurred while processing the snapshot command.", ephemeral=True
            )
        finally:
            cleanup_files(paths)

    @bot.tree.command(name='updatewhitelistminimum', description='Update the whitelist minimum (Admin only)')
    @app_commands.describe(minimum='The new minimum value')
    async def update_whitelist_minimum(interaction: discord.Interaction, minimum: int):
        """Handle /updatewhitelistminimum"""
        if await deny_non_admin(interaction):
            return

        try:
            value = await bot.settings.set_whitelist_minimum(minimum)
        except InvalidInputError:
            await interaction.response.send_message("Please provide a valid positive integer for the new minimum.")
            return
        except Exception as e:
            bot.logger.error(f"Error updating whitelist minimum: {e}")
            await interaction.response.send_message("An error occurred while updating the whitelist minimum.")
            return

        await interaction.response.send_message(f"Whitelist minimum updated to {value} MOOLA.")

    @bot.tree.command(name='leaderboard', description='View the leaderboard')
    @app_commands.describe(team='Team leaderboard to view', page='Page number')
    @app_commands.choices(team=[
        app_commands.Choice(name=choice.capitalize(), value=choice)
        for choice in bot.ranking.team_choices()
    ])
    async def leaderboard(interaction: discord.Interaction, team: str,
                          page: app_commands.Range[int, 1] = 1):
        """Handle /leaderboard"""
        try:
            embed, board = await bot.build_leaderboard(team, page, interaction.user)
        except InvalidInputError as e:
            await interaction.response.send_message(embed=error_embed(str(e)), ephemeral=True)
            return
        except Exception as e:
            bot.logger.error(f"Error handling leaderboard command: {e}")
            await interaction.response.send_message("An error occurred while processing the leaderboard command.")
            return

        if board is None:
            await interaction.response.send_message("No users found.")
            return

        view = LeaderboardView(bot, interaction.user.id, team, board.page, board.total_pages)
        await interaction.response.send_message(embed=embed, view=view)

    return bot, bot_token


async def main():
    """Main entry point for the moola bot"""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    try:
        bot, token = setup_bot()
        async with bot:
            await bot.start(token)
    except KeyboardInterrupt:
        logging.info("Shutting down moola bot...")
    except Exception as e:
        logging.error(f"Fatal error: {e}")


if __name__ == "__main__":
    asyncio.run(main())
