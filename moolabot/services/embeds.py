"""
Discord embed formatting for moola bot replies
"""

from typing import Dict, Optional

import discord

from moolabot.core.ranking import LeaderboardPage, RankedEntry
from moolabot.core.reconciler import RoleUpdateLog
from moolabot.core.role_assigner import BulkAssignResult
from moolabot.core.teams import BERAS, BULLAS, TEAM_EMOJI

ERROR_COLOR = 0xFF0000
INFO_COLOR = 0x0099FF
GOLD_COLOR = 0xFFD700

TEAM_COLORS = {
    BULLAS: 0x22C55E,
    BERAS: 0xEF4444,
}


def mask_address(address: Optional[str]) -> Optional[str]:
    """Shorten a wallet address for display"""
    if not address or len(address) < 8:
        return address
    return f"{address[:6]}...{address[-4:]}"


def error_embed(description: str, title: str = "❌ Error") -> discord.Embed:
    return discord.Embed(title=title, description=description, color=ERROR_COLOR)


def role_simulation_embed(log: RoleUpdateLog, target_team: str) -> discord.Embed:
    """Preview of a role update, shown before the admin confirms"""
    lines = [f"**Here's what will happen for the {target_team} team if you proceed:**\n"]
    for label, counts in (
        ("Whitelist Role", log.whitelist),
        ("Moolalist Role", log.moolalist),
        ("Free Mint Role", log.freemint),
    ):
        lines.append(f"**{label}:**")
        lines.append(f"• {counts.added} users will receive the role")
        lines.append(f"• {counts.existing} users already have it\n")
    lines.append("Would you like to proceed with these changes?")

    return discord.Embed(
        title="Role Update Simulation Results",
        description="\n".join(lines),
        color=INFO_COLOR
    )


def role_update_summary(log: RoleUpdateLog) -> str:
    summary = (
        "Role updates completed!\n\n"
        "**Results:**\n"
        f"• Whitelist: {log.whitelist.added} added ({log.whitelist.existing} existing)\n"
        f"• Moolalist: {log.moolalist.added} added ({log.moolalist.existing} existing)\n"
        f"• Free Mint: {log.freemint.added} added ({log.freemint.existing} existing)\n"
    )
    if log.errors:
        summary += f"• {log.errors} role grants failed, see logs\n"
    return summary


def bulk_assign_embed(result: BulkAssignResult, total: Optional[int] = None,
                      finished: bool = True) -> discord.Embed:
    title = "Already Wanked Role Assignment Complete" if finished else "Already Wanked Role Assignment In Progress"
    processed = f"{result.processed_total}/{total}" if total is not None and not finished else str(result.processed_total)
    description = (
        "**Results:**\n\n"
        f"• {result.added} users received the new role\n"
        f"• {result.existing} users already had the role\n"
        f"• {result.errors} errors encountered\n\n"
        f"Total verified users processed: {processed}"
    )
    return discord.Embed(title=title, description=description, color=INFO_COLOR)


def moola_embed(username: str, points: int, avatar_url: Optional[str] = None) -> discord.Embed:
    embed = discord.Embed(
        title=f"{username}'s moola",
        description=f"You have {points:,} moola. 🍯",
        color=GOLD_COLOR
    )
    if avatar_url:
        embed.set_thumbnail(url=avatar_url)
    embed.timestamp = discord.utils.utcnow()
    return embed


def war_status_embed(team_points: Dict[str, int]) -> discord.Embed:
    embed = discord.Embed(
        title="🏆 Moola War Status",
        description="The battle between the Bullas and Beras rages on!",
        color=ERROR_COLOR
    )
    embed.add_field(name=f"{TEAM_EMOJI[BULLAS]} Bullas", value=f"moola (mL): {team_points.get(BULLAS, 0):,}", inline=True)
    embed.add_field(name=f"{TEAM_EMOJI[BERAS]} Beras", value=f"moola (mL): {team_points.get(BERAS, 0):,}", inline=True)
    return embed


def format_leaderboard_line(entry: RankedEntry, username: str) -> str:
    emoji = TEAM_EMOJI.get(entry.team, "❔")
    return f"{entry.rank}. {emoji} {username} • {entry.points:,} mL"


def leaderboard_embed(team: str, page: LeaderboardPage, names: Dict[str, str],
                      self_entry: Optional[RankedEntry] = None,
                      viewer_name: Optional[str] = None) -> discord.Embed:
    """
    Args:
        team: team option the board was requested for
        page: current page of the ranking
        names: discord_id -> display name for the entries on this page
        self_entry: the viewer's own ranking, shown above the page
        viewer_name: the viewer's display name
    """
    embed = discord.Embed(color=TEAM_COLORS.get(team, GOLD_COLOR))

    if self_entry is not None:
        embed.add_field(
            name="Your Rank",
            value=format_leaderboard_line(self_entry, viewer_name or names.get(self_entry.discord_id, self_entry.discord_id)),
            inline=False
        )

    lines = [
        format_leaderboard_line(entry, names.get(entry.discord_id, f"User {entry.discord_id}"))
        for entry in page.entries
    ]
    embed.add_field(name="🏆 Leaderboard", value="\n".join(lines) or "No users found.", inline=False)
    embed.set_footer(text=f"Page {page.page}/{page.total_pages}")
    return embed
