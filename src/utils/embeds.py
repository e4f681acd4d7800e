"""
Embed factories for every message the bot posts.

The orchestrator, the commands and the tests all build their messages here,
so a notification kind always has the same colour and title prefix.
"""

import discord
from typing import Dict, List, Optional
from utils.constants import COLORS, MESSAGES


def _build(color: int, default_title: str, prefixes, title: Optional[str],
           description: str, footer: Optional[str]) -> discord.Embed:
    if title is None:
        title = default_title
    elif not title.startswith(prefixes):
        title = f"{prefixes[0]} {title}"
    embed = discord.Embed(title=title, description=description, color=color)
    if footer:
        embed.set_footer(text=footer)
    return embed


def create_success_embed(title: Optional[str] = None, description: str = "", footer: Optional[str] = None) -> discord.Embed:
    """Green embed; titles get a checkmark unless they already carry one."""
    return _build(COLORS['SUCCESS'], "✅ Success", ("✅",), title, description, footer)


def create_error_embed(title: Optional[str] = None, description: str = "", footer: Optional[str] = None) -> discord.Embed:
    """
    Red embed for failures.

    Args:
        title: Heading; defaults to the generic error title
        description: What went wrong, shown to the user as is
        footer: Optional hint about what to try next
    """
    return _build(COLORS['ERROR'], MESSAGES['ERROR_TITLE'], ("❌", "⚠️"), title, description, footer)


def create_info_embed(title: Optional[str] = None, description: str = "", footer: Optional[str] = None) -> discord.Embed:
    return _build(COLORS['INFO'], "ℹ️ Information", ("ℹ️", "⏳"), title, description, footer)


def create_streaming_embed(title: str, requested_by: Optional[str] = None, url: Optional[str] = None) -> discord.Embed:
    """
    Create the now-streaming announcement.

    Args:
        title: Title of the item being streamed
        requested_by: Display name of the requester
        url: Original input, linked when it is a web address

    Returns:
        discord.Embed: Streaming embed with purple color (#9b59b6)
    """
    embed = discord.Embed(
        title=MESSAGES['NOW_STREAMING'],
        description=f"```diff\n+ {title}\n```",
        color=COLORS['STREAM']
    )
    if url and url.startswith(('http://', 'https://')):
        embed.url = url
    if requested_by:
        embed.set_footer(text=f"Requested by {requested_by}")
    return embed


def create_queue_embed(entries: List[Dict], current_id: Optional[int] = None, limit: int = 20) -> discord.Embed:
    """
    Create the queue listing.

    Args:
        entries: Queue items as dicts (id, title, requested_by, is_live)
        current_id: Id of the item currently under the cursor
        limit: Maximum number of lines shown

    Returns:
        discord.Embed: Queue embed; the footer counts the hidden entries
    """
    embed = discord.Embed(title="🎞 Queue", color=COLORS['STREAM'])
    if not entries:
        embed.description = MESSAGES['QUEUE_EMPTY']
        return embed

    lines = []
    for position, entry in enumerate(entries[:limit], 1):
        marker = "▶️ " if entry.get('id') == current_id else ""
        live = " 🔴" if entry.get('is_live') else ""
        lines.append(
            f"**{position}.** {marker}`{entry.get('title', 'Unknown')}`{live} "
            f"(#{entry.get('id')}, {entry.get('requested_by', 'Unknown')})"
        )
    embed.description = "\n".join(lines)

    remaining = len(entries) - limit
    if remaining > 0:
        embed.set_footer(text=f"+{remaining} more in queue")
    return embed


def create_title_embed(heading: str, overview: str, date_label: str, date: str,
                       tmdb_id: int, links: Dict[str, str], color: int = COLORS['INFO']) -> discord.Embed:
    """Card for a TMDB match with its watch links."""
    embed = discord.Embed(
        title=heading,
        description=overview or "No description available.",
        color=color
    )
    embed.add_field(name=date_label, value=date or "Unknown", inline=True)
    embed.add_field(name="TMDB ID", value=str(tmdb_id), inline=True)
    embed.add_field(
        name="Watch Links",
        value="\n".join(f"[{name}]({link})" for name, link in links.items()),
        inline=False
    )
    embed.set_footer(text="Attempting to stream... (Embed links may require a browser to watch)")
    return embed


# Shorthands used by the cog and the notifier
def success(message: str, footer: Optional[str] = None) -> discord.Embed:
    return create_success_embed(description=message, footer=footer)


def error(message: str, footer: Optional[str] = None) -> discord.Embed:
    return create_error_embed(description=message, footer=footer)


def info(message: str, title: Optional[str] = None, footer: Optional[str] = None) -> discord.Embed:
    return create_info_embed(title=title, description=message, footer=footer)
