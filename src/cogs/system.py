import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Tuple

from discord.ext import commands

from utils.constants import MESSAGES

logger = logging.getLogger(__name__)


def group_commands(bot_commands: Iterable) -> Dict[str, List[Tuple[str, str]]]:
    """Visible commands as (name, summary) pairs, grouped by cog."""
    groups = defaultdict(list)
    for command in bot_commands:
        if command.hidden:
            continue
        groups[command.cog_name or "General"].append((command.name, command.short_doc or ""))
    return {category: sorted(entries) for category, entries in groups.items()}


def format_help(groups: Dict[str, List[Tuple[str, str]]], prefix: str = "") -> str:
    lines = [MESSAGES['HELP_TITLE']]
    for category in sorted(groups):
        lines.append(f"\n**{category}**\n```apache")
        for name, summary in groups[category]:
            lines.append(f"{(prefix + name).ljust(12)} : {summary}")
        lines.append("```")
    return "\n".join(lines)


class System(commands.Cog):
    def __init__(self, bot):
        self.bot = bot

    @commands.command(name="help")
    async def help(self, ctx):
        """Show available commands"""
        text = format_help(group_commands(self.bot.commands), self.bot.config.get('command_prefix', '!'))
        await ctx.message.add_reaction('📋')
        await ctx.reply(text)

    @commands.command(name="ping")
    async def ping(self, ctx):
        """Check bot latency"""
        sent = await ctx.reply(MESSAGES['PINGING'])
        round_trip = (sent.created_at - ctx.message.created_at).total_seconds() * 1000
        await sent.edit(content=MESSAGES['PONG'].format(
            round_trip=round(round_trip),
            gateway=round(self.bot.latency * 1000),
        ))


async def setup(bot):
    await bot.add_cog(System(bot))
