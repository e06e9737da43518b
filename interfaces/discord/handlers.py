from __future__ import annotations

import asyncio
import logging

import discord
from discord.ext import commands

from application.services import (
    ExternalContext,
    list_game_aliases,
    register_game_alias,
)
from domain.repositories import IdentityRepository

logger = logging.getLogger(__name__)


def _build_external_context(user: discord.abc.User) -> ExternalContext:
    """Create an `ExternalContext` from a Discord user."""

    return ExternalContext(
        provider_user_id=str(user.id),
        display_name=user.display_name or user.name,
    )


def create_discord_bot(identity_repo: IdentityRepository) -> commands.Bot:
    """
    Configure and return a Discord bot exposing the registration commands.

    Commands are hybrid: they work as slash commands (replies are ephemeral)
    and as `!` prefix commands. Slash commands are synced globally when the
    bot starts.
    """

    intents = discord.Intents.default()
    intents.message_content = True

    # Disable the default help command so we can provide our own `help`.
    bot = commands.Bot(command_prefix="!", intents=intents, help_command=None)

    @bot.event
    async def setup_hook():
        synced = await bot.tree.sync()
        logger.info("Synced %d application commands", len(synced))

    @bot.event
    async def on_ready():
        logger.info("Discord bot logged in as %s (id=%s)", bot.user, bot.user.id)

    @bot.hybrid_command(name="help", description="Show how to use the turn relay")
    async def help_cmd(ctx: commands.Context):
        await ctx.send(
            "/register <civ_username>  - get pinged when it is your turn\n"
            "/aliases                  - list the Civ usernames you registered\n",
            ephemeral=True,
        )

    @bot.hybrid_command(name="register", description="Link your Civ username to your Discord account")
    async def register_cmd(ctx: commands.Context, *, civ_username: str):
        await ctx.defer(ephemeral=True)

        external_ctx = _build_external_context(ctx.author)
        result = await asyncio.to_thread(
            register_game_alias, external_ctx, civ_username, identity_repo
        )
        await ctx.send(result.message, ephemeral=True)

    @bot.hybrid_command(name="aliases", description="List the Civ usernames linked to your account")
    async def aliases_cmd(ctx: commands.Context):
        await ctx.defer(ephemeral=True)

        external_ctx = _build_external_context(ctx.author)
        result = await asyncio.to_thread(list_game_aliases, external_ctx, identity_repo)
        await ctx.send(result.message, ephemeral=True)

    return bot
