"""Spotify feature cog."""

import logging

import discord
from discord import app_commands
from discord.ext import commands, tasks

from spotibot.config import Settings
from spotibot.core.errors import SpotibotError
from spotibot.spotify.models import TimeRange
from spotibot.spotify.service import SpotifyService

from .constants import OAUTH_SWEEP_MINUTES
from .embeds import build_top_tracks_embed, build_track_embed
from .messaging import DiscordMessenger
from .reconciler import PingRule, StatusReconciler
from .validator import StartupValidator

logger = logging.getLogger(__name__)

NOT_LINKED = "Your Spotify account is not linked. Use `/spotify link` to link it."


class SpotifyCog(commands.Cog):
    """Spotify now-playing status"""

    def __init__(self, bot: commands.Bot, service: SpotifyService, settings: Settings):
        self.bot = bot
        self.service = service
        self.settings = settings
        self.messenger = DiscordMessenger(bot)
        self.reconciler = StatusReconciler(
            service,
            self.messenger,
            ping_rule=PingRule(settings.ping_keyword, settings.ping_chance),
            history_limit=settings.history_scan_limit,
        )
        self.validator = StartupValidator(service, self.messenger)

    async def cog_load(self) -> None:
        self.poll_task.change_interval(seconds=self.settings.poll_interval)
        self.poll_task.start()
        self.oauth_sweep_task.start()

    async def cog_unload(self) -> None:
        self.poll_task.cancel()
        self.oauth_sweep_task.cancel()
        logger.info("Spotify polling stopped")

    def _is_admin(self, user: discord.abc.User) -> bool:
        return str(user.id) in self.settings.admin_ids

    # ==================== Background Tasks ====================

    @tasks.loop(seconds=10)
    async def poll_task(self) -> None:
        try:
            await self.reconciler.run_cycle()
        except Exception as e:
            logger.exception(f"Error in Spotify polling cycle: {e}")

    @poll_task.before_loop
    async def _startup(self) -> None:
        await self.bot.wait_until_ready()
        try:
            await self.validator.validate()
            adopted = await self.reconciler.discover_existing_messages()
            if adopted:
                logger.info(f"Adopted {adopted} existing status message(s)")
        except Exception as e:
            logger.exception(f"Spotify startup validation failed: {e}")
        logger.info(f"Spotify polling started (interval: {self.settings.poll_interval}s)")

    @tasks.loop(minutes=OAUTH_SWEEP_MINUTES)
    async def oauth_sweep_task(self) -> None:
        self.service.sweep_oauth_states()

    # ==================== Commands ====================

    spotify_group = app_commands.Group(name="spotify", description="Manage your Spotify integration")

    @spotify_group.command(name="link", description="Link your Spotify account to display what you're playing")
    async def spotify_link(self, interaction: discord.Interaction) -> None:
        user_id = str(interaction.user.id)
        if self.service.is_linked(user_id):
            await interaction.response.send_message(
                "Your Spotify account is already linked! Use `/spotify unlink` to unlink it.",
                ephemeral=True,
            )
            return

        auth_url = self.service.begin_link(user_id)
        message = f"Click this link to authorize Spotify:\n{auth_url}\n\n"
        if self.settings.callback_enabled:
            message += "After authorizing, your account will be automatically linked."
        else:
            message += (
                "After authorizing, you'll be redirected. Copy the `code` from the URL "
                "and use `/spotify complete` with that code."
            )
        await interaction.response.send_message(message, ephemeral=True)

    @spotify_group.command(name="unlink", description="Unlink your Spotify account")
    async def spotify_unlink(self, interaction: discord.Interaction) -> None:
        user_id = str(interaction.user.id)
        if not self.service.unlink_user(user_id):
            await interaction.response.send_message(NOT_LINKED, ephemeral=True)
            return

        logger.info(f"User {interaction.user} unlinked Spotify")
        await interaction.response.send_message(
            "✅ Successfully unlinked your Spotify account.", ephemeral=True
        )

    @spotify_group.command(name="status", description="Check your current Spotify playback status")
    async def spotify_status(self, interaction: discord.Interaction) -> None:
        user_id = str(interaction.user.id)
        if not self.service.is_linked(user_id):
            await interaction.response.send_message(NOT_LINKED, ephemeral=True)
            return

        await interaction.response.defer(ephemeral=True)
        track = await self.service.get_currently_playing(user_id)
        if track is None:
            await interaction.followup.send(
                "You are not currently playing anything on Spotify.", ephemeral=True
            )
            return

        await interaction.followup.send(
            embed=build_track_embed(track, interaction.user), ephemeral=True
        )

    @spotify_group.command(
        name="complete",
        description="Complete Spotify account linking with an authorization code",
    )
    @app_commands.describe(code="The authorization code from the redirect URL")
    async def spotify_complete(self, interaction: discord.Interaction, code: str) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            await self.service.link_with_code(str(interaction.user.id), code.strip())
        except SpotibotError as e:
            logger.warning(f"Manual code exchange failed for {interaction.user}: {e}")
            await interaction.followup.send(
                "Failed to exchange authorization code. Please try linking again with `/spotify link`.",
                ephemeral=True,
            )
            return

        await interaction.followup.send(
            "✅ Successfully linked your Spotify account! "
            "Your currently playing tracks will now be tracked.",
            ephemeral=True,
        )

    @spotify_group.command(
        name="channel",
        description="Set the shared channel where everyone's Spotify status is displayed",
    )
    @app_commands.describe(channel="The text channel for Spotify statuses (shared for all users)")
    async def spotify_channel(
        self, interaction: discord.Interaction, channel: discord.TextChannel
    ) -> None:
        user_id = str(interaction.user.id)
        if not self._is_admin(interaction.user):
            await interaction.response.send_message(
                "❌ Only admins can set the Spotify channel.", ephemeral=True
            )
            logger.warning(f"Unauthorized channel change attempt by {interaction.user} ({user_id})")
            return

        if not self.service.is_linked(user_id):
            await interaction.response.send_message(
                "Your Spotify account is not linked. Use `/spotify link` to link it first.",
                ephemeral=True,
            )
            return

        if not interaction.guild:
            await interaction.response.send_message("This command can only be used in a server.", ephemeral=True)
            return

        permissions = channel.permissions_for(interaction.guild.me)
        if not (permissions.send_messages and permissions.embed_links):
            await interaction.response.send_message(
                "I don't have permission to send messages or embeds in that channel.",
                ephemeral=True,
            )
            return

        self.service.set_user_channel(user_id, str(channel.id))
        logger.info(f"Spotify channel set | #{channel.name} ({channel.id}) | by {interaction.user}")

        reply = (
            f"✅ The Spotify channel has been set to {channel.mention}. All users' Spotify "
            f"statuses will be displayed here and update every {self.settings.poll_interval:g} seconds."
        )
        shared = self.service.get_shared_channel()
        if shared and shared != str(channel.id):
            reply += f"\nNote: statuses currently post to <#{shared}>, the first configured channel."
        await interaction.response.send_message(reply, ephemeral=True)

        await self._post_status_now(user_id, shared, channel)

    async def _post_status_now(
        self, user_id: str, shared: str | None, picked: discord.abc.Messageable
    ) -> None:
        """Reconcile the caller right away, always into the channel the loop uses."""
        if not shared:
            return
        if shared == str(getattr(picked, "id", "")):
            target = picked
        else:
            target = await self.reconciler.resolve_channel(shared)
            if target is None:
                return

        previous = self.service.get_last_fingerprint(user_id)
        await self.service.get_currently_playing(user_id)
        try:
            await self.reconciler.reconcile_user(target, user_id, previous)
        except SpotibotError as e:
            logger.warning(f"Immediate status post failed for {user_id}: {type(e).__name__}: {e}")

    @spotify_group.command(name="remove-channel", description="Remove your Spotify status channel")
    async def spotify_remove_channel(self, interaction: discord.Interaction) -> None:
        if not self._is_admin(interaction.user):
            await interaction.response.send_message(
                "❌ Only admins can remove the Spotify channel.", ephemeral=True
            )
            return

        if self.service.remove_user_channel(str(interaction.user.id)):
            await interaction.response.send_message(
                "✅ Removed the Spotify status channel.", ephemeral=True
            )
        else:
            await interaction.response.send_message(
                "No Spotify status channel is currently set.", ephemeral=True
            )

    @spotify_group.command(name="top-tracks", description="View your top 10 Spotify tracks")
    @app_commands.describe(period="Time period for top tracks")
    @app_commands.choices(
        period=[
            app_commands.Choice(name=TimeRange.LONG_TERM.label, value=TimeRange.LONG_TERM.value),
            app_commands.Choice(name=TimeRange.MEDIUM_TERM.label, value=TimeRange.MEDIUM_TERM.value),
            app_commands.Choice(name=TimeRange.SHORT_TERM.label, value=TimeRange.SHORT_TERM.value),
        ]
    )
    async def spotify_top_tracks(
        self, interaction: discord.Interaction, period: app_commands.Choice[str]
    ) -> None:
        user_id = str(interaction.user.id)
        if not self.service.is_linked(user_id):
            await interaction.response.send_message(NOT_LINKED, ephemeral=True)
            return

        await interaction.response.defer(ephemeral=True)
        time_range = TimeRange(period.value)
        try:
            tracks = await self.service.get_top_tracks(user_id, time_range, 10)
        except SpotibotError as e:
            logger.warning(f"Top tracks failed for {interaction.user}: {type(e).__name__}: {e}")
            await interaction.followup.send(
                "❌ Failed to fetch your top tracks. Please try again later.", ephemeral=True
            )
            return

        if not tracks:
            await interaction.followup.send(
                f"You don't have enough listening data for {time_range.label.lower()} yet. "
                "Keep listening to build your top tracks!",
                ephemeral=True,
            )
            return

        embed = build_top_tracks_embed(tracks, interaction.user, time_range.label)
        await interaction.followup.send(embed=embed, ephemeral=True)

    # ==================== Errors ====================

    async def cog_app_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        logger.error(f"Error in Spotify command: {error}", exc_info=error)
        message = "An error occurred while executing this command."
        if interaction.response.is_done():
            await interaction.followup.send(message, ephemeral=True)
        else:
            await interaction.response.send_message(message, ephemeral=True)
