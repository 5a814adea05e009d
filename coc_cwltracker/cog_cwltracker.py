import asyncio
import discord
import logging
import os
import pendulum

from typing import *

from discord.ext import tasks

from redbot.core import Config, commands
from redbot.core.bot import Red
from redbot.core.data_manager import cog_data_path

from coc_cwl.analytics.predictions import predict_final_position
from coc_cwl.analytics.roster import recommend_lineup, detect_problematic_players
from coc_cwl.client.coc_client import CWLClashClient
from coc_cwl.client.db_client import MotorClient
from coc_cwl.client.source_client import CWLSourceClient
from coc_cwl.constants import CWLPhase
from coc_cwl.exceptions import DatabaseLogin, LoginNotSet, InvalidExportFormat
from coc_cwl.export import CWLDataExport, EXPORT_FORMATS
from coc_cwl.feeds.notifications import cwl_embed, leaderboard_embed, prediction_embed, roster_embed
from coc_cwl.tasks.cwl_loop import CWLPollLoop, MIN_INTERVAL_MINUTES
from coc_cwl.utils.logs import LOG, setup_logging
from coc_cwl.utils.utils import clean_tag, format_tag

from .messenger import BotMessenger

############################################################
############################################################
#####
##### CWL TRACKER COG
#####
############################################################
############################################################
class CWLTracker(commands.Cog):
    """
    Clan War League tracker.

    Follows every tracked clan through its CWL season: phase announcements,
    round results, standings, predictions, MVPs and attack reminders.

    Credentials are read from Red's shared API tokens:
    - `clashapi` : `username`, `password` and optionally `keys`
    - `clash_db` : `dbprimary`, `username`, `password`
    """

    __author__ = "bakkutteh"
    __version__ = "2024.10.1"

    def __init__(self,bot:Red):
        self.bot = bot

        self.coc_client = None
        self.db_client = None
        self.poll_loop = None
        self._poll_task = None

        self.config = Config.get_conf(self,identifier=644530507505337412,force_registration=True)
        default_global = {
            "poll_interval_minutes": 30,
            "reminder_hours": 4,
            "cache_ttl_seconds": 60,
            "export_dir": None
            }
        self.config.register_global(**default_global)

    def format_help_for_context(self, ctx: commands.Context) -> str:
        context = super().format_help_for_context(ctx)
        return f"{context}\n\nAuthor: {self.__author__}\nVersion: {self.__version__}"

    @property
    def export_path(self) -> str:
        return f"{cog_data_path(self)}/exports"

    ############################################################
    #####
    ##### COG LOAD
    #####
    ############################################################
    async def cog_load(self):
        setup_logging(f"{cog_data_path(self)}/logs")

        try:
            self.db_client = await MotorClient.client_login(await self.bot.get_shared_api_tokens('clash_db'))
            self.coc_client = await CWLClashClient.from_tokens(await self.bot.get_shared_api_tokens('clashapi'))
        except (LoginNotSet,DatabaseLogin) as exc:
            LOG.warning(f"CWL Tracker disabled, credentials are missing: {exc.__class__.__name__} {exc}")
            return

        self.poll_loop = CWLPollLoop(
            source=CWLSourceClient.from_client(self.coc_client),
            db=self.db_client,
            messenger=BotMessenger(self.bot),
            interval_minutes=await self.config.poll_interval_minutes(),
            reminder_hours=await self.config.reminder_hours(),
            cache_ttl=await self.config.cache_ttl_seconds()
            )
        self._poll_task = asyncio.create_task(self.poll_loop.start())
        self.reset_throttler_counter.start()

    async def cog_unload(self):
        self.reset_throttler_counter.cancel()
        if self.poll_loop:
            await self.poll_loop.stop()
        if self._poll_task:
            self._poll_task.cancel()
        if self.coc_client:
            await self.coc_client.close()
        if self.db_client:
            self.db_client.close()

        for name in ["coc.cwl.main","coc.cwl.data","coc.cwl.http"]:
            logging.getLogger(name).handlers.clear()

    @tasks.loop(minutes=1.0)
    async def reset_throttler_counter(self):
        try:
            throttler = self.coc_client.http_throttler if self.coc_client else None
            if throttler:
                sent, rcvd = await throttler.reset_counter()
                LOG.debug(f"Clash API requests in the last minute: {sent} sent, {rcvd} received.")
        except Exception:
            LOG.exception(f"Error resetting API throughput counter.")

    async def _get_export_dir(self) -> str:
        export_dir = await self.config.export_dir()
        return export_dir or self.export_path

    def _require_loop(self):
        if self.poll_loop is None:
            raise commands.UserFeedbackCheckFailure("The CWL Tracker is not running. Check the bot's API credentials and reload the cog.")

    ############################################################
    #####
    ##### COMMANDS
    #####
    ############################################################
    @commands.group(name="cwltracker",aliases=['cwlt'])
    @commands.guild_only()
    async def cmdgrp_cwltracker(self,ctx:commands.Context):
        """Clan War League tracking."""
        if not ctx.invoked_subcommand:
            pass

    @cmdgrp_cwltracker.command(name="status")
    @commands.admin_or_permissions(manage_guild=True)
    async def subcmd_cwltracker_status(self,ctx:commands.Context):
        """Status of the CWL poll loop."""
        self._require_loop()

        loop = self.poll_loop
        embed = cwl_embed(
            title="**CWL Tracker**",
            message=f"### {pendulum.now().format('dddd, DD MMM YYYY HH:mm:ssZZ')}",
            timestamp=pendulum.now()
            )
        embed.add_field(
            name="**Poll Loop**",
            value="```ini"
                + f"\n{'[Active]':<12} {loop.loop_active}"
                + f"\n{'[Interval]':<12} {loop.interval_minutes:.0f} min"
                + f"\n{'[Last Run]':<12} {loop.last_loop.format('HH:mm:ss') if loop.last_loop else 'Never'}"
                + f"\n{'[Runtime]':<12} {loop.runtime_avg:.1f}s"
                + "```",
            inline=False
            )

        sent, rcvd = self.coc_client.api_throughput
        embed.add_field(
            name="**API Throughput (this minute)**",
            value="```ini"
                + f"\n{'[Sent]':<12} {sent:,}"
                + f"\n{'[Received]':<12} {rcvd:,}"
                + "```",
            inline=False
            )

        calls = loop.source.recent_calls(10)
        embed.add_field(
            name="**Recent API Calls**",
            value="```"
                + ("\n".join([f"{c['status']:<13}{c['endpoint']}"[:60] for c in calls]) if calls else "None")
                + "```",
            inline=False
            )

        guild_config = await loop.config_store.get_guild_config(ctx.guild.id)
        lines = []
        for clan in guild_config.clans:
            state = await loop.state_manager.get_campaign_state(ctx.guild.id,clan.tag)
            lines.append(f"{format_tag(clan.tag)}: {CWLPhase.readable_text(state.phase)} ({state.season.id}) R{state.current_round}")
        embed.add_field(
            name="**Tracked Clans**",
            value="\n".join(lines) if lines else "No clans are tracked in this server.",
            inline=False
            )
        await ctx.reply(embed=embed)

    @cmdgrp_cwltracker.command(name="standings")
    async def subcmd_cwltracker_standings(self,ctx:commands.Context,clan_tag:str):
        """Current standing and prediction for a clan."""
        self._require_loop()

        state = await self.poll_loop.state_manager.get_campaign_state(ctx.guild.id,clan_tag)
        history = await self.poll_loop.leaderboard.get_standings_history(ctx.guild.id,state.clan_tag,state.season)
        if len(history) == 0:
            return await ctx.reply(f"No CWL standings recorded for {format_tag(clean_tag(clan_tag))} this season.")

        embeds = [leaderboard_embed(history[-1],history,state.season.id)]
        prediction = predict_final_position(history,state.league_name)
        if prediction:
            embeds.append(prediction_embed(prediction,state.season.id))
        await ctx.reply(embeds=embeds)

    @cmdgrp_cwltracker.command(name="roster")
    @commands.admin_or_permissions(manage_guild=True)
    async def subcmd_cwltracker_roster(self,ctx:commands.Context,clan_tag:str,roster_size:int=15):
        """Recommended lineup and problem players for a clan's current season."""
        self._require_loop()

        state = await self.poll_loop.state_manager.get_campaign_state(ctx.guild.id,clan_tag)
        rows = await self.poll_loop.recorder.get_season_performance(ctx.guild.id,state.clan_tag,state.season)
        if len(rows) == 0:
            return await ctx.reply(f"No CWL performance recorded for {format_tag(state.clan_tag)} this season.")

        embed = roster_embed(recommend_lineup(rows,roster_size),detect_problematic_players(rows),state.season.id)
        await ctx.reply(embed=embed)

    @cmdgrp_cwltracker.command(name="export")
    @commands.admin_or_permissions(manage_guild=True)
    async def subcmd_cwltracker_export(self,ctx:commands.Context,clan_tag:str,export_type:str,fmt:str='json'):
        """
        Export a clan's CWL data for the current season.

        Types: `performance`, `standings` (json, csv, xlsx) and `season_report` (json).
        """
        self._require_loop()

        if export_type not in EXPORT_FORMATS:
            return await ctx.reply(f"Unknown export type. Choose from: {', '.join(EXPORT_FORMATS)}.")

        state = await self.poll_loop.state_manager.get_campaign_state(ctx.guild.id,clan_tag)
        exporter = CWLDataExport(self.poll_loop.recorder,self.poll_loop.leaderboard,await self._get_export_dir())
        try:
            filename, path = await exporter.export(ctx.guild.id,state.clan_tag,state.season,export_type,fmt.lower())
        except InvalidExportFormat as exc:
            return await ctx.reply(f"{exc}")

        await ctx.reply(content=f"CWL {export_type} export for {format_tag(state.clan_tag)} ({state.season.id}).",file=discord.File(path,filename=filename))

    @cmdgrp_cwltracker.command(name="interval")
    @commands.is_owner()
    async def subcmd_cwltracker_interval(self,ctx:commands.Context,minutes:int):
        """Set the poll interval, in minutes. Minimum of 5."""
        minutes = max(minutes,MIN_INTERVAL_MINUTES)
        await self.config.poll_interval_minutes.set(minutes)
        if self.poll_loop:
            self.poll_loop.interval_minutes = minutes
        await ctx.reply(f"CWL poll interval set to {minutes} minutes. This takes effect after the current sleep.")

    @cmdgrp_cwltracker.command(name="exportdir")
    @commands.is_owner()
    async def subcmd_cwltracker_exportdir(self,ctx:commands.Context,path:Optional[str]=None):
        """Set the export directory. Leave blank to reset to the cog data folder."""
        if path and not os.path.isdir(path):
            return await ctx.reply(f"`{path}` is not a directory.")
        await self.config.export_dir.set(path)
        await ctx.reply(f"Exports will be written to `{path or self.export_path}`.")

    @cmdgrp_cwltracker.command(name="run")
    @commands.is_owner()
    async def subcmd_cwltracker_run(self,ctx:commands.Context):
        """Run a single poll now."""
        self._require_loop()

        msg = await ctx.reply("Running CWL poll...")
        failed = await self.poll_loop.run_once()
        await msg.edit(content=f"CWL poll completed with {failed} failed clan(s).")
