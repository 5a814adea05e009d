import asyncio
import pendulum
import copy

from typing import *

from collections import deque

from ..client.cache import WarCache
from ..client.db_client import MotorClient
from ..client.source_client import CWLSourceClient
from ..constants import CWLPhase
from ..feeds.config import CWLConfigStore, ClanCWLConfig, GuildCWLConfig
from ..feeds.notifications import Messenger, build_mention_prefix, cwl_started_embed, wars_started_embed, cwl_ended_embed
from ..feeds.reminders import CWLReminders, DEFAULT_REMINDER_HOURS
from ..objects.campaign import CampaignState, CWLStateManager, decide_transition, league_group_season
from ..objects.performance import CWLPerformanceRecorder
from ..objects.standings import CWLLeaderboard
from ..utils.logs import LOG
from ..utils.utils import clean_tag, format_tag
from .round_tasks import CWLRoundDetector

DEFAULT_INTERVAL_MINUTES = 30
MIN_INTERVAL_MINUTES = 5

############################################################
############################################################
#####
##### TRANSITION ANNOUNCER
#####
############################################################
############################################################
class CWLTransitionAnnouncer():
    """
    Posts the phase change announcements of a campaign.
    """
    def __init__(self,detector:CWLRoundDetector):
        self.detector = detector

    @property
    def messenger(self) -> Messenger:
        return self.detector.messenger

    async def clan_name(self,state:CampaignState,league_group:Optional[dict]) -> str:
        for c in (league_group or {}).get('clans',[]) or []:
            if clean_tag(c.get('tag')) == state.clan_tag:
                return c.get('name',format_tag(state.clan_tag))
        result = await self.detector.source.fetch_clan(state.clan_tag)
        if result.ok:
            return result.payload.get('name',format_tag(state.clan_tag))
        return format_tag(state.clan_tag)

    async def announce_pending(self,
        state:CampaignState,
        league_group:Optional[dict],
        clan_config:ClanCWLConfig,
        guild_config:GuildCWLConfig) -> Optional[int]:
        """
        Announces the campaign's current phase unless that phase is already marked
        as announced. The marker is only written after the send returns, so a
        failed send is retried on the next tick.
        """
        if state.phase == CWLPhase.NOT_IN_LEAGUE or state.phase_announced():
            return None
        phase = state.phase
        message_id = await self.announce(state,phase,league_group,clan_config,guild_config)
        await self.detector.state_manager.mark_phase_announced(state,phase)
        return message_id

    async def announce(self,
        state:CampaignState,
        phase:str,
        league_group:Optional[dict],
        clan_config:ClanCWLConfig,
        guild_config:GuildCWLConfig) -> Optional[int]:

        channel_id = clan_config.announce_channel_id
        if not channel_id:
            LOG.warning(f"CWL {state.clan_tag} ({state.guild_id}): no announcement channel for {phase}.")
            return None

        name = await self.clan_name(state,league_group)

        if phase == CWLPhase.PREPARATION:
            message_id = await self.messenger.send(
                channel_id,
                cwl_started_embed(name,state.clan_tag,league_group or {}),
                content=build_mention_prefix(guild_config.mentions_for(clan_config))
                )
            if message_id:
                await self.detector.state_manager.store_message_id(state,'announcement',message_id)
            await self.detector.post_dashboard(state,clan_config)
            return message_id

        if phase == CWLPhase.ACTIVE:
            message_id = await self.messenger.send(channel_id,wars_started_embed(name,state.clan_tag,league_group or {}))
            if message_id:
                await self.detector.state_manager.store_message_id(state,'announcement',message_id)
            return message_id

        if phase == CWLPhase.ENDED:
            history = await self.detector.leaderboard.get_standings_history(state.guild_id,state.clan_tag,state.season)
            return await self.messenger.send(channel_id,cwl_ended_embed(name,state.clan_tag,state.season.id,history))
        return None

############################################################
############################################################
#####
##### CWL POLL LOOP
#####
############################################################
############################################################
class CWLPollLoop():
    """
    Fixed-interval poll over every tracked clan.

    Guilds are visited one after the other, and clans within a guild likewise.
    A failure in one clan is logged and does not stop the others.
    """
    def __init__(self,
        source:CWLSourceClient,
        db:MotorClient,
        messenger:Messenger,
        interval_minutes:float=DEFAULT_INTERVAL_MINUTES,
        reminder_hours:float=DEFAULT_REMINDER_HOURS,
        cache_ttl:float=60):

        self.source = source
        self.db = db
        self.messenger = messenger
        self.interval_minutes = interval_minutes

        self.config_store = CWLConfigStore(db)
        self.state_manager = CWLStateManager(db)
        self.recorder = CWLPerformanceRecorder(db)
        self.leaderboard = CWLLeaderboard(db,source,self.state_manager,cache=WarCache(ttl=cache_ttl))
        self.reminders = CWLReminders(self.state_manager,self.recorder)
        self.detector = CWLRoundDetector(
            source,
            self.state_manager,
            self.recorder,
            self.leaderboard,
            messenger,
            reminders=self.reminders,
            reminder_hours=reminder_hours
            )
        self.announcer = CWLTransitionAnnouncer(self.detector)

        self.last_loop = None
        self.run_time = deque(maxlen=100)
        self._active = False
        self._running = False

    @property
    def interval_minutes(self) -> float:
        return self._interval_minutes
    @interval_minutes.setter
    def interval_minutes(self,value:float):
        self._interval_minutes = max(float(value or DEFAULT_INTERVAL_MINUTES),MIN_INTERVAL_MINUTES)

    ##################################################
    ### LOOP METHODS
    ##################################################
    async def start(self):
        self._active = True
        LOG.info(f"CWL poll loop started. Interval: {self.interval_minutes} minutes.")
        while self._active:
            await self.run_once()
            if not self._active:
                break
            await asyncio.sleep(self.interval_minutes * 60)
        LOG.info("CWL poll loop stopped.")

    async def stop(self):
        self._active = False

    async def run_once(self,now:Optional[pendulum.DateTime]=None) -> int:
        """
        Runs a single pass over every active guild. Returns the number of clans that failed.
        """
        if self._running:
            LOG.debug("CWL poll already running, tick skipped.")
            return 0

        self._running = True
        st = pendulum.now()
        failed = 0
        try:
            guilds = await self.config_store.active_guilds()
            for guild_config in guilds:
                for clan_config in guild_config.clans:
                    try:
                        await self.process_clan(guild_config,clan_config,now)
                    except asyncio.CancelledError:
                        raise
                    except Exception:
                        failed += 1
                        LOG.exception(f"CWL poll failed for {clan_config.tag} in guild {guild_config.guild_id}.")
        finally:
            self._running = False
            self.release_idle_state()
            et = pendulum.now()
            self.last_loop = et
            self.run_time.append(et.diff(st).in_seconds())
        return failed

    def release_idle_state(self) -> int:
        """
        Drops idle per-campaign locks and expired cache entries after a pass.
        """
        released = sum(m.prune_locks() for m in [self.state_manager,self.recorder,self.leaderboard])
        return released + self.leaderboard.cache.purge_expired()

    async def process_clan(self,guild_config:GuildCWLConfig,clan_config:ClanCWLConfig,now:Optional[pendulum.DateTime]=None) -> CampaignState:
        now = now or pendulum.now('UTC')
        state = await self.state_manager.get_campaign_state(guild_config.guild_id,clan_config.tag)

        result = await self.source.fetch_league_group(clan_config.tag)
        if result.unavailable:
            LOG.debug(f"CWL {clan_config.tag} ({guild_config.guild_id}): league group unavailable, skipped.")
            return state

        league_group = result.payload if result.ok else None
        if league_group is not None and CWLPhase.from_remote(league_group.get('state')) is None:
            league_group = None

        action = decide_transition(state,league_group)
        if action.is_transition:
            state = await self.state_manager.apply_transition(state,action,league_group,now)

        if state.phase in [CWLPhase.PREPARATION,CWLPhase.ACTIVE]:
            await self.announcer.announce_pending(state,league_group,clan_config,guild_config)

        if league_group is not None and state.phase != CWLPhase.NOT_IN_LEAGUE and league_group_season(league_group,state.season) == state.season:
            await self.detector.process_rounds(state,league_group,clan_config,guild_config,now)

        if state.phase == CWLPhase.ENDED:
            await self.announcer.announce_pending(state,league_group,clan_config,guild_config)

        await self.state_manager.touch(state,now)
        return state

    ##################################################
    ### LOOP METRICS
    ##################################################
    @property
    def loop_active(self) -> bool:
        return self._active

    @property
    def runtime_avg(self) -> float:
        runtime = copy.copy(self.run_time)
        return sum(runtime)/len(runtime) if len(runtime) > 0 else 0
