import pendulum

from typing import *

from ..analytics.dashboard import CWLDashboard
from ..analytics.mvp import round_awards, season_mvp_ranking
from ..analytics.predictions import predict_final_position
from ..client.source_client import CWLSourceClient
from ..constants import CWL_ROUNDS, NO_WAR_TAG
from ..exceptions import AmbiguousPerspective
from ..feeds.config import ClanCWLConfig, GuildCWLConfig
from ..feeds.notifications import Messenger, round_embed, leaderboard_embed, prediction_embed, round_mvp_embed, season_mvp_embed, dashboard_embed
from ..feeds.reminders import CWLReminders, DEFAULT_REMINDER_HOURS
from ..objects.campaign import CampaignState, CWLStateManager
from ..objects.performance import CWLPerformanceRecorder
from ..objects.standings import CWLLeaderboard, RoundStanding
from ..objects.war import CWLWar
from ..utils.logs import LOG
from ..utils.utils import clean_tag

PREDICTION_FROM_ROUND = 3

class RoundStatus:
    SKIPPED = 'skipped'
    ANNOUNCED = 'announced'
    UPDATED = 'updated'
    FINALIZED = 'finalized'

############################################################
############################################################
#####
##### ROUND DETECTOR
#####
############################################################
############################################################
class CWLRoundDetector():
    """
    Walks the rounds of a campaign's league group and reports each of them exactly once.

    A round is processed on every poll until its standing is finalized:

    - Player rows and the standing are upserted on every pass.
    - The first pass that finds the war in progress or ended posts the round
      message, then marks the round announced.
    - Later passes edit that message in place.
    - Once the war has ended, the end-of-round summaries are posted and the
      standing is finalized.

    Exceptions from persistence or messaging propagate. A round that fails
    part way is left unannounced and retried on the next poll.
    """
    def __init__(self,
        source:CWLSourceClient,
        state_manager:CWLStateManager,
        recorder:CWLPerformanceRecorder,
        leaderboard:CWLLeaderboard,
        messenger:Messenger,
        reminders:Optional[CWLReminders]=None,
        reminder_hours:float=DEFAULT_REMINDER_HOURS):

        self.source = source
        self.state_manager = state_manager
        self.recorder = recorder
        self.leaderboard = leaderboard
        self.messenger = messenger
        self.reminders = reminders if reminders is not None else CWLReminders(state_manager,recorder)
        self.reminder_hours = reminder_hours

    ##################################################
    ### WAR DISCOVERY
    ##################################################
    async def find_war(self,state:CampaignState,round_number:int,league_group:dict) -> Optional[Tuple[str,dict]]:
        """
        Returns the war tag and raw payload of the campaign's war in a round.

        The stored war tag is used when known. Otherwise every war tag of the
        round is fetched until one of them involves the clan, and that tag is
        stored.
        """
        stored = state.war_tag_for_round(round_number)
        if stored != NO_WAR_TAG:
            result = await self.source.fetch_war(stored)
            if not result.ok:
                LOG.debug(f"CWL {state.clan_tag} ({state.guild_id}) R{round_number}: war {stored} {result.status}.")
                return None
            return stored, result.payload

        rounds = league_group.get('rounds',[]) or []
        if round_number > len(rounds):
            return None

        war_tags = [t for t in rounds[round_number-1].get('warTags',[]) or [] if t and t != NO_WAR_TAG]
        for war_tag in war_tags:
            result = await self.source.fetch_war(war_tag)
            if not result.ok:
                continue
            sides = [clean_tag(result.payload.get(s,{}).get('tag')) for s in ['clan','opponent']]
            if state.clan_tag in sides:
                await self.state_manager.update_war_tag(state,round_number,war_tag)
                return war_tag, result.payload

        LOG.debug(f"CWL {state.clan_tag} ({state.guild_id}) R{round_number}: war not found among {len(war_tags)} tags.")
        return None

    ##################################################
    ### ROUNDS
    ##################################################
    async def process_rounds(self,
        state:CampaignState,
        league_group:dict,
        clan_config:ClanCWLConfig,
        guild_config:GuildCWLConfig,
        now:Optional[pendulum.DateTime]=None) -> Dict[int,str]:

        now = now or pendulum.now('UTC')
        outcome = {}
        rounds = league_group.get('rounds',[]) or []
        for round_number in range(1,min(len(rounds),CWL_ROUNDS)+1):
            outcome[round_number] = await self.process_round(state,round_number,league_group,clan_config,guild_config,now)
        return outcome

    async def process_round(self,
        state:CampaignState,
        round_number:int,
        league_group:dict,
        clan_config:ClanCWLConfig,
        guild_config:GuildCWLConfig,
        now:Optional[pendulum.DateTime]=None) -> str:

        now = now or pendulum.now('UTC')
        existing = await self.leaderboard.get_round_standing(state.guild_id,state.clan_tag,state.season,round_number)
        if existing and existing.finalized:
            return RoundStatus.SKIPPED

        found = await self.find_war(state,round_number,league_group)
        if found is None:
            return RoundStatus.SKIPPED
        war_tag, payload = found

        try:
            war = CWLWar.normalize(payload,state.clan_tag,war_tag)
        except AmbiguousPerspective as exc:
            LOG.warning(f"CWL {state.clan_tag} ({state.guild_id}) R{round_number}: {exc}")
            return RoundStatus.SKIPPED

        if not (war.is_in_war or war.is_ended):
            LOG.debug(f"CWL {state.clan_tag} ({state.guild_id}) R{round_number}: war is {war.state}.")
            return RoundStatus.SKIPPED

        rows = await self.recorder.record_round_attacks(state.guild_id,state.clan_tag,state.season,round_number,war)
        standing = await self.leaderboard.update_round_standings(state,round_number,league_group,war)

        if not state.is_announced(round_number):
            await self._announce_round(state,round_number,war,rows,standing,clan_config,guild_config,now)
            if war.is_ended:
                await self.leaderboard.mark_round_finalized(state.guild_id,state.clan_tag,state.season,round_number)
                return RoundStatus.FINALIZED
            return RoundStatus.ANNOUNCED

        await self._update_round(state,round_number,war,rows,clan_config,guild_config,now)
        if war.is_ended:
            await self.leaderboard.mark_round_finalized(state.guild_id,state.clan_tag,state.season,round_number)
            return RoundStatus.FINALIZED
        return RoundStatus.UPDATED

    async def _announce_round(self,
        state:CampaignState,
        round_number:int,
        war:CWLWar,
        rows:list,
        standing:Optional[RoundStanding],
        clan_config:ClanCWLConfig,
        guild_config:GuildCWLConfig,
        now:pendulum.DateTime):

        await self._sync_round_message(state,round_number,war,rows,clan_config)

        if war.is_in_war:
            await self.reminders.check_and_send(state,clan_config,guild_config,round_number,war,self.messenger,now,self.reminder_hours)
        if war.is_ended:
            await self._post_round_summaries(state,round_number,standing,clan_config)

        await self.state_manager.mark_round_announced(state,round_number)
        LOG.info(f"CWL {state.clan_tag} ({state.guild_id}) {state.season.id}: round {round_number} {war.state} announced.")

    async def _update_round(self,
        state:CampaignState,
        round_number:int,
        war:CWLWar,
        rows:list,
        clan_config:ClanCWLConfig,
        guild_config:GuildCWLConfig,
        now:pendulum.DateTime):

        standing = await self._sync_round_message(state,round_number,war,rows,clan_config)

        if war.is_in_war:
            await self.reminders.check_and_send(state,clan_config,guild_config,round_number,war,self.messenger,now,self.reminder_hours)
        if war.is_ended:
            await self._post_round_summaries(state,round_number,standing,clan_config)

    ##################################################
    ### MESSAGES
    ##################################################
    async def _round_embed(self,state:CampaignState,round_number:int,war:CWLWar,rows:list):
        cumulative = await self.recorder.get_cumulative_stats(state.guild_id,state.clan_tag,state.season,round_number)
        return round_embed(war,round_number,state.season.id,rows=rows,cumulative=cumulative)

    async def _sync_round_message(self,state:CampaignState,round_number:int,war:CWLWar,rows:list,clan_config:ClanCWLConfig) -> Optional[RoundStanding]:
        """
        Edits the round's message in place, or posts it when it was never sent or has been deleted.
        """
        standing = await self.leaderboard.get_round_standing(state.guild_id,state.clan_tag,state.season,round_number)
        if not clan_config.announce_channel_id:
            LOG.warning(f"CWL {state.clan_tag} ({state.guild_id}) R{round_number}: no announcement channel configured.")
            return standing

        embed = await self._round_embed(state,round_number,war,rows)
        message_id = standing.leaderboard_message_id if standing else None
        if message_id:
            if await self.messenger.edit(clan_config.announce_channel_id,message_id,embed) is not None:
                return standing
            LOG.info(f"CWL {state.clan_tag} ({state.guild_id}) R{round_number}: round message gone, reposting.")

        message_id = await self.messenger.send(clan_config.announce_channel_id,embed)
        if message_id:
            await self.leaderboard.store_round_message_id(state.guild_id,state.clan_tag,state.season,round_number,message_id)
        return standing

    async def _post_round_summaries(self,state:CampaignState,round_number:int,standing:Optional[RoundStanding],clan_config:ClanCWLConfig):
        """
        End-of-round posts: leaderboard and round MVP, the prediction from round 3 and the season summary after the last round.
        """
        channel_id = clan_config.board_channel_id
        if not channel_id:
            LOG.warning(f"CWL {state.clan_tag} ({state.guild_id}) R{round_number}: no leaderboard channel configured.")
            return

        history = await self.leaderboard.get_standings_history(state.guild_id,state.clan_tag,state.season)
        history = [s for s in history if s.round_number <= round_number]
        if standing is None and len(history) > 0:
            standing = history[-1]

        if standing:
            await self.messenger.send(channel_id,leaderboard_embed(standing,history,state.season.id))

        round_rows = await self.recorder.get_round_performance(state.guild_id,state.clan_tag,state.season,round_number)
        mvp = round_mvp_embed(round_awards(round_rows,round_number),state.season.id)
        if mvp:
            await self.messenger.send(channel_id,mvp)

        if round_number >= PREDICTION_FROM_ROUND:
            prediction = predict_final_position(history,state.league_name)
            if prediction:
                await self.messenger.send(channel_id,prediction_embed(prediction,state.season.id))

        if round_number >= CWL_ROUNDS:
            season_rows = await self.recorder.get_season_performance(state.guild_id,state.clan_tag,state.season)
            season_embed = season_mvp_embed(season_mvp_ranking(season_rows),state.season.id)
            if season_embed:
                await self.messenger.send(channel_id,season_embed)
            await self.post_dashboard(state,clan_config,season_rows,history)

    async def post_dashboard(self,state:CampaignState,clan_config:ClanCWLConfig,rows:Optional[list]=None,history:Optional[List[RoundStanding]]=None) -> Optional[int]:
        """
        Edits the campaign's dashboard message, or posts a new one if there is none.
        """
        channel_id = clan_config.board_channel_id
        if not channel_id:
            return None
        if rows is None:
            rows = await self.recorder.get_season_performance(state.guild_id,state.clan_tag,state.season)
        if history is None:
            history = await self.leaderboard.get_standings_history(state.guild_id,state.clan_tag,state.season)

        embed = dashboard_embed(CWLDashboard(rows,history),state.season.id)
        message_id = None
        if state.dashboard_message_id:
            message_id = await self.messenger.edit(channel_id,state.dashboard_message_id,embed)
        if message_id is None:
            message_id = await self.messenger.send(channel_id,embed)
            if message_id:
                await self.state_manager.store_message_id(state,'dashboard',message_id)
        return message_id
