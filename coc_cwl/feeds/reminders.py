import pendulum

from typing import *

from ..analytics.roster import attack_timing
from ..objects.campaign import CampaignState, CWLStateManager
from ..objects.performance import CWLPerformanceRecorder
from ..objects.war import CWLWar
from ..utils.logs import LOG
from .config import ClanCWLConfig, GuildCWLConfig
from .notifications import Messenger, build_mention_prefix, reminder_embeds

DEFAULT_REMINDER_HOURS = 4

class CWLReminders():
    """
    Attack reminders for the final hours of a CWL war.

    A round is reminded at most once. It is recorded in
    `pending_reminder_rounds` as soon as it has been checked inside the window,
    whether or not anybody was left to remind.
    """
    def __init__(self,state_manager:CWLStateManager,recorder:CWLPerformanceRecorder):
        self.state_manager = state_manager
        self.recorder = recorder

    @staticmethod
    def in_window(war:CWLWar,now:Optional[pendulum.DateTime]=None,reminder_hours:float=DEFAULT_REMINDER_HOURS) -> bool:
        if not war.is_in_war:
            return False
        remaining = war.hours_remaining(now)
        if remaining is None:
            return False
        return 0 < remaining <= reminder_hours

    async def check_and_send(self,
        state:CampaignState,
        clan_config:ClanCWLConfig,
        guild_config:GuildCWLConfig,
        round_number:int,
        war:CWLWar,
        messenger:Messenger,
        now:Optional[pendulum.DateTime]=None,
        reminder_hours:float=DEFAULT_REMINDER_HOURS) -> bool:
        """
        Returns True if a reminder was posted.
        """
        if not clan_config.reminders_enabled:
            return False
        if round_number in state.pending_reminder_rounds:
            return False
        if not self.in_window(war,now,reminder_hours):
            return False

        if not clan_config.announce_channel_id:
            LOG.warning(f"CWL {state.clan_tag} ({state.guild_id}): no announcement channel for round {round_number} reminder.")
            return False

        missing = await self.recorder.get_missing_attacks(state.guild_id,state.clan_tag,state.season,round_number)
        sent = False
        if len(missing) > 0:
            rows = await self.recorder.get_season_performance(state.guild_id,state.clan_tag,state.season,up_to_round=round_number)
            timing = attack_timing(rows,round_number)
            embeds = reminder_embeds(missing,round_number,war.hours_remaining(now),war.clan.name,timing=timing)
            content = build_mention_prefix(guild_config.mentions_for(clan_config))
            for embed in embeds:
                await messenger.send(clan_config.announce_channel_id,embed,content=content)
            sent = True
            LOG.info(f"CWL {state.clan_tag} ({state.guild_id}) R{round_number}: reminded {len(missing)} players.")
        else:
            LOG.debug(f"CWL {state.clan_tag} ({state.guild_id}) R{round_number}: all attacks used, no reminder.")

        await self.state_manager.mark_reminder_sent(state,round_number)
        return sent
