import pendulum
import pytest

from coc_cwl.constants import CWLColors
from coc_cwl.feeds.config import GuildCWLConfig
from coc_cwl.feeds.notifications import build_mention_prefix, leaderboard_embed, reminder_embeds, round_embed, round_mvp_embed
from coc_cwl.feeds.reminders import CWLReminders
from coc_cwl.analytics.mvp import RoundAwards
from coc_cwl.analytics.roster import attack_timing
from coc_cwl.objects.campaign import CWLStateManager, decide_transition
from coc_cwl.objects.performance import CWLPerformanceRecorder, PlayerRoundPerformance
from coc_cwl.objects.standings import RoundStanding
from coc_cwl.objects.war import CWLWar

from conftest import GUILD_ID, OUR_TAG, SEASON, make_attack, make_league_group, make_member, make_simple_war

# wars built by make_simple_war end at 2025-01-07 08:00 UTC
TWO_HOURS_LEFT = pendulum.datetime(2025,1,7,6)
TEN_HOURS_LEFT = pendulum.datetime(2025,1,6,22)

class TestMentions:

    def test_special_targets(self):
        assert build_mention_prefix(['here','@everyone']) == '@here @everyone'

    def test_roles_users_and_raw(self):
        prefix = build_mention_prefix(['123','role:456','user:789','<@&42>'])
        assert prefix == '<@&123> <@&456> <@789> <@&42>'

    def test_duplicates_and_empty(self):
        assert build_mention_prefix(['here','HERE','  ']) == '@here'
        assert build_mention_prefix([]) is None
        assert build_mention_prefix(None) is None

    def test_clan_targets_override_guild(self):
        config = GuildCWLConfig(GUILD_ID,{
            'mention_targets': ['here'],
            'clans': ['#AAA','#BBB'],
            'clan_configs': {'#BBB':{'mention_targets':['role:9']}}
            })
        assert config.mentions_for(config.get_clan('AAA')) == ['here']
        assert config.mentions_for(config.get_clan('#bbb')) == ['role:9']

class TestEmbeds:

    def test_reminder_is_chunked(self):
        missing = [PlayerRoundPerformance(player_tag=f"P{i}",player_name=f"Player {i}",map_position=i+1) for i in range(23)]
        embeds = reminder_embeds(missing,2,3.5,'Our Clan')
        assert len(embeds) == 1
        assert len(embeds[0].fields) == 3
        assert embeds[0].fields[0].name == "Yet to attack"

    def test_reminder_field_cap(self):
        missing = [PlayerRoundPerformance(player_tag=f"P{i}",player_name=f"P{i}") for i in range(200)]
        assert len(reminder_embeds(missing,1,1.0,'Our Clan')[0].fields) == 15
        assert reminder_embeds([],1,1.0,'Our Clan') == []

    def test_reminder_priority_field(self):
        rows = [
            PlayerRoundPerformance(player_tag='#A',player_name='Ace',round_number=1,attacks_used=1,stars_earned=3,destruction_percentage=100.0),
            PlayerRoundPerformance(player_tag='#A',player_name='Ace',round_number=2,map_position=1),
            PlayerRoundPerformance(player_tag='#N',player_name='New',round_number=2,map_position=2)
            ]
        missing = [r for r in rows if r.round_number == 2]
        timing = attack_timing(rows,2)

        fields = reminder_embeds(missing,2,1.0,'Our Clan',timing=timing)[0].fields
        assert [f.name for f in fields] == ['Yet to attack','🔥 Priority attackers']
        assert fields[1].value == '• Ace: 3.0⭐ · 100%'
        assert len(reminder_embeds(missing,2,1.0,'Our Clan')[0].fields) == 1

    def test_round_embed_result_and_update(self):
        ended = CWLWar.normalize(make_simple_war(20,80.0,10,50.0),OUR_TAG)
        embed = round_embed(ended,3,SEASON.description)
        assert embed.title == "🏆 CWL Round 3 Result"
        assert embed.color.value == CWLColors.GREEN

        live = CWLWar.normalize(make_simple_war(20,80.0,10,50.0,state='inWar'),OUR_TAG)
        assert round_embed(live,3,SEASON.description).title.endswith("Update")

    def test_leaderboard_color_bands(self):
        current = RoundStanding(round_number=2,position=4,total_clans=8,cumulative_wins=1,cumulative_losses=1)
        previous = RoundStanding(round_number=1,position=6,total_clans=8,cumulative_wins=1)
        embed = leaderboard_embed(current,[previous,current],SEASON.description)
        assert embed.color.value == CWLColors.YELLOW

    def test_empty_awards_have_no_embed(self):
        assert round_mvp_embed(RoundAwards(1),SEASON.description) is None

class TestReminders:

    async def _setup(self,db):
        manager = CWLStateManager(db)
        recorder = CWLPerformanceRecorder(db)
        group = make_league_group(state='inWar')
        state = await manager.get_campaign_state(GUILD_ID,OUR_TAG)
        state = await manager.apply_transition(state,decide_transition(state,group),group)
        return manager, recorder, state

    def test_window(self):
        war = CWLWar.normalize(make_simple_war(3,50.0,2,40.0,state='inWar'),OUR_TAG)
        assert CWLReminders.in_window(war,TWO_HOURS_LEFT,4)
        assert not CWLReminders.in_window(war,TEN_HOURS_LEFT,4)
        assert not CWLReminders.in_window(war,pendulum.datetime(2025,1,7,9),4)

        ended = CWLWar.normalize(make_simple_war(3,50.0,2,40.0),OUR_TAG)
        assert not CWLReminders.in_window(ended,TWO_HOURS_LEFT,4)

    @pytest.mark.asyncio
    async def test_reminds_once(self,db,messenger,guild_config,clan_config):
        manager, recorder, state = await self._setup(db)
        war = CWLWar.normalize(make_simple_war(3,50.0,2,40.0,state='inWar'),OUR_TAG)
        await recorder.record_round_attacks(GUILD_ID,OUR_TAG,SEASON,1,war)
        reminders = CWLReminders(manager,recorder)

        assert await reminders.check_and_send(state,clan_config,guild_config,1,war,messenger,TWO_HOURS_LEFT)
        assert not await reminders.check_and_send(state,clan_config,guild_config,1,war,messenger,TWO_HOURS_LEFT)

        assert len(messenger.sent) == 1
        assert messenger.sent[0]['channel_id'] == 111
        assert messenger.sent[0]['content'] == '@here'
        stored = await manager.get_campaign(GUILD_ID,OUR_TAG,SEASON)
        assert stored.pending_reminder_rounds == [1]

    @pytest.mark.asyncio
    async def test_outside_window_is_not_recorded(self,db,messenger,guild_config,clan_config):
        manager, recorder, state = await self._setup(db)
        war = CWLWar.normalize(make_simple_war(3,50.0,2,40.0,state='inWar'),OUR_TAG)
        reminders = CWLReminders(manager,recorder)

        assert not await reminders.check_and_send(state,clan_config,guild_config,1,war,messenger,TEN_HOURS_LEFT)
        assert messenger.sent == []
        assert state.pending_reminder_rounds == []

    @pytest.mark.asyncio
    async def test_nobody_missing_still_recorded(self,db,messenger,guild_config,clan_config):
        manager, recorder, state = await self._setup(db)
        members = [{'tag':'#P1','name':'Alpha','townhallLevel':15,'mapPosition':1,'attacks':[{'attackerTag':'#P1','defenderTag':'#Q1','stars':3,'destructionPercentage':100.0,'order':1}]}]
        war = CWLWar.normalize(make_simple_war(3,100.0,2,40.0,state='inWar',our_members=members),OUR_TAG)
        await recorder.record_round_attacks(GUILD_ID,OUR_TAG,SEASON,1,war)
        reminders = CWLReminders(manager,recorder)

        assert not await reminders.check_and_send(state,clan_config,guild_config,1,war,messenger,TWO_HOURS_LEFT)
        assert messenger.sent == []
        stored = await manager.get_campaign(GUILD_ID,OUR_TAG,SEASON)
        assert stored.pending_reminder_rounds == [1]

    @pytest.mark.asyncio
    async def test_disabled(self,db,messenger,guild_config_data):
        guild_config_data['clan_configs'][OUR_TAG]['reminders_enabled'] = False
        guild_config = GuildCWLConfig(GUILD_ID,guild_config_data)
        manager, recorder, state = await self._setup(db)
        war = CWLWar.normalize(make_simple_war(3,50.0,2,40.0,state='inWar'),OUR_TAG)
        reminders = CWLReminders(manager,recorder)

        assert not await reminders.check_and_send(state,guild_config.clans[0],guild_config,1,war,messenger,TWO_HOURS_LEFT)
        assert messenger.sent == []

    @pytest.mark.asyncio
    async def test_priority_attackers_from_earlier_rounds(self,db,messenger,guild_config,clan_config):
        manager, recorder, state = await self._setup(db)
        members = [
            make_member('#P1','Alpha',15,1,[make_attack('#P1','#Q1',1,40.0,1)]),
            make_member('#P2','Bravo',14,2,[make_attack('#P2','#Q2',3,100.0,2)])
            ]
        first = CWLWar.normalize(make_simple_war(4,70.0,2,40.0,our_members=members),OUR_TAG)
        await recorder.record_round_attacks(GUILD_ID,OUR_TAG,SEASON,1,first)

        second = CWLWar.normalize(make_simple_war(3,50.0,2,40.0,state='inWar'),OUR_TAG)
        await recorder.record_round_attacks(GUILD_ID,OUR_TAG,SEASON,2,second)
        reminders = CWLReminders(manager,recorder)

        assert await reminders.check_and_send(state,clan_config,guild_config,2,second,messenger,TWO_HOURS_LEFT)
        fields = messenger.sent[0]['embed'].fields
        assert "Bravo" in fields[0].value
        assert fields[-1].name == "🔥 Priority attackers"
        assert fields[-1].value == "• Bravo: 3.0⭐ · 100%"
