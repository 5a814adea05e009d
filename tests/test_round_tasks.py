import pendulum
import pytest

from coc_cwl.client.cache import WarCache
from coc_cwl.objects.campaign import CWLStateManager, decide_transition
from coc_cwl.objects.performance import CWLPerformanceRecorder
from coc_cwl.objects.standings import CWLLeaderboard
from coc_cwl.tasks.round_tasks import CWLRoundDetector, RoundStatus

from conftest import GUILD_ID, OUR_TAG, SEASON, make_league_group, make_simple_war, make_war, make_war_clan

TEN_HOURS_LEFT = pendulum.datetime(2025,1,6,22)
TWO_HOURS_LEFT = pendulum.datetime(2025,1,7,6)

async def build_detector(db,source,messenger,group):
    manager = CWLStateManager(db)
    recorder = CWLPerformanceRecorder(db)
    leaderboard = CWLLeaderboard(db,source,manager,cache=WarCache(ttl=60))
    detector = CWLRoundDetector(source,manager,recorder,leaderboard,messenger)
    state = await manager.get_campaign_state(GUILD_ID,OUR_TAG)
    state = await manager.apply_transition(state,decide_transition(state,group),group)
    return detector, state

class TestWarDiscovery:

    @pytest.mark.asyncio
    async def test_round_war_is_discovered_and_stored(self,db,source,fake_http,messenger):
        group = make_league_group(rounds=[['#AAA','#8QW']] + [['#0'] for _ in range(6)])
        fake_http.set('wars','#AAA',make_war(make_war_clan('#1X','A'),make_war_clan('#3Y','B')))
        fake_http.set('wars','#8QW',make_simple_war(3,50.0,2,40.0))
        detector, state = await build_detector(db,source,messenger,group)

        war_tag, payload = await detector.find_war(state,1,group)
        assert war_tag == '#8QW'
        assert state.war_tag_for_round(1) == '#8QW'

        fake_http.calls.clear()
        await detector.find_war(state,1,group)
        assert fake_http.calls == [('wars','#8QW')]

    @pytest.mark.asyncio
    async def test_placeholder_round_is_skipped(self,db,source,fake_http,messenger,guild_config,clan_config):
        group = make_league_group()
        detector, state = await build_detector(db,source,messenger,group)
        assert await detector.process_round(state,2,group,clan_config,guild_config) == RoundStatus.SKIPPED
        assert fake_http.calls == []

class TestRoundProcessing:

    @pytest.mark.asyncio
    async def test_ended_round_is_announced_once_and_finalized(self,db,source,fake_http,messenger,guild_config,clan_config):
        group = make_league_group()
        fake_http.set('wars','#8QW',make_simple_war(3,50.0,2,40.0))
        detector, state = await build_detector(db,source,messenger,group)

        first = await detector.process_rounds(state,group,clan_config,guild_config)
        assert first[1] == RoundStatus.FINALIZED
        assert all(v == RoundStatus.SKIPPED for k,v in first.items() if k > 1)

        titles = messenger.titles()
        assert titles[0] == "🏆 CWL Round 1 Result"
        assert "🏆 CWL Leaderboard - Round 1" in titles
        assert "🌟 Round 1 MVP" in titles
        assert "🔮 CWL Predictions" not in titles
        assert messenger.sent[0]['channel_id'] == 111
        assert all(m['channel_id'] == 222 for m in messenger.sent[1:])

        second = await detector.process_rounds(state,group,clan_config,guild_config)
        assert second[1] == RoundStatus.SKIPPED
        assert messenger.titles() == titles

        stored = await detector.state_manager.get_campaign(GUILD_ID,OUR_TAG,SEASON)
        assert stored.announced_rounds == [1]
        standing = await detector.leaderboard.get_round_standing(GUILD_ID,OUR_TAG,SEASON,1)
        assert standing.finalized
        assert standing.leaderboard_message_id == messenger.sent[0]['message_id']

    @pytest.mark.asyncio
    async def test_live_round_is_edited_then_finalized(self,db,source,fake_http,messenger,guild_config,clan_config):
        group = make_league_group()
        fake_http.set('wars','#8QW',make_simple_war(3,50.0,2,40.0,state='inWar'))
        detector, state = await build_detector(db,source,messenger,group)

        assert await detector.process_round(state,1,group,clan_config,guild_config,TEN_HOURS_LEFT) == RoundStatus.ANNOUNCED
        assert messenger.titles() == ["🏆 CWL Round 1 Update"]
        round_message = messenger.sent[0]['message_id']

        assert await detector.process_round(state,1,group,clan_config,guild_config,TEN_HOURS_LEFT) == RoundStatus.UPDATED
        assert len(messenger.sent) == 1
        assert messenger.edits[-1]['message_id'] == round_message

        fake_http.set('wars','#8QW',make_simple_war(3,50.0,2,40.0))
        assert await detector.process_round(state,1,group,clan_config,guild_config,TEN_HOURS_LEFT) == RoundStatus.FINALIZED
        assert messenger.edits[-1]['embed'].title == "🏆 CWL Round 1 Result"
        assert "🌟 Round 1 MVP" in messenger.titles()
        assert messenger.titles().count("🏆 CWL Round 1 Update") == 1

    @pytest.mark.asyncio
    async def test_deleted_round_message_is_reposted(self,db,source,fake_http,messenger,guild_config,clan_config):
        group = make_league_group()
        fake_http.set('wars','#8QW',make_simple_war(3,50.0,2,40.0,state='inWar'))
        detector, state = await build_detector(db,source,messenger,group)

        await detector.process_round(state,1,group,clan_config,guild_config,TEN_HOURS_LEFT)
        messenger.gone.add(messenger.sent[0]['message_id'])
        await detector.process_round(state,1,group,clan_config,guild_config,TEN_HOURS_LEFT)

        assert len(messenger.sent) == 2
        standing = await detector.leaderboard.get_round_standing(GUILD_ID,OUR_TAG,SEASON,1)
        assert standing.leaderboard_message_id == messenger.sent[1]['message_id']

    @pytest.mark.asyncio
    async def test_failed_round_is_retried_without_duplicate(self,db,source,fake_http,messenger,guild_config,clan_config):
        group = make_league_group()
        fake_http.set('wars','#8QW',make_simple_war(3,50.0,2,40.0))
        detector, state = await build_detector(db,source,messenger,group)

        messenger.fail_on_send = 1
        with pytest.raises(RuntimeError):
            await detector.process_round(state,1,group,clan_config,guild_config)
        stored = await detector.state_manager.get_campaign(GUILD_ID,OUR_TAG,SEASON)
        assert stored.announced_rounds == []
        assert not (await detector.leaderboard.get_round_standing(GUILD_ID,OUR_TAG,SEASON,1)).finalized

        messenger.fail_on_send = None
        assert await detector.process_round(state,1,group,clan_config,guild_config) == RoundStatus.FINALIZED
        assert messenger.titles().count("🏆 CWL Round 1 Result") == 1
        assert messenger.edits[0]['message_id'] == messenger.sent[0]['message_id']

    @pytest.mark.asyncio
    async def test_reminder_while_announcing(self,db,source,fake_http,messenger,guild_config,clan_config):
        group = make_league_group()
        fake_http.set('wars','#8QW',make_simple_war(3,50.0,2,40.0,state='inWar',swapped=True))
        detector, state = await build_detector(db,source,messenger,group)

        await detector.process_round(state,1,group,clan_config,guild_config,TWO_HOURS_LEFT)
        assert messenger.titles() == ["🏆 CWL Round 1 Update","⏰ CWL Round 1 Attack Reminder"]
        reminder = messenger.sent[1]
        assert reminder['content'] == '@here'
        assert "Bravo" in reminder['embed'].fields[0].value

    @pytest.mark.asyncio
    async def test_foreign_war_is_skipped(self,db,source,fake_http,messenger,guild_config,clan_config):
        group = make_league_group()
        detector, state = await build_detector(db,source,messenger,group)
        await detector.state_manager.update_war_tag(state,1,'#8QW')
        fake_http.set('wars','#8QW',make_war(make_war_clan('#1X','A'),make_war_clan('#3Y','B')))

        assert await detector.process_round(state,1,group,clan_config,guild_config) == RoundStatus.SKIPPED
        assert messenger.sent == []

    @pytest.mark.asyncio
    async def test_preparation_round_is_skipped(self,db,source,fake_http,messenger,guild_config,clan_config):
        group = make_league_group()
        fake_http.set('wars','#8QW',make_simple_war(0,0.0,0,0.0,state='preparation'))
        detector, state = await build_detector(db,source,messenger,group)

        assert await detector.process_round(state,1,group,clan_config,guild_config) == RoundStatus.SKIPPED
        assert state.announced_rounds == []

class TestSeasonSummaries:

    @pytest.mark.asyncio
    async def test_last_round_posts_season_mvp_and_dashboard(self,db,source,fake_http,messenger,guild_config,clan_config):
        tags = [f"#R{i}" for i in range(1,8)]
        group = make_league_group(rounds=[[t] for t in tags])
        for t in tags:
            fake_http.set('wars',t,make_simple_war(3,50.0,2,40.0,war_tag=t))
        detector, state = await build_detector(db,source,messenger,group)

        outcome = await detector.process_rounds(state,group,clan_config,guild_config)
        assert list(outcome.values()) == [RoundStatus.FINALIZED] * 7

        titles = messenger.titles()
        assert titles.count("🔮 CWL Predictions") == 5
        assert titles.count("👑 CWL Season MVP") == 1
        assert titles.count("📊 CWL Statistics Dashboard") == 1
        assert state.dashboard_message_id == messenger.sent[-1]['message_id']

        await detector.post_dashboard(state,clan_config)
        assert messenger.edits[-1]['message_id'] == state.dashboard_message_id
