import csv
import json
import pendulum
import pytest
import pytest_asyncio

from coc_cwl.client.cache import WarCache
from coc_cwl.exceptions import InvalidExportFormat
from coc_cwl.export import CWLDataExport
from coc_cwl.objects.campaign import CWLStateManager, decide_transition
from coc_cwl.objects.performance import CWLPerformanceRecorder
from coc_cwl.objects.standings import CWLLeaderboard
from coc_cwl.objects.war import CWLWar
from coc_cwl.season import CWLSeason

from conftest import GUILD_ID, OUR_TAG, SEASON, make_league_group, make_simple_war

NOW = pendulum.datetime(2025,1,8,9,30,15)

@pytest_asyncio.fixture
async def exporter(db,source,tmp_path):
    manager = CWLStateManager(db)
    recorder = CWLPerformanceRecorder(db)
    leaderboard = CWLLeaderboard(db,source,manager,cache=WarCache(ttl=60))

    group = make_league_group(clans=[
        {'tag':OUR_TAG,'name':'Our Clan','stars':20,'destructionPercentage':80.0},
        {'tag':'#9CC','name':'Their Clan','stars':10,'destructionPercentage':50.0}
        ])
    state = await manager.get_campaign_state(GUILD_ID,OUR_TAG)
    state = await manager.apply_transition(state,decide_transition(state,group),group)

    war = CWLWar.normalize(make_simple_war(20,80.0,10,50.0),OUR_TAG)
    await recorder.record_round_attacks(GUILD_ID,OUR_TAG,SEASON,1,war)
    await leaderboard.update_round_standings(state,1,group,war)
    return CWLDataExport(recorder,leaderboard,str(tmp_path / 'exports'))

class TestExportFormats:

    def test_filename(self):
        name = CWLDataExport.build_filename('performance','#2pp',CWLSeason('1-2025'),'csv',NOW)
        assert name == 'cwl_performance_2PP_1-2025_20250108_093015.csv'

    def test_invalid_format(self):
        with pytest.raises(InvalidExportFormat):
            CWLDataExport.validate('season_report','csv')
        with pytest.raises(InvalidExportFormat):
            CWLDataExport.validate('roster','json')
        CWLDataExport.validate('standings','xlsx')

class TestExportFiles:

    @pytest.mark.asyncio
    async def test_performance_csv(self,exporter):
        filename, path = await exporter.export(GUILD_ID,OUR_TAG,SEASON,'performance','csv',NOW)
        assert filename.endswith('.csv')
        with open(path,newline='',encoding='utf-8') as f:
            rows = list(csv.reader(f))
        assert rows[0][:3] == ['Round','Tag','Name']
        assert [r[2] for r in rows[1:]] == ['Alpha','Bravo']

    @pytest.mark.asyncio
    async def test_standings_json(self,exporter):
        filename, path = await exporter.export(GUILD_ID,OUR_TAG,SEASON,'standings','json',NOW)
        with open(path,encoding='utf-8') as f:
            data = json.load(f)
        assert len(data) == 1
        assert data[0]['position'] == 1
        assert data[0]['result'] == 'won'

    @pytest.mark.asyncio
    async def test_standings_xlsx(self,exporter):
        filename, path = await exporter.export(GUILD_ID,OUR_TAG,SEASON,'standings','xlsx',NOW)
        with open(path,'rb') as f:
            assert f.read(2) == b'PK'

    @pytest.mark.asyncio
    async def test_season_report(self,exporter):
        filename, path = await exporter.export(GUILD_ID,OUR_TAG,SEASON,'season_report','json',NOW)
        with open(path,encoding='utf-8') as f:
            report = json.load(f)
        assert report['season'] == SEASON.id
        assert report['clan_tag'] == '2PP'
        assert len(report['performance']) == 2
        assert report['prediction']['confidence'] == 'low'
        assert report['dashboard']['overview']['total_players'] == 2
        assert report['season_mvp'] == []
