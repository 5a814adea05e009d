"""
Pytest configuration for the CWL tracker.

Provides an in-memory Mongo database, a fake Clash API HTTP layer, a recording
messenger and payload builders. None of the fixtures touch the network.
"""
import coc
import pytest
import pytest_asyncio

from typing import *

from mongomock_motor import AsyncMongoMockClient

from coc_cwl.client.db_client import MotorClient
from coc_cwl.client.source_client import CWLSourceClient
from coc_cwl.feeds.config import GuildCWLConfig
from coc_cwl.feeds.notifications import Messenger
from coc_cwl.season import CWLSeason
from coc_cwl.utils.utils import clean_tag

OUR_TAG = '#2PP'
GUILD_ID = 1001
SEASON = CWLSeason.current()

def league_season(season:CWLSeason) -> str:
    return season.season_start.format('YYYY-MM')

##################################################
#####
##### PAYLOAD BUILDERS
#####
##################################################
def make_attack(attacker:str,defender:str,stars:int,destruction:float,order:int=1) -> dict:
    return {
        'attackerTag': attacker,
        'defenderTag': defender,
        'stars': stars,
        'destructionPercentage': destruction,
        'order': order,
        'duration': 120
        }

def make_member(tag:str,name:str,th:int=15,position:int=1,attacks:Optional[List[dict]]=None) -> dict:
    data = {
        'tag': tag,
        'name': name,
        'townhallLevel': th,
        'mapPosition': position
        }
    if attacks:
        data['attacks'] = attacks
    return data

def make_war_clan(tag:str,name:str,stars:int=0,destruction:float=0.0,members:Optional[List[dict]]=None) -> dict:
    members = members or []
    return {
        'tag': tag,
        'name': name,
        'badgeUrls': {'small':'https://example.invalid/badge.png'},
        'stars': stars,
        'destructionPercentage': destruction,
        'attacks': len([m for m in members if m.get('attacks')]),
        'members': members
        }

def make_war(
    clan:dict,
    opponent:dict,
    state:str='inWar',
    war_tag:str='#8QW',
    end_time:Optional[str]='20250107T080000.000Z',
    prep_time:Optional[str]='20250105T080000.000Z') -> dict:

    data = {
        'tag': war_tag,
        'state': state,
        'teamSize': max(len(clan.get('members',[])),len(opponent.get('members',[]))),
        'clan': clan,
        'opponent': opponent
        }
    if prep_time:
        data['preparationStartTime'] = prep_time
    if end_time:
        data['endTime'] = end_time
    return data

def make_simple_war(
    our_stars:int,
    our_destruction:float,
    their_stars:int,
    their_destruction:float,
    state:str='warEnded',
    war_tag:str='#8QW',
    opponent_tag:str='#9CC',
    swapped:bool=False,
    our_members:Optional[List[dict]]=None) -> dict:
    """
    A two-member war between the tracked clan and `opponent_tag`.

    With `swapped`, the tracked clan is placed in the `opponent` slot.
    """
    if our_members is None:
        our_members = [
            make_member('#P1','Alpha',15,1,[make_attack('#P1','#Q1',3,100.0,1)]),
            make_member('#P2','Bravo',14,2)
            ]
    their_members = [
        make_member('#Q1','Xray',15,1,[make_attack('#Q1','#P1',2,80.0,2)]),
        make_member('#Q2','Yankee',13,2)
        ]
    ours = make_war_clan(OUR_TAG,'Our Clan',our_stars,our_destruction,our_members)
    theirs = make_war_clan(opponent_tag,'Their Clan',their_stars,their_destruction,their_members)
    if swapped:
        return make_war(theirs,ours,state=state,war_tag=war_tag)
    return make_war(ours,theirs,state=state,war_tag=war_tag)

def make_league_group(
    state:str='inWar',
    season:Optional[str]=None,
    clans:Optional[List[dict]]=None,
    rounds:Optional[List[List[str]]]=None,
    league_name:str='Crystal League I') -> dict:

    if clans is None:
        clans = [
            {'tag':OUR_TAG,'name':'Our Clan'},
            {'tag':'#9CC','name':'Their Clan'}
            ]
    if rounds is None:
        rounds = [['#8QW']] + [['#0'] for _ in range(6)]
    return {
        'state': state,
        'season': season or league_season(SEASON),
        'league': {'name':league_name},
        'clans': clans,
        'rounds': [{'warTags':tags} for tags in rounds]
        }

def coc_error(cls:type,status:Optional[int]=None) -> Exception:
    exc = cls()
    if status is not None:
        exc.status = status
    return exc

##################################################
#####
##### FAKES
#####
##################################################
class FakeHTTP():
    """
    Stands in for `coc.http.HTTPClient`. Responses are keyed by endpoint and `#TAG`.
    A registered exception is raised instead of returning a payload.
    """
    def __init__(self):
        self.responses = {
            'clan': {},
            'currentwar': {},
            'leaguegroup': {},
            'wars': {}
            }
        self.calls = []

    def set(self,endpoint:str,tag:str,response:Any):
        self.responses[endpoint][f"#{clean_tag(tag)}"] = response

    async def _respond(self,endpoint:str,tag:str):
        self.calls.append((endpoint,tag))
        response = self.responses[endpoint].get(tag)
        if response is None:
            raise coc_error(coc.NotFound,404)
        if isinstance(response,Exception):
            raise response
        return response

    async def get_clan(self,tag:str):
        return await self._respond('clan',tag)

    async def get_clan_current_war(self,tag:str):
        return await self._respond('currentwar',tag)

    async def get_clan_war_league_group(self,tag:str):
        return await self._respond('leaguegroup',tag)

    async def get_cwl_wars(self,war_tag:str):
        return await self._respond('wars',war_tag)

class RecordingMessenger(Messenger):
    def __init__(self):
        self.sent = []
        self.edits = []
        self.gone = set()
        self.fail_on_send = None
        self._next_id = 5000

    async def send(self,channel_id,embed,content=None):
        if self.fail_on_send is not None and len(self.sent) >= self.fail_on_send:
            raise RuntimeError("send failed")
        self._next_id += 1
        self.sent.append({
            'channel_id': channel_id,
            'embed': embed,
            'content': content,
            'message_id': self._next_id
            })
        return self._next_id

    async def edit(self,channel_id,message_id,embed,content=None):
        if message_id in self.gone:
            return None
        self.edits.append({
            'channel_id': channel_id,
            'message_id': message_id,
            'embed': embed,
            'content': content
            })
        return message_id

    def titles(self) -> List[str]:
        return [m['embed'].title for m in self.sent]

##################################################
#####
##### FIXTURES
#####
##################################################
@pytest_asyncio.fixture
async def db():
    client = AsyncMongoMockClient()
    yield MotorClient(client['cwl_tracker_test'])

@pytest.fixture
def fake_http():
    return FakeHTTP()

@pytest.fixture
def source(fake_http):
    return CWLSourceClient(fake_http)

@pytest.fixture
def messenger():
    return RecordingMessenger()

@pytest.fixture
def guild_config_data():
    return {
        '_id': GUILD_ID,
        'enabled': True,
        'track_cwl': True,
        'mention_targets': ['here'],
        'clans': [OUR_TAG],
        'clan_configs': {
            OUR_TAG: {
                'announce_channel_id': 111,
                'leaderboard_channel_id': 222
                }
            }
        }

@pytest.fixture
def guild_config(guild_config_data):
    return GuildCWLConfig(GUILD_ID,guild_config_data)

@pytest.fixture
def clan_config(guild_config):
    return guild_config.clans[0]
