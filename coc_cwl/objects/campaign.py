import asyncio
import pendulum

from typing import *

from collections import defaultdict
from pymongo.errors import PyMongoError

from ..client.db_client import MotorClient
from ..constants import CWLPhase, CWL_ROUNDS, NO_WAR_TAG
from ..exceptions import PersistenceFailure
from ..season import CWLSeason
from ..utils.logs import LOG, DATA_LOG
from ..utils.utils import clean_tag, prune_idle_locks

############################################################
############################################################
#####
##### CAMPAIGN STATE
#####
############################################################
############################################################
class CampaignState():
    """
    The tracked CWL campaign of one clan, in one guild, for one season.
    """
    __slots__ = [
        'guild_id',
        'clan_tag',
        'season',
        'phase',
        'current_round',
        'war_tags',
        'announced_rounds',
        'pending_reminder_rounds',
        'announced_phases',
        'league_name',
        'cumulative_stars',
        'cumulative_destruction',
        'predicted_position',
        'announcement_message_id',
        'leaderboard_message_id',
        'dashboard_message_id',
        'started_at',
        'ended_at',
        'last_checked_at',
        'is_new'
        ]

    def __init__(self,guild_id:int,clan_tag:str,season:CWLSeason,**kwargs):
        self.guild_id = guild_id
        self.clan_tag = clean_tag(clan_tag)
        self.season = season

        self.phase = kwargs.get('phase',CWLPhase.NOT_IN_LEAGUE)
        self.current_round = kwargs.get('current_round',0)
        self.war_tags = list(kwargs.get('war_tags',[]) or [])
        self.announced_rounds = sorted(set(kwargs.get('announced_rounds',[]) or []))
        self.pending_reminder_rounds = sorted(set(kwargs.get('pending_reminder_rounds',[]) or []))
        self.announced_phases = list(kwargs.get('announced_phases',[]) or [])
        self.league_name = kwargs.get('league_name',None)
        self.cumulative_stars = kwargs.get('cumulative_stars',0)
        self.cumulative_destruction = kwargs.get('cumulative_destruction',0.0)
        self.predicted_position = kwargs.get('predicted_position',None)
        self.announcement_message_id = kwargs.get('announcement_message_id',None)
        self.leaderboard_message_id = kwargs.get('leaderboard_message_id',None)
        self.dashboard_message_id = kwargs.get('dashboard_message_id',None)
        self.started_at = kwargs.get('started_at',None)
        self.ended_at = kwargs.get('ended_at',None)
        self.last_checked_at = kwargs.get('last_checked_at',None)
        self.is_new = kwargs.get('is_new',False)

    def __repr__(self):
        return f"CampaignState({self.guild_id} {self.clan_tag} {self.season.id} {self.phase})"

    @classmethod
    def from_json(cls,data:dict) -> 'CampaignState':
        kwargs = {k:v for k,v in data.items() if k in cls.__slots__ and k not in ['guild_id','clan_tag','season']}
        return cls(data['guild_id'],data['clan_tag'],CWLSeason(data['season']),**kwargs)

    @staticmethod
    def db_id(guild_id:int,clan_tag:str,season:CWLSeason) -> dict:
        return {'guild':guild_id,'tag':clean_tag(clan_tag),'season':season.id}

    @property
    def _id(self) -> dict:
        return self.db_id(self.guild_id,self.clan_tag,self.season)

    def war_tag_for_round(self,round_number:int) -> str:
        if 1 <= round_number <= len(self.war_tags):
            return self.war_tags[round_number-1] or NO_WAR_TAG
        return NO_WAR_TAG

    def is_announced(self,round_number:int) -> bool:
        return round_number in self.announced_rounds

    def phase_announced(self,phase:Optional[str]=None) -> bool:
        return (phase or self.phase) in self.announced_phases

##################################################
#####
##### TRANSITIONS
#####
##################################################
class TransitionAction():
    NOOP = 'noop'
    TRANSITION = 'transition'

    __slots__ = [
        'action',
        'from_phase',
        'to_phase',
        'season'
        ]

    def __init__(self,action:str,from_phase:str,to_phase:Optional[str]=None,season:Optional[CWLSeason]=None):
        self.action = action
        self.from_phase = from_phase
        self.to_phase = to_phase if to_phase is not None else from_phase
        self.season = season

    def __repr__(self):
        if self.is_transition:
            return f"Transition({self.from_phase} -> {self.to_phase}, {self.season})"
        return f"Noop({self.from_phase})"

    def __eq__(self,other):
        return isinstance(other,TransitionAction) and (self.action,self.from_phase,self.to_phase) == (other.action,other.from_phase,other.to_phase)

    @classmethod
    def noop(cls,phase:str) -> 'TransitionAction':
        return cls(cls.NOOP,phase)

    @property
    def is_transition(self) -> bool:
        return self.action == self.TRANSITION

def league_group_season(league_group:Optional[dict],fallback:Optional[CWLSeason]=None) -> CWLSeason:
    if league_group and league_group.get('season'):
        try:
            return CWLSeason.from_league_season(league_group['season'])
        except ValueError:
            pass
    return fallback or CWLSeason.current()

def decide_transition(state:CampaignState,league_group:Optional[dict]) -> TransitionAction:
    """
    Decides the next campaign phase from the stored state and the latest league group.

    This is a pure function: it reads nothing besides its arguments and writes
    nothing. A phase never moves backward within a season. A league group for a
    later season than the stored record is compared from NotInLeague.
    """
    current = state.phase

    if league_group is None:
        if current in [CWLPhase.PREPARATION,CWLPhase.ACTIVE]:
            return TransitionAction(TransitionAction.TRANSITION,current,CWLPhase.ENDED,state.season)
        return TransitionAction.noop(current)

    group_season = league_group_season(league_group,state.season)
    if group_season != state.season:
        if group_season < state.season:
            return TransitionAction.noop(current)
        current = CWLPhase.NOT_IN_LEAGUE

    target = CWLPhase.from_remote(league_group.get('state'))
    if target is None or target == current:
        return TransitionAction.noop(current)
    if CWLPhase.rank(target) < CWLPhase.rank(current):
        return TransitionAction.noop(current)
    return TransitionAction(TransitionAction.TRANSITION,current,target,group_season)

def round_war_tags(league_group:dict) -> List[List[str]]:
    return [list(r.get('warTags',[]) or []) for r in league_group.get('rounds',[]) or []]

############################################################
############################################################
#####
##### STATE MANAGER
#####
############################################################
############################################################
class CWLStateManager():
    """
    Loads and mutates CampaignState records.

    Every write is an upsert on the campaign's composite `_id`. Writes for the
    same campaign are serialized with a lock per campaign.
    """
    def __init__(self,db:MotorClient):
        self.db = db
        self._locks = defaultdict(asyncio.Lock)

    def prune_locks(self) -> int:
        return prune_idle_locks(self._locks)

    def _lock(self,state:CampaignState) -> asyncio.Lock:
        return self._locks[(state.guild_id,state.clan_tag,state.season.id)]

    async def _update(self,state:CampaignState,update:dict):
        try:
            await self.db.campaigns.update_one(
                {'_id':state._id},
                update,
                upsert=True
                )
        except PyMongoError as exc:
            raise PersistenceFailure('db__cwl_campaign',exc) from exc

    ##################################################
    ### READS
    ##################################################
    async def get_campaign_state(self,guild_id:int,clan_tag:str) -> CampaignState:
        """
        Returns the latest season's campaign for the clan, or a fresh NotInLeague record for the current season.
        """
        c_tag = clean_tag(clan_tag)
        query = self.db.campaigns.find({'guild_id':guild_id,'clan_tag':c_tag}).sort('season_order',-1).limit(1)
        rows = await query.to_list(length=1)
        if len(rows) == 0:
            return CampaignState(guild_id,c_tag,CWLSeason.current(),is_new=True)
        return CampaignState.from_json(rows[0])

    async def get_campaign(self,guild_id:int,clan_tag:str,season:CWLSeason) -> Optional[CampaignState]:
        row = await self.db.campaigns.find_one({'_id':CampaignState.db_id(guild_id,clan_tag,season)})
        if row is None:
            return None
        return CampaignState.from_json(row)

    async def list_campaigns(self,guild_id:int,clan_tag:str) -> List[CampaignState]:
        query = self.db.campaigns.find({'guild_id':guild_id,'clan_tag':clean_tag(clan_tag)}).sort('season_order',-1)
        return [CampaignState.from_json(r) async for r in query]

    ##################################################
    ### WRITES
    ##################################################
    async def apply_transition(self,
        state:CampaignState,
        action:TransitionAction,
        league_group:Optional[dict]=None,
        now:Optional[pendulum.DateTime]=None) -> CampaignState:
        """
        Persists a transition and returns the reloaded campaign.
        """
        if not action.is_transition:
            return state

        now = now or pendulum.now('UTC')
        season = action.season or state.season
        if season != state.season:
            state = CampaignState(state.guild_id,state.clan_tag,season,is_new=True)

        update = {
            'guild_id': state.guild_id,
            'clan_tag': state.clan_tag,
            'season': season.id,
            'season_order': season.season_year*100 + season.season_month,
            'phase': action.to_phase,
            'last_checked_at': now.int_timestamp
            }
        insert = {
            'current_round': 0,
            'announced_rounds': [],
            'pending_reminder_rounds': [],
            'announced_phases': []
            }

        if league_group:
            update['league_name'] = league_group.get('league',{}).get('name',state.league_name)
            rounds = round_war_tags(league_group)
            update['round_war_tags'] = rounds
            if len(state.war_tags) == 0:
                update['war_tags'] = [NO_WAR_TAG for _ in range(max(len(rounds),CWL_ROUNDS))]
        elif len(state.war_tags) == 0:
            insert['war_tags'] = []

        if action.to_phase == CWLPhase.PREPARATION:
            update['started_at'] = now.int_timestamp
        if action.to_phase == CWLPhase.ENDED:
            update['ended_at'] = now.int_timestamp

        async with self._lock(state):
            await self._update(state,{
                '$set': update,
                '$setOnInsert': {k:v for k,v in insert.items() if k not in update}
                })
        LOG.info(f"CWL {state.clan_tag} ({state.guild_id}) {season.id}: {action.from_phase} -> {action.to_phase}")
        return await self.get_campaign(state.guild_id,state.clan_tag,season)

    async def update_war_tag(self,state:CampaignState,round_number:int,war_tag:str):
        tags = list(state.war_tags)
        while len(tags) < max(round_number,CWL_ROUNDS):
            tags.append(NO_WAR_TAG)
        tags[round_number-1] = war_tag
        async with self._lock(state):
            await self._update(state,{'$set':{'war_tags':tags}})
        state.war_tags = tags

    async def mark_round_announced(self,state:CampaignState,round_number:int):
        async with self._lock(state):
            await self._update(state,{
                '$addToSet': {'announced_rounds':round_number},
                '$max': {'current_round':round_number}
                })
        if round_number not in state.announced_rounds:
            state.announced_rounds = sorted(state.announced_rounds + [round_number])
        state.current_round = max(state.current_round,round_number)
        DATA_LOG.info(f"CWL {state.clan_tag} ({state.guild_id}) {state.season.id}: round {round_number} announced.")

    async def mark_phase_announced(self,state:CampaignState,phase:str):
        async with self._lock(state):
            await self._update(state,{'$addToSet': {'announced_phases':phase}})
        if phase not in state.announced_phases:
            state.announced_phases.append(phase)
        DATA_LOG.info(f"CWL {state.clan_tag} ({state.guild_id}) {state.season.id}: {phase} announced.")

    async def mark_reminder_sent(self,state:CampaignState,round_number:int):
        async with self._lock(state):
            await self._update(state,{'$addToSet': {'pending_reminder_rounds':round_number}})
        if round_number not in state.pending_reminder_rounds:
            state.pending_reminder_rounds = sorted(state.pending_reminder_rounds + [round_number])

    async def store_message_id(self,state:CampaignState,kind:str,message_id:int):
        if kind not in ['announcement','leaderboard','dashboard']:
            raise ValueError(f"Unknown message kind {kind}.")
        field = f"{kind}_message_id"
        async with self._lock(state):
            await self._update(state,{'$set': {field:message_id}})
        setattr(state,field,message_id)

    async def update_totals(self,state:CampaignState,stars:int,destruction:float,position:int):
        async with self._lock(state):
            await self._update(state,{'$set': {
                'cumulative_stars': stars,
                'cumulative_destruction': destruction,
                'predicted_position': position
                }})
        state.cumulative_stars = stars
        state.cumulative_destruction = destruction
        state.predicted_position = position

    async def touch(self,state:CampaignState,now:Optional[pendulum.DateTime]=None):
        if state.is_new:
            return
        now = now or pendulum.now('UTC')
        async with self._lock(state):
            await self._update(state,{'$set': {'last_checked_at':now.int_timestamp}})
        state.last_checked_at = now.int_timestamp
