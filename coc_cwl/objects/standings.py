import asyncio
import pendulum

from typing import *

from collections import defaultdict
from pymongo.errors import PyMongoError

from ..client.cache import WarCache
from ..client.db_client import MotorClient
from ..client.source_client import CWLSourceClient
from ..constants import NO_WAR_TAG, WarState, WarResult
from ..exceptions import PersistenceFailure
from ..season import CWLSeason
from ..utils.logs import LOG, DATA_LOG
from ..utils.utils import clean_tag, prune_idle_locks
from .campaign import CampaignState, CWLStateManager
from .war import CWLWar

class StandingSource:
    OFFICIAL = 'official'
    DERIVED = 'derived'

############################################################
############################################################
#####
##### ROUND STANDING
#####
############################################################
############################################################
class RoundStanding():
    __slots__ = [
        'guild_id',
        'clan_tag',
        'season',
        'round_number',
        'position',
        'total_clans',
        'stars_earned',
        'destruction_percentage',
        'cumulative_wins',
        'cumulative_losses',
        'total_clans_in_league',
        'league_name',
        'source',
        'war_state',
        'result',
        'leaderboard_message_id',
        'finalized'
        ]

    def __init__(self,**kwargs):
        for attr in self.__slots__:
            setattr(self,attr,kwargs.get(attr,None))
        self.stars_earned = int(self.stars_earned or 0)
        self.destruction_percentage = float(self.destruction_percentage or 0)
        self.cumulative_wins = int(self.cumulative_wins or 0)
        self.cumulative_losses = int(self.cumulative_losses or 0)
        self.finalized = bool(self.finalized)

    def __repr__(self):
        return f"RoundStanding(R{self.round_number} #{self.position}/{self.total_clans} {self.cumulative_wins}W-{self.cumulative_losses}L)"

    @classmethod
    def from_json(cls,data:dict) -> 'RoundStanding':
        return cls(**{k:v for k,v in data.items() if k in cls.__slots__})

    @staticmethod
    def db_id(guild_id:int,clan_tag:str,season:CWLSeason,round_number:int) -> dict:
        return {
            'guild':guild_id,
            'tag':clean_tag(clan_tag),
            'season':season.id,
            'round':round_number
            }

    def to_json(self) -> dict:
        return {k:getattr(self,k) for k in self.__slots__}

class LeagueClanTotal():
    __slots__ = [
        'tag',
        'name',
        'stars',
        'destruction'
        ]

    def __init__(self,tag:str,name:str='',stars:int=0,destruction:float=0.0):
        self.tag = clean_tag(tag)
        self.name = name
        self.stars = stars
        self.destruction = destruction

    def __repr__(self):
        return f"LeagueClanTotal({self.tag} {self.stars}* {self.destruction:.1f}%)"

    def to_json(self) -> dict:
        return {
            'tag': self.tag,
            'name': self.name,
            'stars': self.stars,
            'destruction': round(self.destruction,2)
            }

def rank_clans(totals:Iterable[LeagueClanTotal]) -> List[LeagueClanTotal]:
    """
    Orders clans by stars, then destruction, both descending. Tags break exact ties so the order never depends on input order.
    """
    return sorted(totals,key=lambda c: (-c.stars,-c.destruction,c.tag or ''))

def find_position(ranked:List[LeagueClanTotal],clan_tag:str) -> Optional[int]:
    c_tag = clean_tag(clan_tag)
    for i,clan in enumerate(ranked,start=1):
        if clan.tag == c_tag:
            return i
    return None

def official_totals(league_group:dict) -> Optional[List[LeagueClanTotal]]:
    """
    Returns the per-clan totals the league group carries, or None when they are all zero or absent.
    """
    totals = [
        LeagueClanTotal(
            c.get('tag'),
            c.get('name',''),
            int(c.get('stars',0) or 0),
            float(c.get('destructionPercentage',0) or 0)
            )
        for c in league_group.get('clans',[]) or []
        ]
    if len(totals) == 0 or all(c.stars == 0 and c.destruction == 0 for c in totals):
        return None
    return totals

def sum_war_totals(league_group:dict,wars:Iterable[dict]) -> List[LeagueClanTotal]:
    """
    Sums stars and destruction over war payloads. Every clan in the league group starts at zero.
    """
    totals = {}
    for c in league_group.get('clans',[]) or []:
        t = LeagueClanTotal(c.get('tag'),c.get('name',''))
        totals[t.tag] = t

    for war in wars:
        if war.get('state') not in [WarState.INWAR,WarState.WAR_ENDED]:
            continue
        for side in ['clan','opponent']:
            data = war.get(side,{}) or {}
            tag = clean_tag(data.get('tag'))
            if tag is None:
                continue
            if tag not in totals:
                totals[tag] = LeagueClanTotal(tag,data.get('name',''))
            totals[tag].stars += int(data.get('stars',0) or 0)
            totals[tag].destruction += float(data.get('destructionPercentage',0) or 0)
    return list(totals.values())

############################################################
############################################################
#####
##### LEADERBOARD
#####
############################################################
############################################################
class CWLLeaderboard():
    """
    Computes and stores round standings.

    Positions come from the league group's own totals when it has them. Until
    the API propagates those, they are derived by summing every war of rounds
    1 to N. The derived path's war fetches are cached per
    (season, round, anchor clan) so clans sharing a league reuse them within
    the TTL.
    """
    def __init__(self,
        db:MotorClient,
        source:CWLSourceClient,
        state_manager:CWLStateManager,
        cache:Optional[WarCache]=None):

        self.db = db
        self.source = source
        self.state_manager = state_manager
        self.cache = cache if cache is not None else WarCache(ttl=60)
        self._locks = defaultdict(asyncio.Lock)

    def prune_locks(self) -> int:
        return prune_idle_locks(self._locks)

    @staticmethod
    def anchor_tag(league_group:dict) -> str:
        tags = sorted([clean_tag(c.get('tag')) for c in league_group.get('clans',[]) or [] if c.get('tag')])
        return tags[0] if len(tags) > 0 else ''

    ##################################################
    ### POSITION
    ##################################################
    async def fetch_round_wars(self,league_group:dict,season:CWLSeason,round_number:int) -> List[dict]:
        key = (season.id,round_number,self.anchor_tag(league_group))

        async def _fetch():
            wars = []
            for r in (league_group.get('rounds',[]) or [])[:round_number]:
                for war_tag in r.get('warTags',[]) or []:
                    if not war_tag or war_tag == NO_WAR_TAG:
                        continue
                    result = await self.source.fetch_war(war_tag)
                    if result.ok:
                        wars.append(result.payload)
            return wars

        return await self.cache.get_or_fetch(key,_fetch)

    async def compute_totals(self,league_group:dict,season:CWLSeason,round_number:int) -> Tuple[List[LeagueClanTotal],str]:
        totals = official_totals(league_group)
        if totals is not None:
            return rank_clans(totals), StandingSource.OFFICIAL
        wars = await self.fetch_round_wars(league_group,season,round_number)
        return rank_clans(sum_war_totals(league_group,wars)), StandingSource.DERIVED

    ##################################################
    ### STANDINGS
    ##################################################
    async def update_round_standings(self,
        state:CampaignState,
        round_number:int,
        league_group:dict,
        war:CWLWar) -> Optional[RoundStanding]:
        """
        Upserts the standing for a round. Returns None without writing when the round is already finalized.
        """
        ranked, source = await self.compute_totals(league_group,state.season,round_number)
        position = find_position(ranked,state.clan_tag)
        if position is None:
            LOG.warning(f"CWL {state.clan_tag} ({state.guild_id}): clan not found in league group for round {round_number}.")
            return None

        async with self._locks[(state.guild_id,state.clan_tag,state.season.id)]:
            existing = await self.get_round_standing(state.guild_id,state.clan_tag,state.season,round_number)
            if existing and existing.finalized:
                DATA_LOG.debug(f"CWL {state.clan_tag} ({state.guild_id}) R{round_number} is finalized; standing write dropped.")
                return None

            previous = await self.get_previous_standing(state.guild_id,state.clan_tag,state.season,round_number)
            result = war.result
            wins = (previous.cumulative_wins if previous else 0) + (1 if result == WarResult.WON else 0)
            losses = (previous.cumulative_losses if previous else 0) + (1 if result == WarResult.LOST else 0)

            standing = RoundStanding(
                guild_id=state.guild_id,
                clan_tag=state.clan_tag,
                season=state.season.id,
                round_number=round_number,
                position=position,
                total_clans=len(ranked),
                stars_earned=war.clan.stars,
                destruction_percentage=war.clan.destruction,
                cumulative_wins=wins,
                cumulative_losses=losses,
                total_clans_in_league=len(league_group.get('clans',[]) or []),
                league_name=league_group.get('league',{}).get('name',state.league_name),
                source=source,
                war_state=war.state,
                result=result,
                leaderboard_message_id=existing.leaderboard_message_id if existing else None,
                finalized=False
                )
            doc = standing.to_json()
            doc.pop('leaderboard_message_id')
            doc.pop('finalized')
            try:
                await self.db.standings.update_one(
                    {'_id':RoundStanding.db_id(state.guild_id,state.clan_tag,state.season,round_number)},
                    {
                        '$set': {**doc,'updated_at':pendulum.now('UTC').int_timestamp},
                        '$setOnInsert': {'finalized':False}
                        },
                    upsert=True
                    )
            except PyMongoError as exc:
                raise PersistenceFailure('db__cwl_round_standing',exc) from exc

        ours = ranked[position-1]
        await self.state_manager.update_totals(state,ours.stars,ours.destruction,position)
        DATA_LOG.info(f"CWL {state.clan_tag} ({state.guild_id}) R{round_number}: position {position}/{len(ranked)} ({source}), {wins}W-{losses}L.")
        return standing

    async def mark_round_finalized(self,guild_id:int,clan_tag:str,season:CWLSeason,round_number:int) -> bool:
        """
        Latches a round's standing as confirmed. No further writes are accepted for it afterwards.
        Returns False if there is no standing to finalize.
        """
        c_tag = clean_tag(clan_tag)
        async with self._locks[(guild_id,c_tag,season.id)]:
            try:
                result = await self.db.standings.update_one(
                    {'_id':RoundStanding.db_id(guild_id,c_tag,season,round_number)},
                    {'$set': {'finalized':True}}
                    )
            except PyMongoError as exc:
                raise PersistenceFailure('db__cwl_round_standing',exc) from exc
        if result.matched_count == 0:
            return False
        DATA_LOG.info(f"CWL {c_tag} ({guild_id}) {season.id} R{round_number} finalized.")
        return True

    async def store_round_message_id(self,guild_id:int,clan_tag:str,season:CWLSeason,round_number:int,message_id:int) -> bool:
        c_tag = clean_tag(clan_tag)
        async with self._locks[(guild_id,c_tag,season.id)]:
            try:
                result = await self.db.standings.update_one(
                    {'_id':RoundStanding.db_id(guild_id,c_tag,season,round_number),'finalized':{'$ne':True}},
                    {'$set': {'leaderboard_message_id':message_id}}
                    )
            except PyMongoError as exc:
                raise PersistenceFailure('db__cwl_round_standing',exc) from exc
        return result.matched_count > 0

    ##################################################
    ### READS
    ##################################################
    async def get_round_standing(self,guild_id:int,clan_tag:str,season:CWLSeason,round_number:int) -> Optional[RoundStanding]:
        row = await self.db.standings.find_one({'_id':RoundStanding.db_id(guild_id,clan_tag,season,round_number)})
        return RoundStanding.from_json(row) if row else None

    async def get_previous_standing(self,guild_id:int,clan_tag:str,season:CWLSeason,round_number:int) -> Optional[RoundStanding]:
        history = await self.get_standings_history(guild_id,clan_tag,season)
        previous = [s for s in history if s.round_number < round_number]
        return previous[-1] if len(previous) > 0 else None

    async def get_standings_history(self,guild_id:int,clan_tag:str,season:CWLSeason) -> List[RoundStanding]:
        query = self.db.standings.find({
            'guild_id':guild_id,
            'clan_tag':clean_tag(clan_tag),
            'season':season.id
            })
        rows = [RoundStanding.from_json(r) async for r in query]
        return sorted(rows,key=lambda s: s.round_number)

    async def get_current_standing(self,guild_id:int,clan_tag:str,season:CWLSeason) -> Optional[RoundStanding]:
        history = await self.get_standings_history(guild_id,clan_tag,season)
        return history[-1] if len(history) > 0 else None
