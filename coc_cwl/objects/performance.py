import asyncio
import pendulum

from typing import *

from collections import defaultdict
from pymongo.errors import PyMongoError

from ..client.db_client import MotorClient
from ..constants import WarResult
from ..exceptions import PersistenceFailure
from ..season import CWLSeason
from ..utils.logs import DATA_LOG
from ..utils.utils import clean_tag, prune_idle_locks, safe_div
from .war import CWLWar

############################################################
############################################################
#####
##### PLAYER ROUND PERFORMANCE
#####
############################################################
############################################################
class PlayerRoundPerformance():
    __slots__ = [
        'guild_id',
        'clan_tag',
        'season',
        'round_number',
        'player_tag',
        'player_name',
        'townhall_level',
        'map_position',
        'attacks_used',
        'attacks_remaining',
        'stars_earned',
        'destruction_percentage',
        'target_tag',
        'target_townhall_level',
        'target_position',
        'attack_order',
        'is_three_star',
        'war_state'
        ]

    def __init__(self,**kwargs):
        for attr in self.__slots__:
            setattr(self,attr,kwargs.get(attr,None))
        self.attacks_used = int(self.attacks_used or 0)
        self.attacks_remaining = 1 - self.attacks_used
        self.stars_earned = int(self.stars_earned or 0)
        self.destruction_percentage = float(self.destruction_percentage or 0)
        self.is_three_star = bool(self.is_three_star)

    def __repr__(self):
        return f"PlayerRoundPerformance(R{self.round_number} {self.player_tag} {self.stars_earned}*)"

    @classmethod
    def from_json(cls,data:dict) -> 'PlayerRoundPerformance':
        return cls(**{k:v for k,v in data.items() if k in cls.__slots__})

    @staticmethod
    def db_id(guild_id:int,clan_tag:str,season:CWLSeason,round_number:int,player_tag:str) -> dict:
        return {
            'guild':guild_id,
            'tag':clean_tag(clan_tag),
            'season':season.id,
            'round':round_number,
            'player':clean_tag(player_tag)
            }

    def to_json(self) -> dict:
        return {k:getattr(self,k) for k in self.__slots__}

class PlayerSeasonStats():
    """
    Aggregate of one player's rounds within a season.
    """
    __slots__ = [
        'tag',
        'name',
        'townhall_level',
        'rounds',
        'attacks',
        'missed',
        'stars',
        'destruction',
        'three_stars',
        'two_stars',
        'one_stars',
        'zero_stars',
        'rounds_won'
        ]

    def __init__(self,tag:str,name:str):
        self.tag = tag
        self.name = name
        self.townhall_level = None
        self.rounds = 0
        self.attacks = 0
        self.missed = 0
        self.stars = 0
        self.destruction = 0.0
        self.three_stars = 0
        self.two_stars = 0
        self.one_stars = 0
        self.zero_stars = 0
        self.rounds_won = 0

    def __repr__(self):
        return f"PlayerSeasonStats({self.tag} {self.name} R{self.rounds} {self.stars}*)"

    def add(self,row:PlayerRoundPerformance,round_won:bool=False):
        self.name = row.player_name or self.name
        self.townhall_level = row.townhall_level or self.townhall_level
        self.rounds += 1
        self.attacks += row.attacks_used
        self.missed += row.attacks_remaining
        if row.attacks_used > 0:
            self.stars += row.stars_earned
            self.destruction += row.destruction_percentage
            if row.stars_earned >= 3:
                self.three_stars += 1
            elif row.stars_earned == 2:
                self.two_stars += 1
            elif row.stars_earned == 1:
                self.one_stars += 1
            else:
                self.zero_stars += 1
        if round_won:
            self.rounds_won += 1

    @property
    def avg_stars(self) -> float:
        return safe_div(self.stars,self.attacks)
    @property
    def avg_destruction(self) -> float:
        return safe_div(self.destruction,self.attacks)
    @property
    def avg_destruction_per_round(self) -> float:
        return safe_div(self.destruction,self.rounds)
    @property
    def three_star_rate(self) -> float:
        return safe_div(self.three_stars,self.attacks)
    @property
    def participation_rate(self) -> float:
        return safe_div(self.attacks,self.rounds)
    @property
    def win_rate(self) -> float:
        return safe_div(self.rounds_won,self.rounds)

    def to_json(self) -> dict:
        return {
            'tag': self.tag,
            'name': self.name,
            'townhall_level': self.townhall_level,
            'rounds': self.rounds,
            'attacks': self.attacks,
            'missed': self.missed,
            'stars': self.stars,
            'avg_stars': round(self.avg_stars,2),
            'avg_destruction': round(self.avg_destruction,2),
            'three_stars': self.three_stars,
            'three_star_rate': round(self.three_star_rate,3),
            'participation_rate': round(self.participation_rate,3),
            'rounds_won': self.rounds_won
            }

def aggregate_players(rows:Iterable[PlayerRoundPerformance],won_rounds:Optional[Iterable[int]]=None) -> Dict[str,PlayerSeasonStats]:
    won = set(won_rounds or [])
    stats = {}
    for row in rows:
        if row.player_tag not in stats:
            stats[row.player_tag] = PlayerSeasonStats(row.player_tag,row.player_name)
        stats[row.player_tag].add(row,round_won=row.round_number in won)
    return stats

############################################################
############################################################
#####
##### RECORDER
#####
############################################################
############################################################
class CWLPerformanceRecorder():
    """
    Persists per-player attack facts for each CWL round and serves the reads over them.
    """
    def __init__(self,db:MotorClient):
        self.db = db
        self._locks = defaultdict(asyncio.Lock)

    def prune_locks(self) -> int:
        return prune_idle_locks(self._locks)

    @staticmethod
    def build_rows(guild_id:int,clan_tag:str,season:CWLSeason,round_number:int,war:CWLWar) -> List[PlayerRoundPerformance]:
        """
        Builds one row for every member on the tracked side, attacked or not.
        """
        rows = []
        for member in war.clan.members:
            attack = member.attack
            target = war.opponent.get_member(attack.defender_tag) if attack else None
            rows.append(PlayerRoundPerformance(
                guild_id=guild_id,
                clan_tag=clean_tag(clan_tag),
                season=season.id,
                round_number=round_number,
                player_tag=member.tag,
                player_name=member.name,
                townhall_level=member.townhall_level,
                map_position=member.map_position,
                attacks_used=min(len(member.attacks),1),
                stars_earned=attack.stars if attack else 0,
                destruction_percentage=attack.destruction if attack else 0,
                target_tag=attack.defender_tag if attack else None,
                target_townhall_level=target.townhall_level if target else None,
                target_position=target.map_position if target else None,
                attack_order=attack.order if attack else None,
                is_three_star=attack.is_triple if attack else False,
                war_state=war.state
                ))
        return rows

    async def record_round_attacks(self,
        guild_id:int,
        clan_tag:str,
        season:CWLSeason,
        round_number:int,
        war:CWLWar) -> List[PlayerRoundPerformance]:

        rows = self.build_rows(guild_id,clan_tag,season,round_number,war)
        now = pendulum.now('UTC').int_timestamp

        async with self._locks[(guild_id,clean_tag(clan_tag),season.id)]:
            try:
                for row in rows:
                    await self.db.performance.update_one(
                        {'_id':PlayerRoundPerformance.db_id(guild_id,clan_tag,season,round_number,row.player_tag)},
                        {'$set': {**row.to_json(),'updated_at':now}},
                        upsert=True
                        )
            except PyMongoError as exc:
                raise PersistenceFailure('db__cwl_player_performance',exc) from exc

        attacked = len([r for r in rows if r.attacks_used > 0])
        DATA_LOG.info(f"CWL {clean_tag(clan_tag)} ({guild_id}) {season.id} R{round_number}: recorded {len(rows)} players, {attacked} attacked.")
        return rows

    ##################################################
    ### READS
    ##################################################
    async def get_round_performance(self,guild_id:int,clan_tag:str,season:CWLSeason,round_number:int) -> List[PlayerRoundPerformance]:
        query = self.db.performance.find({
            'guild_id':guild_id,
            'clan_tag':clean_tag(clan_tag),
            'season':season.id,
            'round_number':round_number
            })
        rows = [PlayerRoundPerformance.from_json(r) async for r in query]
        return sorted(rows,key=lambda r: (r.map_position is None,r.map_position or 0,r.player_tag))

    async def get_season_performance(self,guild_id:int,clan_tag:str,season:CWLSeason,up_to_round:Optional[int]=None) -> List[PlayerRoundPerformance]:
        query_doc = {
            'guild_id':guild_id,
            'clan_tag':clean_tag(clan_tag),
            'season':season.id
            }
        if up_to_round is not None:
            query_doc['round_number'] = {'$lte':up_to_round}
        query = self.db.performance.find(query_doc)
        rows = [PlayerRoundPerformance.from_json(r) async for r in query]
        return sorted(rows,key=lambda r: (r.round_number,r.map_position or 0,r.player_tag))

    async def get_missing_attacks(self,guild_id:int,clan_tag:str,season:CWLSeason,round_number:int) -> List[PlayerRoundPerformance]:
        rows = await self.get_round_performance(guild_id,clan_tag,season,round_number)
        return [r for r in rows if r.attacks_used < 1]

    async def get_cumulative_stats(self,guild_id:int,clan_tag:str,season:CWLSeason,up_to_round:int) -> Dict[str,PlayerSeasonStats]:
        """
        Per-player totals over rounds 1 to `up_to_round`. A round counts as won for a player when the clan won it.
        """
        rows = await self.get_season_performance(guild_id,clan_tag,season,up_to_round=up_to_round)
        query = self.db.standings.find({
            'guild_id':guild_id,
            'clan_tag':clean_tag(clan_tag),
            'season':season.id,
            'result':WarResult.WON
            })
        won_rounds = [s['round_number'] async for s in query]
        return aggregate_players(rows,won_rounds)
