import copy
import pendulum

from typing import *

from ..constants import WarState, WarResult
from ..exceptions import AmbiguousPerspective
from ..utils.utils import clean_tag, parse_api_time

def war_result(our_stars:int,our_destruction:float,their_stars:int,their_destruction:float) -> str:
    """
    Stars decide the war. Destruction percentage breaks a tie on stars.
    """
    if our_stars > their_stars:
        return WarResult.WON
    if our_stars < their_stars:
        return WarResult.LOST
    if our_destruction > their_destruction:
        return WarResult.WON
    if our_destruction < their_destruction:
        return WarResult.LOST
    return WarResult.TIED

def normalize_perspective(data:dict,clan_tag:str) -> dict:
    """
    Returns a copy of a raw war payload with the tracked clan in the `clan` slot.

    Raises AmbiguousPerspective when neither side carries the clan's tag.
    """
    our_tag = clean_tag(clan_tag)
    side_a = clean_tag(data.get('clan',{}).get('tag'))
    side_b = clean_tag(data.get('opponent',{}).get('tag'))

    normalized = copy.deepcopy(data)
    if side_a == our_tag:
        return normalized
    if side_b == our_tag:
        normalized['clan'], normalized['opponent'] = normalized.get('opponent',{}), normalized.get('clan',{})
        return normalized
    raise AmbiguousPerspective(clan_tag,side_a,side_b)

##################################################
#####
##### WAR COMPONENTS
#####
##################################################
class CWLWarAttack():
    __slots__ = [
        'attacker_tag',
        'defender_tag',
        'stars',
        'destruction',
        'order',
        'duration'
        ]

    def __init__(self,data:dict):
        self.attacker_tag = clean_tag(data.get('attackerTag'))
        self.defender_tag = clean_tag(data.get('defenderTag'))
        self.stars = int(data.get('stars',0) or 0)
        self.destruction = float(data.get('destructionPercentage',0) or 0)
        self.order = data.get('order',None)
        self.duration = data.get('duration',None)

    @property
    def is_triple(self) -> bool:
        return self.stars == 3

class CWLWarMember():
    __slots__ = [
        'tag',
        'name',
        'townhall_level',
        'map_position',
        'attacks'
        ]

    def __init__(self,data:dict):
        self.tag = clean_tag(data.get('tag'))
        self.name = data.get('name','')
        self.townhall_level = data.get('townhallLevel',None)
        self.map_position = data.get('mapPosition',None)
        self.attacks = [CWLWarAttack(a) for a in data.get('attacks',[]) or []]

    def __repr__(self):
        return f"CWLWarMember({self.tag} {self.name})"

    @property
    def attack(self) -> Optional[CWLWarAttack]:
        return self.attacks[0] if len(self.attacks) > 0 else None

class CWLWarClan():
    __slots__ = [
        'tag',
        'name',
        'badge',
        'stars',
        'destruction',
        'attacks_used',
        'members'
        ]

    def __init__(self,data:dict):
        self.tag = clean_tag(data.get('tag'))
        self.name = data.get('name','')
        self.badge = data.get('badgeUrls',{}).get('small',None)
        self.stars = int(data.get('stars',0) or 0)
        self.destruction = float(data.get('destructionPercentage',0) or 0)
        self.attacks_used = int(data.get('attacks',0) or 0)
        self.members = sorted(
            [CWLWarMember(m) for m in data.get('members',[]) or []],
            key=lambda m: (m.map_position is None, m.map_position or 0)
            )

    def get_member(self,tag:str) -> Optional[CWLWarMember]:
        c_tag = clean_tag(tag)
        return next((m for m in self.members if m.tag == c_tag),None)

##################################################
#####
##### CWL WAR
#####
##################################################
class CWLWar():
    """
    A CWL war document seen from one clan's perspective.

    `clan` is always the tracked clan and `opponent` the other side. Build one
    with `CWLWar.normalize` from the raw API payload.
    """
    def __init__(self,data:dict,war_tag:Optional[str]=None):
        self._data = data
        self.war_tag = war_tag or data.get('tag',None)
        self.state = data.get('state',WarState.NOTINWAR)
        self.team_size = data.get('teamSize',0)
        self.preparation_start_time = parse_api_time(data.get('preparationStartTime'))
        self.start_time = parse_api_time(data.get('startTime'))
        self.end_time = parse_api_time(data.get('endTime'))

        self.clan = CWLWarClan(data.get('clan',{}))
        self.opponent = CWLWarClan(data.get('opponent',{}))

    @classmethod
    def normalize(cls,data:dict,clan_tag:str,war_tag:Optional[str]=None) -> 'CWLWar':
        return cls(normalize_perspective(data,clan_tag),war_tag=war_tag)

    def __repr__(self):
        return f"CWLWar({self.clan.tag} vs {self.opponent.tag}, {self.state})"

    def to_json(self) -> dict:
        return copy.deepcopy(self._data)

    @property
    def is_preparation(self) -> bool:
        return self.state == WarState.PREPARATION
    @property
    def is_in_war(self) -> bool:
        return self.state == WarState.INWAR
    @property
    def is_ended(self) -> bool:
        return self.state == WarState.WAR_ENDED

    @property
    def result(self) -> str:
        if not self.is_ended:
            return WarResult.PENDING
        return war_result(
            self.clan.stars,
            self.clan.destruction,
            self.opponent.stars,
            self.opponent.destruction
            )

    @property
    def current_result(self) -> str:
        """
        The result as it stands now, including for a war still in progress.
        """
        return war_result(
            self.clan.stars,
            self.clan.destruction,
            self.opponent.stars,
            self.opponent.destruction
            )

    def estimated_end_time(self) -> Optional[pendulum.DateTime]:
        if self.end_time:
            return self.end_time
        if self.preparation_start_time:
            return self.preparation_start_time.add(hours=48)
        return None

    def hours_remaining(self,now:Optional[pendulum.DateTime]=None) -> Optional[float]:
        end = self.estimated_end_time()
        if end is None:
            return None
        now = now or pendulum.now('UTC')
        return (end - now).total_seconds() / 3600
