import enum

from typing import *

from ..constants import CWL_ROUNDS
from ..objects.standings import RoundStanding

############################################################
############################################################
#####
##### LEAGUE TIERS / MEDAL BONUSES
#####
############################################################
############################################################
class LeagueTier(enum.Enum):
    CHAMPION_I = 'Champion League I'
    CHAMPION_II = 'Champion League II'
    CHAMPION_III = 'Champion League III'
    MASTER_I = 'Master League I'
    MASTER_II = 'Master League II'
    MASTER_III = 'Master League III'
    CRYSTAL_I = 'Crystal League I'
    CRYSTAL_II = 'Crystal League II'
    CRYSTAL_III = 'Crystal League III'
    GOLD_I = 'Gold League I'
    GOLD_II = 'Gold League II'
    GOLD_III = 'Gold League III'
    SILVER_I = 'Silver League I'
    SILVER_II = 'Silver League II'
    SILVER_III = 'Silver League III'
    BRONZE_I = 'Bronze League I'
    BRONZE_II = 'Bronze League II'
    BRONZE_III = 'Bronze League III'
    UNKNOWN = 'Unknown'

    @classmethod
    def lookup(cls,name:Optional[str]) -> 'LeagueTier':
        if not name:
            return cls.UNKNOWN
        n = name.strip().lower()
        for tier in cls:
            if tier.value.lower() == n:
                return tier
        return cls.UNKNOWN

    @property
    def is_known(self) -> bool:
        return self is not LeagueTier.UNKNOWN

# bonus medals by 0-indexed final position
MEDAL_BONUSES = {
    LeagueTier.CHAMPION_I: [350,300,280,260,240,220,200,180],
    LeagueTier.CHAMPION_II: [300,280,260,240,220,200,180,160],
    LeagueTier.CHAMPION_III: [280,260,240,220,200,180,160,140],
    LeagueTier.MASTER_I: [260,240,220,200,180,160,140,120],
    LeagueTier.MASTER_II: [240,220,200,180,160,140,120,100],
    LeagueTier.MASTER_III: [220,200,180,160,140,120,100,80],
    LeagueTier.CRYSTAL_I: [200,180,160,140,120,100,80,60],
    LeagueTier.CRYSTAL_II: [180,160,140,120,100,80,60,40],
    LeagueTier.CRYSTAL_III: [160,140,120,100,80,60,40,20],
    LeagueTier.GOLD_I: [140,120,100,80,60,40,20,10],
    LeagueTier.GOLD_II: [120,100,80,60,40,20,10,0],
    LeagueTier.GOLD_III: [100,80,60,40,20,10,0,0],
    LeagueTier.SILVER_I: [80,60,40,20,10,0,0,0],
    LeagueTier.SILVER_II: [60,40,20,10,0,0,0,0],
    LeagueTier.SILVER_III: [40,20,10,0,0,0,0,0],
    LeagueTier.BRONZE_I: [20,10,0,0,0,0,0,0],
    LeagueTier.BRONZE_II: [10,0,0,0,0,0,0,0],
    LeagueTier.BRONZE_III: [0,0,0,0,0,0,0,0],
    }

def medal_bonus(tier:LeagueTier,position_index:int) -> Optional[int]:
    """
    Medal bonus for a 0-indexed final position. None when the tier is unknown or the index is out of range.
    """
    bonuses = MEDAL_BONUSES.get(tier)
    if bonuses is None or not 0 <= position_index < len(bonuses):
        return None
    return bonuses[position_index]

class MedalEstimate():
    __slots__ = [
        'position',
        'medals',
        'likelihood'
        ]

    def __init__(self,position:int,medals:int,likelihood:str):
        self.position = position
        self.medals = medals
        self.likelihood = likelihood

    def __repr__(self):
        return f"MedalEstimate({self.position}: {self.medals}, {self.likelihood})"

    def to_json(self) -> dict:
        return {
            'position': self.position,
            'medals': self.medals,
            'likelihood': self.likelihood
            }

def medal_range(tier:LeagueTier,predicted_position:int) -> List[MedalEstimate]:
    """
    Bonus for the predicted (1-indexed) position and its neighbours on either side.
    """
    bonuses = MEDAL_BONUSES.get(tier)
    if bonuses is None:
        return []
    index = predicted_position - 1
    estimates = []
    for i in range(max(0,index-1),min(len(bonuses)-1,index+1)+1):
        estimates.append(MedalEstimate(
            position=i+1,
            medals=bonuses[i],
            likelihood='most likely' if i == index else 'possible'
            ))
    return estimates

def promotion_outlook(position:int) -> str:
    if position <= 2:
        return 'promotion'
    if position >= 7:
        return 'relegation'
    return 'stay'

############################################################
############################################################
#####
##### POSITION PREDICTION
#####
############################################################
############################################################
class Confidence:
    HIGH = 'high'
    MEDIUM = 'medium'
    LOW = 'low'

    @classmethod
    def from_rounds(cls,rounds_played:int) -> Optional[str]:
        if rounds_played >= 4:
            return cls.HIGH
        if rounds_played >= 2:
            return cls.MEDIUM
        if rounds_played >= 1:
            return cls.LOW
        return None

class PositionPrediction():
    __slots__ = [
        'current_position',
        'predicted_position',
        'total_clans',
        'confidence',
        'rounds_played',
        'rounds_remaining',
        'total_stars',
        'avg_stars_per_round',
        'predicted_total_stars',
        'trend',
        'league_tier',
        'medals'
        ]

    def __init__(self,**kwargs):
        for attr in self.__slots__:
            setattr(self,attr,kwargs.get(attr,None))

    def __repr__(self):
        return f"PositionPrediction({self.current_position} -> {self.predicted_position}, {self.confidence})"

    @property
    def outlook(self) -> str:
        return promotion_outlook(self.predicted_position)

    def to_json(self) -> dict:
        data = {k:getattr(self,k) for k in self.__slots__ if k not in ['league_tier','medals']}
        data['league'] = self.league_tier.value if self.league_tier else None
        data['medals'] = [m.to_json() for m in self.medals or []]
        data['outlook'] = self.outlook
        return data

def position_trend(history:List[RoundStanding]) -> int:
    """
    Difference between the last two positions. Negative means the clan climbed.
    """
    if len(history) < 2:
        return 0
    return history[-1].position - history[-2].position

def predict_final_position(history:List[RoundStanding],league_name:Optional[str]=None) -> Optional[PositionPrediction]:
    """
    Projects a campaign's final position from its round standings.

    Returns None when no round has been played.
    """
    history = sorted([s for s in history if s.position],key=lambda s: s.round_number)
    rounds_played = len(history)
    if rounds_played == 0:
        return None

    current = history[-1]
    rounds_remaining = max(CWL_ROUNDS - rounds_played,0)
    total_stars = sum(s.stars_earned for s in history)
    avg_stars = total_stars / rounds_played

    trend = position_trend(history)
    predicted = current.position
    if trend < 0:
        predicted = max(1,current.position - 1)
    elif trend > 0:
        predicted = min(current.total_clans or current.position + 1,current.position + 1)

    tier = LeagueTier.lookup(league_name or current.league_name)
    return PositionPrediction(
        current_position=current.position,
        predicted_position=predicted,
        total_clans=current.total_clans,
        confidence=Confidence.from_rounds(rounds_played),
        rounds_played=rounds_played,
        rounds_remaining=rounds_remaining,
        total_stars=total_stars,
        avg_stars_per_round=round(avg_stars,2),
        predicted_total_stars=total_stars + round(avg_stars * rounds_remaining),
        trend=trend,
        league_tier=tier,
        medals=medal_range(tier,predicted)
        )
