from typing import *

from ..objects.performance import PlayerRoundPerformance, PlayerSeasonStats, aggregate_players
from ..utils.utils import safe_div

##################################################
#####
##### ROSTER SCORING
#####
##################################################
def roster_score(stats:PlayerSeasonStats) -> float:
    """
    Weighted score favouring consistency over single big hits. Destruction is
    averaged over every round on the roster, so a missed round counts as 0%.
    """
    return (
        stats.stars * 10
        + stats.avg_destruction_per_round * 5
        + stats.three_star_rate * 100
        + stats.participation_rate * 50
        + stats.rounds * 20
        )

class ScoredPlayer():
    __slots__ = [
        'stats',
        'score'
        ]

    def __init__(self,stats:PlayerSeasonStats):
        self.stats = stats
        self.score = roster_score(stats)

    def __repr__(self):
        return f"ScoredPlayer({self.stats.tag} {self.score:.1f})"

    def to_json(self) -> dict:
        return {**self.stats.to_json(),'score':round(self.score,1)}

class LineupRecommendation():
    __slots__ = [
        'recommended',
        'benched'
        ]

    def __init__(self,recommended:List[ScoredPlayer],benched:List[ScoredPlayer]):
        self.recommended = recommended
        self.benched = benched

    @property
    def total_evaluated(self) -> int:
        return len(self.recommended) + len(self.benched)

    def to_json(self) -> dict:
        return {
            'recommended': [p.to_json() for p in self.recommended],
            'benched': [p.to_json() for p in self.benched],
            'total_evaluated': self.total_evaluated
            }

def recommend_lineup(rows:Iterable[PlayerRoundPerformance],roster_size:int=15) -> LineupRecommendation:
    scored = [ScoredPlayer(s) for s in aggregate_players(rows).values()]
    scored.sort(key=lambda p: (-p.score,p.stats.tag))
    return LineupRecommendation(scored[:roster_size],scored[roster_size:])

##################################################
#####
##### PROBLEMATIC PLAYERS
#####
##################################################
class AlertThresholds():
    __slots__ = [
        'min_participation_rate',
        'min_star_efficiency',
        'min_destruction_percent',
        'max_missed_attacks'
        ]

    def __init__(self,
        min_participation_rate:float=0.8,
        min_star_efficiency:float=1.5,
        min_destruction_percent:float=50,
        max_missed_attacks:int=2):

        self.min_participation_rate = min_participation_rate
        self.min_star_efficiency = min_star_efficiency
        self.min_destruction_percent = min_destruction_percent
        self.max_missed_attacks = max_missed_attacks

class PlayerAlert():
    __slots__ = [
        'stats',
        'issues'
        ]

    def __init__(self,stats:PlayerSeasonStats,issues:List[str]):
        self.stats = stats
        self.issues = issues

    def __repr__(self):
        return f"PlayerAlert({self.stats.tag}: {'; '.join(self.issues)})"

    def to_json(self) -> dict:
        return {**self.stats.to_json(),'issues':list(self.issues)}

class RosterAlerts():
    __slots__ = [
        'inactive',
        'underperforming',
        'warnings'
        ]

    def __init__(self):
        self.inactive = []
        self.underperforming = []
        self.warnings = []

    @property
    def total(self) -> int:
        return len(self.inactive) + len(self.underperforming) + len(self.warnings)

    def to_json(self) -> dict:
        return {
            'inactive': [a.to_json() for a in self.inactive],
            'underperforming': [a.to_json() for a in self.underperforming],
            'warnings': [a.to_json() for a in self.warnings]
            }

def player_issues(stats:PlayerSeasonStats,thresholds:AlertThresholds) -> List[str]:
    issues = []
    participation = safe_div(stats.attacks,stats.attacks + stats.missed)

    if stats.missed > thresholds.max_missed_attacks:
        issues.append(f"Missed {stats.missed} attacks")
    if participation < thresholds.min_participation_rate:
        issues.append(f"Low participation: {participation*100:.1f}%")
    if stats.attacks >= 3 and stats.avg_stars < thresholds.min_star_efficiency:
        issues.append(f"Low stars: {stats.avg_stars:.2f}/attack")
    if stats.attacks >= 3 and stats.avg_destruction_per_round < thresholds.min_destruction_percent:
        issues.append(f"Low destruction: {stats.avg_destruction_per_round:.1f}%")
    return issues

def detect_problematic_players(rows:Iterable[PlayerRoundPerformance],thresholds:Optional[AlertThresholds]=None) -> RosterAlerts:
    thresholds = thresholds or AlertThresholds()
    alerts = RosterAlerts()

    for stats in sorted(aggregate_players(rows).values(),key=lambda s: s.tag):
        issues = player_issues(stats,thresholds)
        if stats.missed >= 3:
            alerts.inactive.append(PlayerAlert(stats,issues))
        elif len(issues) >= 2:
            alerts.underperforming.append(PlayerAlert(stats,issues))
        elif len(issues) == 1:
            alerts.warnings.append(PlayerAlert(stats,issues))
    return alerts

##################################################
#####
##### ATTACK TIMING
#####
##################################################
class AttackPriority():
    __slots__ = [
        'player_tag',
        'player_name',
        'avg_stars',
        'avg_destruction',
        'priority_score'
        ]

    def __init__(self,player_tag:str,player_name:str,avg_stars:float,avg_destruction:float):
        self.player_tag = player_tag
        self.player_name = player_name
        self.avg_stars = avg_stars
        self.avg_destruction = avg_destruction
        self.priority_score = avg_stars * 50 + avg_destruction * 0.5

    def to_json(self) -> dict:
        return {
            'tag': self.player_tag,
            'name': self.player_name,
            'avg_stars': round(self.avg_stars,2),
            'avg_destruction': round(self.avg_destruction,2),
            'priority_score': round(self.priority_score,1)
            }

class AttackTiming():
    __slots__ = [
        'high_priority',
        'medium_priority',
        'low_priority'
        ]

    def __init__(self,high:List[AttackPriority],medium:List[AttackPriority],low:List[AttackPriority]):
        self.high_priority = high
        self.medium_priority = medium
        self.low_priority = low

    @property
    def total_pending(self) -> int:
        return len(self.high_priority) + len(self.medium_priority) + len(self.low_priority)

def attack_timing(rows:Iterable[PlayerRoundPerformance],round_number:int) -> AttackTiming:
    """
    Ranks the players still to attack in a round by how they performed in earlier rounds.
    """
    rows = list(rows)
    pending = [r for r in rows if r.round_number == round_number and r.attacks_remaining > 0]
    history = aggregate_players([r for r in rows if r.round_number < round_number and r.attacks_used > 0])

    prioritized = []
    for row in pending:
        stats = history.get(row.player_tag)
        prioritized.append(AttackPriority(
            row.player_tag,
            row.player_name,
            stats.avg_stars if stats else 0.0,
            stats.avg_destruction if stats else 0.0
            ))
    prioritized.sort(key=lambda p: (-p.priority_score,p.player_tag))

    # only the top five high-priority attackers are called out; the rest drop out of the list
    return AttackTiming(
        [p for p in prioritized if p.priority_score > 150][:5],
        [p for p in prioritized if 100 < p.priority_score <= 150],
        [p for p in prioritized if p.priority_score <= 100]
        )
