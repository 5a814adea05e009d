from typing import *

from collections import Counter

from ..objects.performance import PlayerRoundPerformance, PlayerSeasonStats, aggregate_players

SEASON_MVP_MIN_ROUNDS = 3

class RoundAwards():
    """
    Round awards. Each category is decided on its own, so different players can win each one.
    """
    __slots__ = [
        'round_number',
        'mvp',
        'most_stars',
        'best_destruction',
        'three_star_master',
        'three_star_count'
        ]

    def __init__(self,round_number:int,**kwargs):
        self.round_number = round_number
        self.mvp = kwargs.get('mvp',None)
        self.most_stars = kwargs.get('most_stars',None)
        self.best_destruction = kwargs.get('best_destruction',None)
        self.three_star_master = kwargs.get('three_star_master',None)
        self.three_star_count = kwargs.get('three_star_count',0)

    @property
    def is_empty(self) -> bool:
        return self.mvp is None

    def to_json(self) -> dict:
        def _row(r:Optional[PlayerRoundPerformance]):
            if r is None:
                return None
            return {
                'tag': r.player_tag,
                'name': r.player_name,
                'stars': r.stars_earned,
                'destruction': r.destruction_percentage
                }
        return {
            'round': self.round_number,
            'mvp': _row(self.mvp),
            'most_stars': _row(self.most_stars),
            'best_destruction': _row(self.best_destruction),
            'three_star_master': _row(self.three_star_master),
            'three_star_count': self.three_star_count
            }

def round_awards(rows:Iterable[PlayerRoundPerformance],round_number:int) -> RoundAwards:
    attacked = [r for r in rows if r.round_number == round_number and r.attacks_used > 0]
    if len(attacked) == 0:
        return RoundAwards(round_number)

    # map position breaks exact ties so the same facts always give the same winner
    def _pos(r):
        return r.map_position if r.map_position is not None else 99

    mvp = max(attacked,key=lambda r: (r.stars_earned,r.destruction_percentage,-_pos(r)))
    most_stars = max(attacked,key=lambda r: (r.stars_earned,-_pos(r)))
    best_destruction = max(attacked,key=lambda r: (r.destruction_percentage,-_pos(r)))

    triples = [r for r in attacked if r.is_three_star]
    three_star_count = Counter(r.player_tag for r in triples)
    three_star_master = max(triples,key=lambda r: (three_star_count[r.player_tag],-_pos(r))) if triples else None

    return RoundAwards(
        round_number,
        mvp=mvp,
        most_stars=most_stars,
        best_destruction=best_destruction,
        three_star_master=three_star_master,
        three_star_count=three_star_count[three_star_master.player_tag] if three_star_master else 0
        )

def season_mvp_ranking(rows:Iterable[PlayerRoundPerformance],min_rounds:int=SEASON_MVP_MIN_ROUNDS,limit:int=5) -> List[PlayerSeasonStats]:
    """
    Top players of the season by total stars, then average destruction.

    Only players who attacked in at least `min_rounds` rounds are ranked.
    """
    stats = aggregate_players(rows)
    eligible = [s for s in stats.values() if s.attacks >= min_rounds]
    ranked = sorted(eligible,key=lambda s: (-s.stars,-s.avg_destruction,s.tag))
    return ranked[:limit]

def season_mvp(rows:Iterable[PlayerRoundPerformance],min_rounds:int=SEASON_MVP_MIN_ROUNDS) -> Optional[PlayerSeasonStats]:
    ranking = season_mvp_ranking(rows,min_rounds=min_rounds,limit=1)
    return ranking[0] if len(ranking) > 0 else None
