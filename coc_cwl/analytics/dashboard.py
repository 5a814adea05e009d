from typing import *

from collections import defaultdict

from ..objects.performance import PlayerRoundPerformance, aggregate_players
from ..objects.standings import RoundStanding
from ..utils.utils import safe_div

ACTIVE_ROUNDS = 3

class CWLDashboard():
    """
    Season statistics for one campaign, computed from its performance rows and round standings.

    Sections are plain dicts so they can be rendered to an embed or exported as is.
    """
    def __init__(self,rows:Iterable[PlayerRoundPerformance],standings:Iterable[RoundStanding]):
        self.rows = list(rows)
        self.standings = sorted(standings,key=lambda s: s.round_number)
        self.attacks = [r for r in self.rows if r.attacks_used > 0]

    @property
    def has_data(self) -> bool:
        return len(self.rows) > 0

    def overview(self) -> dict:
        total_attacks = sum(r.attacks_used for r in self.rows)
        missed = sum(r.attacks_remaining for r in self.rows)
        total_stars = sum(r.stars_earned for r in self.attacks)
        return {
            'total_players': len(set(r.player_tag for r in self.rows)),
            'total_attacks': total_attacks,
            'missed_attacks': missed,
            'total_stars': total_stars,
            'avg_destruction': round(safe_div(sum(r.destruction_percentage for r in self.attacks),len(self.attacks)),2),
            'three_stars': len([r for r in self.attacks if r.is_three_star]),
            'rounds_completed': len(set(r.round_number for r in self.rows)),
            'attack_completion_rate': round(safe_div(total_attacks,total_attacks + missed) * 100,1),
            'stars_per_attack': round(safe_div(total_stars,total_attacks),2)
            }

    def top_performers(self,limit:int=10) -> List[dict]:
        stats = [s for s in aggregate_players(self.attacks).values() if s.attacks >= 1]
        stats.sort(key=lambda s: (-s.stars,-s.avg_destruction,s.tag))
        return [s.to_json() for s in stats[:limit]]

    def attack_efficiency(self) -> dict:
        counts = defaultdict(int)
        for r in self.attacks:
            counts[min(r.stars_earned,3)] += 1
        total = len(self.attacks)
        return {
            'total_attacks': total,
            'three_star_attacks': counts[3],
            'two_star_attacks': counts[2],
            'one_star_attacks': counts[1],
            'zero_star_attacks': counts[0],
            'three_star_rate': round(safe_div(counts[3],total) * 100,1),
            'two_star_rate': round(safe_div(counts[2],total) * 100,1),
            'one_star_rate': round(safe_div(counts[1],total) * 100,1),
            'zero_star_rate': round(safe_div(counts[0],total) * 100,1),
            'star_success_rate': round(safe_div(total - counts[0],total) * 100,1)
            }

    def participation(self) -> dict:
        stats = aggregate_players(self.rows).values()
        return {
            'active_players': len([s for s in stats if s.rounds >= ACTIVE_ROUNDS]),
            'players_with_missed': len([s for s in stats if s.missed > 0]),
            'perfect_attendance': len([s for s in stats if s.missed == 0 and s.rounds > 0])
            }

    def matchup_analysis(self) -> Optional[dict]:
        if len(self.standings) == 0:
            return None
        first = self.standings[0]
        latest = self.standings[-1]
        wins = latest.cumulative_wins
        losses = latest.cumulative_losses
        return {
            'current_position': latest.position,
            'total_clans': latest.total_clans,
            'position_change': (first.position or 0) - (latest.position or 0),
            'total_wins': wins,
            'total_losses': losses,
            'win_rate': round(safe_div(wins,wins + losses) * 100,1)
            }

    def trends(self) -> dict:
        per_round = defaultdict(int)
        for r in self.attacks:
            per_round[r.round_number] += r.stars_earned
        rounds = [per_round[k] for k in sorted(per_round)]

        if len(rounds) < 2:
            return {'trend':'insufficient_data','rounds':rounds}

        recent = rounds[-3:]
        earlier = rounds[:max(1,len(rounds)-3)]
        avg_recent = sum(recent) / len(recent)
        avg_earlier = sum(earlier) / len(earlier)

        if avg_recent > avg_earlier * 1.1:
            trend = 'improving'
        elif avg_recent < avg_earlier * 0.9:
            trend = 'declining'
        else:
            trend = 'stable'
        return {
            'trend': trend,
            'rounds': rounds,
            'avg_recent_stars': round(avg_recent,2),
            'avg_earlier_stars': round(avg_earlier,2)
            }

    def to_json(self) -> dict:
        return {
            'overview': self.overview(),
            'top_performers': self.top_performers(),
            'attack_efficiency': self.attack_efficiency(),
            'participation': self.participation(),
            'matchup_analysis': self.matchup_analysis(),
            'trends': self.trends()
            }
