import pendulum

from typing import *

class CWLSeason():
    """
    A calendar-month CWL season. Seasons are identified as `M-YYYY`.
    """
    __slots__ = [
        'id',
        'season_month',
        'season_year'
        ]

    def __init__(self,id:str):
        self.id = id
        self.season_month = int(self.id.split('-')[0])
        self.season_year = int(self.id.split('-')[1])

        if self.season_month < 1 or self.season_month > 12:
            raise ValueError(f"Season month must be between 1 and 12. {self.season_month} is invalid.")

    def __str__(self):
        return self.id

    def __repr__(self):
        return f"CWLSeason({self.id})"

    def __eq__(self,other):
        return isinstance(other,CWLSeason) and self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def __lt__(self,other:'CWLSeason'):
        return self.season_start < other.season_start

    @classmethod
    def current(cls,now:Optional[pendulum.DateTime]=None) -> 'CWLSeason':
        now = now or pendulum.now('UTC')
        return cls(now.in_timezone('UTC').format('M-YYYY'))

    @classmethod
    def from_league_season(cls,league_season:str) -> 'CWLSeason':
        """
        Converts the `YYYY-MM` season string carried by league groups.
        """
        dt = pendulum.from_format(league_season,'YYYY-MM')
        return cls(dt.format('M-YYYY'))

    ##################################################
    ### PROPERTIES
    ##################################################
    @property
    def season_start(self) -> pendulum.DateTime:
        return pendulum.datetime(self.season_year,self.season_month,1)
    @property
    def description(self) -> str:
        return self.season_start.format('MMMM YYYY')
