from typing import *

CWL_ROUNDS = 7
NO_WAR_TAG = '#0'

class CWLPhase:
    NOT_IN_LEAGUE = 'not_in_cwl'
    PREPARATION = 'preparation'
    ACTIVE = 'active'
    ENDED = 'ended'

    _order = [
        'not_in_cwl',
        'preparation',
        'active',
        'ended'
        ]
    _from_remote = {
        'preparation': 'preparation',
        'inWar': 'active',
        'ended': 'ended'
        }

    @classmethod
    def rank(cls,phase:str) -> int:
        try:
            return cls._order.index(phase)
        except ValueError:
            return 0

    @classmethod
    def from_remote(cls,state:Optional[str]) -> Optional[str]:
        return cls._from_remote.get(state,None)

    @classmethod
    def readable_text(cls,phase:str) -> str:
        if phase == cls.NOT_IN_LEAGUE:
            return 'Not in CWL'
        elif phase == cls.PREPARATION:
            return 'Preparation'
        elif phase == cls.ACTIVE:
            return 'Active'
        elif phase == cls.ENDED:
            return 'Ended'
        else:
            return 'Unknown'

class WarState:
    NOTINWAR = 'notInWar'
    PREPARATION = 'preparation'
    INWAR = 'inWar'
    WAR_ENDED = 'warEnded'

    @classmethod
    def readable_text(cls,state:str):
        if state == cls.NOTINWAR:
            return 'Not in War'
        elif state == cls.PREPARATION:
            return 'Preparation'
        elif state == cls.INWAR:
            return 'In War'
        elif state == cls.WAR_ENDED:
            return 'War Ended'
        else:
            return 'Unknown'

class WarResult:
    WON = 'won'
    TIED = 'tied'
    LOST = 'lost'
    PENDING = 'pending'

    @classmethod
    def readable_text(cls,result:str) -> str:
        return {
            'won': 'Victory',
            'tied': 'Tie',
            'lost': 'Defeat',
            'pending': 'In Progress'
            }.get(result,'Unknown')

class CWLColors:
    GOLD = 0xFFD700
    ORANGE = 0xFF6B35
    GREEN = 0x00FF00
    RED = 0xFF0000
    YELLOW = 0xFFFF00
    BLUE = 0x3498DB
    PURPLE = 0x9B59B6
