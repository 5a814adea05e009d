import pendulum

from typing import *

def clean_tag(tag:Optional[str]) -> Optional[str]:
    """
    Strips the leading `#` and uppercases a tag.
    Clan and player tags are stored in this form throughout the tracker.
    """
    if not tag:
        return None
    tag = str(tag).strip().upper()
    if tag.startswith('#'):
        tag = tag[1:]
    return tag or None

def format_tag(tag:Optional[str]) -> str:
    c_tag = clean_tag(tag)
    return f"#{c_tag}" if c_tag else ""

def parse_api_time(value:Optional[str]) -> Optional[pendulum.DateTime]:
    """
    Parses timestamps as the Clash API returns them (`20251007T212352.000Z`).
    ISO strings are accepted too.
    """
    if not value:
        return None
    try:
        if '-' in value:
            return pendulum.parse(value)
        return pendulum.from_format(value,'YYYYMMDD[T]HHmmss.SSS[Z]',tz='UTC')
    except ValueError:
        return None

def chunks(lst:list,n:int) -> Iterator[list]:
    for i in range(0,len(lst),n):
        yield lst[i:i + n]

def safe_div(numerator:float,denominator:float) -> float:
    return numerator / denominator if denominator else 0.0

def prune_idle_locks(locks:Dict[Hashable,Any]) -> int:
    """
    Drops every lock in a per-key lock map that is not currently held.
    Returns the number of locks dropped.
    """
    idle = [k for k,lock in locks.items() if not lock.locked()]
    for k in idle:
        del locks[k]
    return len(idle)
