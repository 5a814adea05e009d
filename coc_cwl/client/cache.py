import cachetools

from typing import *

class WarCache(cachetools.TTLCache):
    """
    `cachetools.TTLCache` with an async read-through helper.

    The clock is injectable so expiry can be driven explicitly; it must return
    seconds as a float. An entry is stale from the moment `clock() - stored_at`
    reaches `ttl`.
    """
    def __init__(self,ttl:float=60,maxsize:int=1024,clock:Optional[Callable[[],float]]=None):
        if clock is None:
            super().__init__(maxsize=maxsize,ttl=ttl)
        else:
            super().__init__(maxsize=maxsize,ttl=ttl,timer=clock)

    def purge_expired(self) -> int:
        return len(self.expire())

    async def get_or_fetch(self,key:Hashable,fetch:Callable[[],Awaitable[Any]]) -> Any:
        """
        Returns the cached value or awaits `fetch` and caches its result.
        `None` results are not cached.
        """
        value = self.get(key)
        if value is not None:
            return value
        value = await fetch()
        if value is not None:
            self[key] = value
        return value
