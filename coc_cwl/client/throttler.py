import coc
import asyncio

from typing import *

from aiolimiter import AsyncLimiter
from collections import deque
from time import process_time

############################################################
############################################################
#####
##### THROTTLER / COUNTER
#####
############################################################
############################################################
class CWLThrottler(coc.BasicThrottler):
    """
    Request throttler for the Clash API client.

    Requests are paced with an AsyncLimiter. The number of sent and received
    requests is counted for the loop status readout.
    """
    def __init__(self,sleep_time):
        self.limiter = AsyncLimiter(1,sleep_time)
        self.counter_lock = asyncio.Lock()
        self.counter_start = process_time()
        self.current_sent = 0
        self.current_rcvd = 0
        self.history = deque(maxlen=3600)

        super().__init__(sleep_time)

    async def __aenter__(self):
        await self.limiter.acquire()
        async with self.counter_lock:
            self.current_sent += 1
        return self

    async def __aexit__(self,exc_type,exc,tb):
        async with self.counter_lock:
            self.current_rcvd += 1
        return self

    async def reset_counter(self) -> Tuple[int,int]:
        async with self.counter_lock:
            snapshot = (self.current_sent,self.current_rcvd)
            self.history.append(snapshot)
            self.current_sent = 0
            self.current_rcvd = 0
            self.counter_start = process_time()
        return snapshot
