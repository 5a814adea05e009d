import coc

from typing import *

from ..exceptions import LoginNotSet
from ..utils.logs import LOG
from .throttler import CWLThrottler

class CWLClashClient(coc.Client):
    """
    Logged-in Clash of Clans API client used by the tracker.

    Only the raw HTTP layer (`self.http`) is used for CWL reads, so that payloads
    stay as plain JSON for the persistence and leaderboard code.
    """

    @classmethod
    async def start(cls,
        username:Optional[str]=None,
        password:Optional[str]=None,
        keys:Optional[List[str]]=None,
        key_count:int=1,
        rate_limit:int=30) -> 'CWLClashClient':

        if keys is not None and len(keys) >= 1:
            client = cls(
                throttler=CWLThrottler,
                throttle_limit=rate_limit
                )
            await client.login_with_tokens(*keys)
            LOG.info(f"Logged into Clash of Clans API with {len(keys)} keys.")
            return client

        if username is None:
            raise LoginNotSet(f"Clash API Username is not set.")
        if password is None:
            raise LoginNotSet(f"Clash API Password is not set.")

        client = cls(
            key_count=key_count,
            key_names='cwl-tracker',
            throttler=CWLThrottler,
            throttle_limit=rate_limit
            )
        await client.login(username,password)
        LOG.info(f"Logged into Clash of Clans API with username {username}.")
        return client

    @classmethod
    async def from_tokens(cls,tokens:Dict[str,str],rate_limit:int=30) -> 'CWLClashClient':
        """
        Builds a client from a Red `clashapi` shared token mapping.
        """
        raw_keys = str(tokens.get("keys","") or "").strip()

        # a number is a key count for username login, anything else is a list of tokens
        if raw_keys.isdigit():
            return await cls.start(
                username=tokens.get("username"),
                password=tokens.get("password"),
                key_count=int(raw_keys),
                rate_limit=rate_limit
                )
        keys = [k.strip() for k in raw_keys.split(",") if k.strip()]
        return await cls.start(
            username=tokens.get("username"),
            password=tokens.get("password"),
            keys=keys or None,
            rate_limit=rate_limit
            )

    @property
    def http_throttler(self) -> Optional[CWLThrottler]:
        return getattr(self.http,'_HTTPClient__throttle',None)

    @property
    def api_throughput(self) -> Tuple[int,int]:
        throttler = self.http_throttler
        if throttler is None:
            return 0, 0
        return throttler.current_sent, throttler.current_rcvd

    async def close(self) -> None:
        await super().close()
        LOG.info(f"Logged out of Clash of Clans API.")
