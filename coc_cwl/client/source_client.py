import coc
import asyncio
import aiohttp
import pendulum

from typing import *

from collections import deque

from ..constants import NO_WAR_TAG
from ..exceptions import SourceNotFound, SourceRateLimited, SourceUnavailable
from ..utils.logs import HTTP_LOG
from ..utils.utils import clean_tag

class FetchStatus:
    OK = 'ok'
    NOT_FOUND = 'not_found'
    RATE_LIMITED = 'rate_limited'
    UNAVAILABLE = 'unavailable'

class FetchResult():
    """
    Outcome of a single Clash API read.

    `status` is one of the `FetchStatus` values. `payload` is only set when the
    call succeeded. Use `unwrap()` to get the payload or raise the matching
    source exception.
    """
    __slots__ = [
        'status',
        'endpoint',
        'payload',
        'error'
        ]

    def __init__(self,status:str,endpoint:str,payload:Optional[dict]=None,error:Optional[str]=None):
        self.status = status
        self.endpoint = endpoint
        self.payload = payload
        self.error = error

    def __repr__(self):
        return f"FetchResult(status={self.status}, endpoint={self.endpoint})"

    @property
    def ok(self) -> bool:
        return self.status == FetchStatus.OK
    @property
    def not_found(self) -> bool:
        return self.status == FetchStatus.NOT_FOUND
    @property
    def rate_limited(self) -> bool:
        return self.status == FetchStatus.RATE_LIMITED
    @property
    def unavailable(self) -> bool:
        return self.status in [FetchStatus.UNAVAILABLE,FetchStatus.RATE_LIMITED]

    def unwrap(self) -> dict:
        if self.status == FetchStatus.OK:
            return self.payload
        if self.status == FetchStatus.NOT_FOUND:
            raise SourceNotFound(self.endpoint)
        if self.status == FetchStatus.RATE_LIMITED:
            raise SourceRateLimited(self.endpoint)
        raise SourceUnavailable(self.endpoint,self.error)

############################################################
############################################################
#####
##### SOURCE CLIENT
#####
############################################################
############################################################
class CWLSourceClient():
    """
    Read-only access to the four Clash API endpoints used for CWL tracking.

    Wraps coc.py's HTTP client so payloads are returned as raw JSON. Failures
    are classified into a `FetchResult` and never retried here; the caller
    decides whether to skip until the next tick.

    Every call is appended to `debug_log`, a bounded ring buffer for status
    readouts.
    """

    def __init__(self,http,debug_size:int=200):
        self.http = http
        self.debug_log = deque(maxlen=debug_size)

    @classmethod
    def from_client(cls,client:coc.Client,debug_size:int=200) -> 'CWLSourceClient':
        return cls(client.http,debug_size=debug_size)

    ##################################################
    ### ENDPOINTS
    ##################################################
    async def fetch_clan(self,tag:str) -> FetchResult:
        return await self._request('clan',tag,self.http.get_clan)

    async def fetch_current_war(self,tag:str) -> FetchResult:
        return await self._request('currentwar',tag,self.http.get_clan_current_war)

    async def fetch_league_group(self,tag:str) -> FetchResult:
        return await self._request('leaguegroup',tag,self.http.get_clan_war_league_group)

    async def fetch_war(self,war_tag:str) -> FetchResult:
        if clean_tag(war_tag) == clean_tag(NO_WAR_TAG):
            return self._record(FetchResult(FetchStatus.NOT_FOUND,f"clanwarleagues/wars/{NO_WAR_TAG}"),war_tag)
        return await self._request('clanwarleagues/wars',war_tag,self.http.get_cwl_wars)

    ##################################################
    ### HELPERS
    ##################################################
    async def _request(self,endpoint:str,tag:str,func:Callable[[str],Awaitable[dict]]) -> FetchResult:
        c_tag = clean_tag(tag)
        if not c_tag:
            return self._record(FetchResult(FetchStatus.NOT_FOUND,endpoint,error="empty tag"),tag)

        name = f"{endpoint}/{c_tag}"
        try:
            data = await func(f"#{c_tag}")

        except coc.NotFound:
            result = FetchResult(FetchStatus.NOT_FOUND,name)
        except coc.Maintenance:
            result = FetchResult(FetchStatus.UNAVAILABLE,name,error="maintenance")
        except coc.GatewayError as exc:
            result = FetchResult(FetchStatus.UNAVAILABLE,name,error=f"gateway error {getattr(exc,'status','')}")
        except coc.HTTPException as exc:
            if getattr(exc,'status',None) == 429:
                result = FetchResult(FetchStatus.RATE_LIMITED,name,error="429")
            else:
                result = FetchResult(FetchStatus.UNAVAILABLE,name,error=f"HTTP {getattr(exc,'status','?')}")
        except (aiohttp.ClientError,asyncio.TimeoutError) as exc:
            result = FetchResult(FetchStatus.UNAVAILABLE,name,error=f"{exc.__class__.__name__}")
        except coc.ClashOfClansException as exc:
            result = FetchResult(FetchStatus.UNAVAILABLE,name,error=f"{exc}")

        else:
            if isinstance(data,dict):
                result = FetchResult(FetchStatus.OK,name,payload=data)
            else:
                result = FetchResult(FetchStatus.UNAVAILABLE,name,error="malformed body")

        return self._record(result,c_tag)

    def _record(self,result:FetchResult,tag:Optional[str]) -> FetchResult:
        self.debug_log.append({
            'time': pendulum.now('UTC').to_iso8601_string(),
            'endpoint': result.endpoint,
            'tag': tag,
            'status': result.status,
            'error': result.error
            })
        if result.rate_limited:
            HTTP_LOG.warning(f"Rate limited on {result.endpoint}.")
        elif result.unavailable:
            HTTP_LOG.info(f"Source unavailable on {result.endpoint}: {result.error}")
        else:
            HTTP_LOG.debug(f"{result.endpoint}: {result.status}")
        return result

    def recent_calls(self,limit:int=20) -> List[dict]:
        return list(self.debug_log)[-limit:]
