import aiohttp
import coc
import pytest

from coc_cwl.client.source_client import CWLSourceClient, FetchStatus
from coc_cwl.exceptions import SourceNotFound, SourceRateLimited, SourceUnavailable

from conftest import coc_error, make_league_group

class TestFetchClassification:

    @pytest.mark.asyncio
    async def test_payload_is_ok(self,fake_http,source):
        fake_http.set('leaguegroup','#2pp',make_league_group())
        result = await source.fetch_league_group('2pp')
        assert result.ok
        assert result.payload['state'] == 'inWar'
        assert fake_http.calls == [('leaguegroup','#2PP')]

    @pytest.mark.asyncio
    async def test_404_is_not_found(self,source):
        result = await source.fetch_league_group('#2PP')
        assert result.not_found
        assert not result.unavailable
        with pytest.raises(SourceNotFound):
            result.unwrap()

    @pytest.mark.asyncio
    async def test_429_is_rate_limited(self,fake_http,source):
        fake_http.set('clan','#2PP',coc_error(coc.HTTPException,429))
        result = await source.fetch_clan('#2PP')
        assert result.status == FetchStatus.RATE_LIMITED
        assert result.unavailable
        with pytest.raises(SourceRateLimited):
            result.unwrap()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error",[
        coc_error(coc.Maintenance,503),
        coc_error(coc.GatewayError,502),
        coc_error(coc.HTTPException,500),
        aiohttp.ClientConnectionError(),
        ])
    async def test_failures_are_unavailable(self,fake_http,source,error):
        fake_http.set('currentwar','#2PP',error)
        result = await source.fetch_current_war('#2PP')
        assert result.status == FetchStatus.UNAVAILABLE
        with pytest.raises(SourceUnavailable):
            result.unwrap()

    @pytest.mark.asyncio
    async def test_malformed_body_is_unavailable(self,fake_http,source):
        fake_http.set('wars','#8QW',['not','a','dict'])
        result = await source.fetch_war('#8QW')
        assert result.unavailable
        assert result.error == "malformed body"

    @pytest.mark.asyncio
    async def test_sentinel_war_tag_skips_network(self,fake_http,source):
        result = await source.fetch_war('#0')
        assert result.not_found
        assert fake_http.calls == []

class TestDebugLog:

    @pytest.mark.asyncio
    async def test_ring_buffer_is_bounded(self,fake_http):
        source = CWLSourceClient(fake_http,debug_size=3)
        for _ in range(5):
            await source.fetch_clan('#2PP')
        assert len(source.debug_log) == 3
        assert source.recent_calls(2)[-1]['status'] == FetchStatus.NOT_FOUND
        assert source.recent_calls(2)[-1]['tag'] == '2PP'
