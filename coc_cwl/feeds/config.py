from typing import *

from ..client.db_client import MotorClient
from ..utils.utils import clean_tag

class ClanCWLConfig():
    __slots__ = [
        'tag',
        'announce_channel_id',
        'leaderboard_channel_id',
        'mention_targets',
        'reminders_enabled'
        ]

    def __init__(self,tag:str,data:Optional[dict]=None):
        data = data or {}
        self.tag = clean_tag(tag)
        self.announce_channel_id = data.get('announce_channel_id',None)
        self.leaderboard_channel_id = data.get('leaderboard_channel_id',None)
        self.mention_targets = list(data.get('mention_targets',[]) or [])
        self.reminders_enabled = data.get('reminders_enabled',True)

    def __repr__(self):
        return f"ClanCWLConfig({self.tag})"

    @property
    def board_channel_id(self) -> Optional[int]:
        return self.leaderboard_channel_id or self.announce_channel_id

class GuildCWLConfig():
    """
    CWL settings for one Discord guild. Read only; maintained by the admin dashboard.
    """
    __slots__ = [
        'guild_id',
        'enabled',
        'track_cwl',
        'mention_targets',
        'clans'
        ]

    def __init__(self,guild_id:int,data:Optional[dict]=None):
        data = data or {}
        self.guild_id = guild_id
        self.enabled = data.get('enabled',False)
        self.track_cwl = data.get('track_cwl',False)
        self.mention_targets = list(data.get('mention_targets',[]) or [])

        clan_configs = {clean_tag(k):v for k,v in (data.get('clan_configs',{}) or {}).items()}
        self.clans = []
        for tag in data.get('clans',[]) or []:
            c_tag = clean_tag(tag)
            if c_tag and c_tag not in [c.tag for c in self.clans]:
                self.clans.append(ClanCWLConfig(c_tag,clan_configs.get(c_tag)))

    def __repr__(self):
        return f"GuildCWLConfig({self.guild_id}, {len(self.clans)} clans)"

    @property
    def is_active(self) -> bool:
        return self.enabled and self.track_cwl and len(self.clans) > 0

    def get_clan(self,tag:str) -> Optional[ClanCWLConfig]:
        c_tag = clean_tag(tag)
        return next((c for c in self.clans if c.tag == c_tag),None)

    def mentions_for(self,clan:ClanCWLConfig) -> List[str]:
        return clan.mention_targets or self.mention_targets

class CWLConfigStore():
    def __init__(self,db:MotorClient):
        self.db = db

    async def get_guild_config(self,guild_id:int) -> GuildCWLConfig:
        data = await self.db.guild_config.find_one({'_id':guild_id})
        return GuildCWLConfig(guild_id,data)

    async def active_guilds(self) -> List[GuildCWLConfig]:
        query = self.db.guild_config.find({'enabled':True,'track_cwl':True})
        configs = [GuildCWLConfig(d['_id'],d) async for d in query]
        return sorted([c for c in configs if c.is_active],key=lambda c: c.guild_id)
