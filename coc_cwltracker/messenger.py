import discord

from typing import *

from redbot.core.bot import Red

from coc_cwl.feeds.notifications import Messenger
from coc_cwl.utils.logs import LOG

class BotMessenger(Messenger):
    """
    Sends and edits tracker messages through the Red bot.
    """
    def __init__(self,bot:Red):
        self.bot = bot

    async def get_channel(self,channel_id:int) -> Optional[discord.abc.Messageable]:
        channel = self.bot.get_channel(channel_id)
        if channel is None:
            try:
                channel = await self.bot.fetch_channel(channel_id)
            except (discord.NotFound,discord.Forbidden):
                LOG.warning(f"Channel {channel_id} is not available to the bot.")
                return None
        return channel

    async def send(self,channel_id:int,embed:discord.Embed,content:Optional[str]=None) -> Optional[int]:
        channel = await self.get_channel(channel_id)
        if channel is None:
            return None
        message = await channel.send(
            content=content,
            embed=embed,
            allowed_mentions=discord.AllowedMentions(everyone=True,roles=True,users=True)
            )
        return message.id

    async def edit(self,channel_id:int,message_id:int,embed:discord.Embed,content:Optional[str]=None) -> Optional[int]:
        channel = await self.get_channel(channel_id)
        if channel is None:
            return None
        try:
            message = await channel.fetch_message(message_id)
        except discord.NotFound:
            return None
        await message.edit(content=content,embed=embed)
        return message.id
