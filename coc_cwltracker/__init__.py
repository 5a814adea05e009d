from redbot.core.bot import Red
from .cog_cwltracker import CWLTracker

async def setup(bot:Red):
    cog = CWLTracker(bot)
    await bot.add_cog(cog)
