import motor.motor_asyncio

from typing import *

from ..exceptions import DatabaseLogin
from ..utils.logs import LOG

##################################################
#####
##### CWL COLLECTIONS
#####
##################################################

# db__cwl_campaign = {
#     '_id': { 'guild': int, 'tag': string, 'season': string },
#     'guild_id': int,
#     'clan_tag': string,
#     'season': string,
#     'phase': string,
#     'current_round': int,
#     'war_tags': [ string ],
#     'announced_rounds': [ int ],
#     'pending_reminder_rounds': [ int ],
#     'announced_phases': [ string ],
#     'league_name': string,
#     'cumulative_stars': int,
#     'cumulative_destruction': float,
#     'predicted_position': int,
#     'announcement_message_id': int,
#     'leaderboard_message_id': int,
#     'dashboard_message_id': int,
#     'started_at': int,
#     'ended_at': int,
#     'last_checked_at': int
#     }

# db__cwl_round_standing = {
#     '_id': { 'guild': int, 'tag': string, 'season': string, 'round': int },
#     'guild_id': int,
#     'clan_tag': string,
#     'season': string,
#     'round_number': int,
#     'position': int,
#     'total_clans': int,
#     'stars_earned': int,
#     'destruction_percentage': float,
#     'cumulative_wins': int,
#     'cumulative_losses': int,
#     'total_clans_in_league': int,
#     'league_name': string,
#     'source': string,
#     'war_state': string,
#     'result': string,
#     'leaderboard_message_id': int,
#     'finalized': bool,
#     'updated_at': int
#     }

# db__cwl_player_performance = {
#     '_id': { 'guild': int, 'tag': string, 'season': string, 'round': int, 'player': string },
#     'guild_id': int,
#     'clan_tag': string,
#     'season': string,
#     'round_number': int,
#     'player_tag': string,
#     'player_name': string,
#     'townhall_level': int,
#     'map_position': int,
#     'attacks_used': int,
#     'attacks_remaining': int,
#     'stars_earned': int,
#     'destruction_percentage': float,
#     'target_tag': string,
#     'target_townhall_level': int,
#     'target_position': int,
#     'attack_order': int,
#     'is_three_star': bool,
#     'war_state': string,
#     'updated_at': int
#     }

# db__cwl_guild_config = {
#     '_id': int,
#     'enabled': bool,
#     'track_cwl': bool,
#     'clans': [ string ],
#     'clan_configs': {
#         string: {
#             'announce_channel_id': int,
#             'leaderboard_channel_id': int,
#             'mention_targets': [ string ],
#             'reminders_enabled': bool
#             }
#         }
#     }

class MotorClient():
    """
    Holds the Mongo database the tracker reads and writes.
    """
    def __init__(self,database:motor.motor_asyncio.AsyncIOMotorDatabase,motor_client:Optional[motor.motor_asyncio.AsyncIOMotorClient]=None):
        self.motor_client = motor_client
        self.database = database

    @classmethod
    async def client_login(cls,login:Dict[str,str],host:str='localhost:27017') -> 'MotorClient':
        """
        Connects with a Red `clash_db` shared token mapping.
        """
        if login.get("dbprimary") is None:
            raise DatabaseLogin()
        if login.get("username") is None:
            raise DatabaseLogin()
        if login.get("password") is None:
            raise DatabaseLogin()

        motor_client = motor.motor_asyncio.AsyncIOMotorClient(
            f'mongodb://{login.get("username")}:{login.get("password")}@{host}/admin',
            uuidRepresentation="pythonLegacy",
            maxPoolSize=100,
            )
        database = motor_client[login.get("dbprimary")]
        LOG.info("Connected to Mongo Database")
        return cls(database,motor_client)

    def close(self):
        if self.motor_client:
            self.motor_client.close()
            LOG.info("Closed Mongo Database Connection")

    @property
    def campaigns(self) -> motor.motor_asyncio.AsyncIOMotorCollection:
        return self.database.db__cwl_campaign
    @property
    def standings(self) -> motor.motor_asyncio.AsyncIOMotorCollection:
        return self.database.db__cwl_round_standing
    @property
    def performance(self) -> motor.motor_asyncio.AsyncIOMotorCollection:
        return self.database.db__cwl_player_performance
    @property
    def guild_config(self) -> motor.motor_asyncio.AsyncIOMotorCollection:
        return self.database.db__cwl_guild_config
