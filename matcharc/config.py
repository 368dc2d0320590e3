import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Bot configuration settings"""

    # Discord settings
    DISCORD_TOKEN = os.getenv('DISCORD_TOKEN')
    DISCORD_GUILD_ID = int(os.getenv('DISCORD_GUILD_ID', 0))
    DISCORD_GUILD_IDS = os.getenv('DISCORD_GUILD_IDS', '')  # Comma-separated for multi-guild support
    OWNER_DISCORD_ID = int(os.getenv('OWNER_DISCORD_ID', 0))

    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///matcharc.db')

    # Bot settings
    COMMAND_PREFIX = os.getenv('COMMAND_PREFIX', '!')
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'

    # Match flow settings
    CHECK_IN_WINDOW_MINUTES = int(os.getenv('CHECK_IN_WINDOW_MINUTES', 10))

    # start.gg settings
    STARTGG_API_KEY = os.getenv('STARTGG_API_KEY')
    STARTGG_API_URL = os.getenv('STARTGG_API_URL', 'https://api.start.gg/gql/alpha')
    STARTGG_TIMEOUT_SECONDS = float(os.getenv('STARTGG_TIMEOUT_SECONDS', 30))

    # Result sync settings
    SYNC_MAX_RETRIES = int(os.getenv('SYNC_MAX_RETRIES', 3))          # Rate-limit retries per attempt
    SYNC_BASE_DELAY_SECONDS = float(os.getenv('SYNC_BASE_DELAY_SECONDS', 1))
    SYNC_MAX_DELAY_SECONDS = float(os.getenv('SYNC_MAX_DELAY_SECONDS', 30))
    SYNC_MAX_ATTEMPTS = int(os.getenv('SYNC_MAX_ATTEMPTS', 5))        # Sweep gives up after this many attempts
    SYNC_RETRY_INTERVAL_MINUTES = int(os.getenv('SYNC_RETRY_INTERVAL_MINUTES', 15))
    SYNC_STALE_PENDING_MINUTES = int(os.getenv('SYNC_STALE_PENDING_MINUTES', 30))

    @classmethod
    def get_guild_ids(cls):
        """Get list of guild IDs for command syncing"""
        if cls.DISCORD_GUILD_IDS:
            try:
                return [int(guild_id.strip()) for guild_id in cls.DISCORD_GUILD_IDS.split(',') if guild_id.strip()]
            except ValueError:
                raise ValueError("DISCORD_GUILD_IDS must be comma-separated integers")
        elif cls.DISCORD_GUILD_ID:
            return [cls.DISCORD_GUILD_ID]
        else:
            # Global sync
            return []

    @classmethod
    def validate(cls):
        """Validate that required configuration is present"""
        if not cls.DISCORD_TOKEN:
            raise ValueError("DISCORD_TOKEN is required")
        if not cls.DISCORD_GUILD_ID and not cls.DISCORD_GUILD_IDS:
            raise ValueError("Either DISCORD_GUILD_ID or DISCORD_GUILD_IDS is required")
        if not cls.OWNER_DISCORD_ID:
            raise ValueError("OWNER_DISCORD_ID is required")
        if cls.SYNC_MAX_ATTEMPTS < 1:
            raise ValueError("SYNC_MAX_ATTEMPTS must be at least 1")
