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
    ADMIN_DISCORD_IDS = os.getenv('ADMIN_DISCORD_IDS', '')  # Comma-separated
    
    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///league.db')
    
    # Bot settings
    COMMAND_PREFIX = os.getenv('COMMAND_PREFIX', '!')
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
    
    # Rating settings
    DEFAULT_MU = float(os.getenv('DEFAULT_MU', 25.0))
    DEFAULT_SIGMA = float(os.getenv('DEFAULT_SIGMA', 8.333))
    MIN_SIGMA = float(os.getenv('MIN_SIGMA', 0.5))
    MAX_SIGMA = float(os.getenv('MAX_SIGMA', 10.0))
    MIN_RATING_CHANGE = int(os.getenv('MIN_RATING_CHANGE', 2))
    # Three-way results pull mu movement back towards the prior
    THREE_PLAYER_PENALTY = os.getenv('THREE_PLAYER_PENALTY', 'True').lower() == 'true'
    THREE_PLAYER_PENALTY_FACTOR = float(os.getenv('THREE_PLAYER_PENALTY_FACTOR', 0.9))
    
    # Result confirmation
    RANK_UPVOTES_REQUIRED = int(os.getenv('RANK_UPVOTES_REQUIRED', 3))
    RANK_UPVOTE_EMOJI = os.getenv('RANK_UPVOTE_EMOJI', '👍')
    
    # Decay settings
    DECAY_START_DAYS = int(os.getenv('DECAY_START_DAYS', 6))  # Grace window
    DECAY_SCORE_PER_DAY = int(os.getenv('DECAY_SCORE_PER_DAY', 1))
    DECAY_SCORE_FLOOR = int(os.getenv('DECAY_SCORE_FLOOR', 1050))
    DECAY_SIGMA_STEP = float(os.getenv('DECAY_SIGMA_STEP', 0.01))
    DECAY_SIGMA_STEP_CAP = float(os.getenv('DECAY_SIGMA_STEP_CAP', 2.0))
    DECAY_CHECK_HOURS = int(os.getenv('DECAY_CHECK_HOURS', 24))
    
    # Undo history (1 = single undo slot and single redo slot)
    OPERATION_LOG_DEPTH = int(os.getenv('OPERATION_LOG_DEPTH', 1))
    
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
    def get_admin_ids(cls):
        """Get the set of Discord IDs allowed to run admin commands"""
        admin_ids = set()
        if cls.ADMIN_DISCORD_IDS:
            try:
                admin_ids = {int(admin_id.strip()) for admin_id in cls.ADMIN_DISCORD_IDS.split(',') if admin_id.strip()}
            except ValueError:
                raise ValueError("ADMIN_DISCORD_IDS must be comma-separated integers")
        if cls.OWNER_DISCORD_ID:
            admin_ids.add(cls.OWNER_DISCORD_ID)
        return admin_ids
    
    @classmethod
    def validate(cls):
        """Validate that required configuration is present"""
        if not cls.DISCORD_TOKEN:
            raise ValueError("DISCORD_TOKEN is required")
        if not cls.OWNER_DISCORD_ID:
            raise ValueError("OWNER_DISCORD_ID is required")
        if cls.MIN_SIGMA <= 0 or cls.MIN_SIGMA >= cls.MAX_SIGMA:
            raise ValueError("MIN_SIGMA must be positive and below MAX_SIGMA")
        if cls.OPERATION_LOG_DEPTH < 1:
            raise ValueError("OPERATION_LOG_DEPTH must be at least 1")
