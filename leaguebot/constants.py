"""
League-wide constants for the rating bot.

Tunable values (grace window, floor, approval count) live in Config; the values
here define the public score scale and identifiers and must not change once a
league has data.
"""

class RatingConstants:
    """Constants of the mu/sigma to display score conversion."""
    
    # score = BASE_SCORE + (mu - MU_BASELINE) * MU_SCALE - (sigma - SIGMA_BASELINE) * SIGMA_SCALE
    BASE_SCORE = 1000
    MU_BASELINE = 25.0
    MU_SCALE = 12.0
    SIGMA_BASELINE = 8.333
    SIGMA_SCALE = 4.0
    
    # Outcome ranks fed to the rating model (lower is better)
    WIN_RANK = 1
    DRAW_RANK = 2
    LOSS_RANK = 3

class ContestConstants:
    """Constants for contest identifiers and ordering."""
    
    # 3 random bytes -> 6 uppercase hex characters
    ID_BYTES = 3
    MAX_ID_ATTEMPTS = 100
    FALLBACK_ID_LENGTH = 8
    RESERVED_IDS = frozenset({"0", "000000"})
    
    # First sequence number handed out in an empty league
    FIRST_SEQUENCE = 1.0
    
    # Closed (confirmed or disabled) submissions remembered so late approvals stay no-ops
    CLOSED_SUBMISSION_LIMIT = 1000

class AuditConstants:
    """Default page sizes for audit queries."""
    
    TARGET_HISTORY_LIMIT = 50
    GLOBAL_HISTORY_LIMIT = 100
    ADMIN_HISTORY_LIMIT = 50

class UIConstants:
    """Constants for Discord UI elements."""
    
    # Embed colors
    DEFAULT_EMBED_COLOR = 0x3498db  # Blue
    ERROR_COLOR = 0xe74c3c         # Red for errors
    SUCCESS_COLOR = 0x2ecc71       # Green for success
    WARNING_COLOR = 0xf39c12       # Orange for no-op results
    
    DECAY_EMOJI = "⏳"
    UNDO_EMOJI = "↩️"
    REDO_EMOJI = "↪️"
