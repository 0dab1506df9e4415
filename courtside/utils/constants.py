"""
Constants used across the court rotation system.
"""

# Rotation limits
MIN_PLAYERS_TO_START = 4
PLAYERS_PER_TEAM = 2
PLAYERS_PER_MATCH = PLAYERS_PER_TEAM * 2
MIN_COURTS = 1
MAX_COURTS = 10

# One shuttle used in a game is split evenly between the four players
SHUTTLE_SPLIT = PLAYERS_PER_MATCH
SHARE_QUANTUM = 4  # shares are kept in quarters

# Identifier prefixes
PLAYER_ID_PREFIX = "p-"
MATCH_ID_PREFIX = "m-"
COURT_ID_PREFIX = "court-"

DEFAULT_COURT_NAME = "Court {number}"
