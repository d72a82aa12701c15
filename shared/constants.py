"""
Game constants for the quiz and board rooms.
All monetary values are in board-game dollars, all durations in seconds.
"""

# Rooms
ROOM_LIMITS = {
    "quiz": 8,
    "board": 6,
}
ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ROOM_CODE_LENGTH = 5
SESSION_TTL_SECONDS = 24 * 60 * 60
AI_HOST_NAME = "AI HOST"
PIECE_COLORS = ("red", "blue", "green", "yellow", "purple", "orange")

# Quiz timings
ANSWER_SECONDS = 5
DRAWING_SECONDS = 30
AUTO_ADVANCE_SECONDS = 5

# Quiz scoring
DEFAULT_TARGET_SCORE = 10
MIN_TARGET_SCORE = 5
MAX_TARGET_SCORE = 50
VOTE_THRESHOLD_RATIO = 0.5

# Board
BOARD_SIZE = 40
STARTING_CASH = 1500
GO_SALARY = 200
JAIL_POSITION = 10
JAIL_FINE = 50
MAX_JAIL_TURNS = 3
MAX_CONSECUTIVE_DOUBLES = 3
MAX_HOUSES_PER_PROPERTY = 4
HOTEL_DEVELOPMENT_LEVEL = 5
TURN_SECONDS = 45
DEFAULT_DICE_TOTAL = 7

# Tile data structure
# Format: (position, name, kind, price, color, rents, house_price)
# Property rents are: [base, 1house, 2houses, 3houses, 4houses, hotel]
# Railroad rents are indexed by railroads owned minus one
CLASSIC_TILES = [
    # Special tiles
    (0, "GO", "go", None, None, None, None),
    (10, "Jail / Just Visiting", "jail", None, None, None, None),
    (20, "Free Parking", "free_parking", None, None, None, None),
    (30, "Go To Jail", "go_to_jail", None, None, None, None),

    # Brown properties
    (1, "Mediterranean Avenue", "property", 60, "brown", [2, 10, 30, 90, 160, 250], 50),
    (3, "Baltic Avenue", "property", 60, "brown", [4, 20, 60, 180, 320, 450], 50),

    # Light blue properties
    (6, "Oriental Avenue", "property", 100, "light_blue", [6, 30, 90, 270, 400, 550], 50),
    (8, "Vermont Avenue", "property", 100, "light_blue", [6, 30, 90, 270, 400, 550], 50),
    (9, "Connecticut Avenue", "property", 120, "light_blue", [8, 40, 100, 300, 450, 600], 50),

    # Pink properties
    (11, "St. Charles Place", "property", 140, "pink", [10, 50, 150, 450, 625, 750], 100),
    (13, "States Avenue", "property", 140, "pink", [10, 50, 150, 450, 625, 750], 100),
    (14, "Virginia Avenue", "property", 160, "pink", [12, 60, 180, 500, 700, 900], 100),

    # Orange properties
    (16, "St. James Place", "property", 180, "orange", [14, 70, 200, 550, 750, 950], 100),
    (18, "Tennessee Avenue", "property", 180, "orange", [14, 70, 200, 550, 750, 950], 100),
    (19, "New York Avenue", "property", 200, "orange", [16, 80, 220, 600, 800, 1000], 100),

    # Red properties
    (21, "Kentucky Avenue", "property", 220, "red", [18, 90, 250, 700, 875, 1050], 150),
    (23, "Indiana Avenue", "property", 220, "red", [18, 90, 250, 700, 875, 1050], 150),
    (24, "Illinois Avenue", "property", 240, "red", [20, 100, 300, 750, 925, 1100], 150),

    # Yellow properties
    (26, "Atlantic Avenue", "property", 260, "yellow", [22, 110, 330, 800, 975, 1150], 150),
    (27, "Ventnor Avenue", "property", 260, "yellow", [22, 110, 330, 800, 975, 1150], 150),
    (29, "Marvin Gardens", "property", 280, "yellow", [24, 120, 360, 850, 1025, 1200], 150),

    # Green properties
    (31, "Pacific Avenue", "property", 300, "green", [26, 130, 390, 900, 1100, 1275], 200),
    (32, "North Carolina Avenue", "property", 300, "green", [26, 130, 390, 900, 1100, 1275], 200),
    (34, "Pennsylvania Avenue", "property", 320, "green", [28, 150, 450, 1000, 1200, 1400], 200),

    # Dark blue properties
    (37, "Park Place", "property", 350, "dark_blue", [35, 175, 500, 1100, 1300, 1500], 200),
    (39, "Boardwalk", "property", 400, "dark_blue", [50, 200, 600, 1400, 1700, 2000], 200),

    # Railroads
    (5, "Reading Railroad", "railroad", 200, None, [25, 50, 100, 200], None),
    (15, "Pennsylvania Railroad", "railroad", 200, None, [25, 50, 100, 200], None),
    (25, "B & O Railroad", "railroad", 200, None, [25, 50, 100, 200], None),
    (35, "Short Line", "railroad", 200, None, [25, 50, 100, 200], None),

    # Utilities
    (12, "Electric Company", "utility", 150, None, None, None),
    (28, "Water Works", "utility", 150, None, None, None),

    # Tax tiles
    (4, "Income Tax", "tax", 200, None, None, None),
    (38, "Luxury Tax", "tax", 100, None, None, None),

    # Card tiles
    (2, "Community Chest", "chest", None, None, None, None),
    (17, "Community Chest", "chest", None, None, None, None),
    (33, "Community Chest", "chest", None, None, None, None),
    (7, "Chance", "chance", None, None, None, None),
    (22, "Chance", "chance", None, None, None, None),
    (36, "Chance", "chance", None, None, None, None),
]

# Utility rent multipliers
UTILITY_MULTIPLIERS = {
    1: 4,   # One utility owned: 4x dice
    2: 10,  # Both utilities owned: 10x dice
}
