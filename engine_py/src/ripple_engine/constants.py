"""Game constants"""

import os

# Phases
PHASE_SETUP = "setup"
PHASE_SPEAKING = "speaking"
PHASE_LISTENING = "listening"
PHASE_ENDGAME = "endgame"

PHASES = [PHASE_SETUP, PHASE_SPEAKING, PHASE_LISTENING, PHASE_ENDGAME]
TURN_PHASES = [PHASE_SPEAKING, PHASE_LISTENING]

# Card zones
ZONE_UNDEALT = "undealt"
ZONE_HAND = "hand"
ZONE_SELECTED = "selected"
ZONE_DISCARD = "discard"

ZONES = [ZONE_UNDEALT, ZONE_HAND, ZONE_SELECTED, ZONE_DISCARD]
OWNED_ZONES = [ZONE_HAND, ZONE_SELECTED]

# Derived player status
STATUS_DRAWING = "drawing"
STATUS_CHOOSING = "choosing"
STATUS_BROWSING = "browsing"
STATUS_SPEAKING = "speaking"
STATUS_LISTENING = "listening"
STATUS_DONE = "done"

# Exchange request status
EXCHANGE_PENDING = "pending"
EXCHANGE_ACCEPTED = "accepted"
EXCHANGE_DECLINED = "declined"

EXCHANGE_TERMINAL = [EXCHANGE_ACCEPTED, EXCHANGE_DECLINED]

# Reactions
REACTION_INSPIRING = "inspiring"
REACTION_RESONATES = "resonates"
REACTION_METOO = "metoo"
REACTION_TELLMEMORE = "tellmemore"

REACTION_TYPES = [
    REACTION_INSPIRING,
    REACTION_RESONATES,
    REACTION_METOO,
    REACTION_TELLMEMORE,
]

RIPPLE_TAG = "ripple"

# Game modes
MODE_IRL = "irl"
MODE_REMOTE = "remote"

CARD_DEPTHS = [1, 2, 3]

INITIAL_CARDS_PER_PLAYER = int(os.getenv("RIPPLE_CARDS_PER_PLAYER", "3"))
DEFAULT_TOTAL_ROUNDS = 1
