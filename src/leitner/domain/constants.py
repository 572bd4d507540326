"""Centralized constants for the Leitner scheduler.

All magic numbers and configuration defaults live here so every layer
imports from a single source of truth.
"""

# ---------- Boxes ----------
MIN_BOX = 1
MAX_BOX = 5
BOX_NUMBERS = tuple(range(MIN_BOX, MAX_BOX + 1))

# ---------- Intervals ----------
DEFAULT_REVIEW_INTERVALS = (1, 2, 3, 7, 21)  # days for boxes 1..5

# ---------- Review log ----------
QUALITY_CORRECT = 5
QUALITY_INCORRECT = 1

# ---------- Session points ----------
POINTS_PER_CORRECT = 10
POINTS_PER_INCORRECT = 2
PERFECT_SESSION_BONUS = 50
GREAT_SESSION_BONUS = 25
GREAT_SESSION_RATE = 70.0  # percent
BONUS_MIN_CARDS = 5

# ---------- Store / HTTP ----------
REQUEST_TIMEOUT = 30.0
CARDS_TABLE = "flashcards"
REVIEWS_TABLE = "card_reviews"
ACTIVE_SUBJECTS_TABLE = "user_subjects"

# ---------- HTTP sessions ----------
SESSION_IDLE_TIMEOUT = 1800.0  # seconds
FINISHED_SESSION_TIMEOUT = 300.0  # completed or depleted, waiting for the summary read
