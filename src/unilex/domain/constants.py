"""Centralized constants for the practice engine.

Scheduler policy defaults and recap thresholds live here so every layer
imports from a single source of truth.
"""

# ---------- SM-2 Scheduler ----------
INITIAL_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
MAX_EASE_FACTOR = 3.0
MIN_EASE_GAIN = 0.02
MIN_INTERVAL_HOURS = 24
SECOND_INTERVAL_HOURS = 6 * MIN_INTERVAL_HOURS
MAX_INTERVAL_HOURS = 365 * 24
PRIORITY_INTERVAL_HOURS = 2
PASS_SCORE = 0.5

# ---------- Recap ----------
RECAP_ACCURACY_THRESHOLD = 0.85
STRENGTH_SCORE = 0.75
FOCUS_SCORE = 0.7
MAX_INSIGHTS = 2

# ---------- Mastery ----------
RECOGNITION_WEIGHT = 0.4
PRODUCTION_WEIGHT = 0.6
MASTERY_THRESHOLD = 0.8
MASTERY_MIN_CORRECT = 3
MASTERY_MIN_STREAK = 2

# ---------- Sessions ----------
DEFAULT_QUESTION_COUNT = 10
MISSED = "missed"
ALL = "all"
