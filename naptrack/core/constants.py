"""Sleep-schedule thresholds, transition defaults, and app-level tuning constants."""

# ── TIME ─────────────────────────────────────────────────────────────────────
# Duration token units -> milliseconds ("15m", "7d", ...)
DURATION_UNIT_MS = {
    "s": 1000,
    "m": 60 * 1000,
    "h": 60 * 60 * 1000,
    "d": 24 * 60 * 60 * 1000,
}


# ── SCHEDULE CONFIGURATION BOUNDS ───────────────────────────────────────────
# Ranges accepted when a caregiver saves a schedule.
WAKE_WINDOW_MIN_MINUTES = 30
WAKE_WINDOW_MAX_MINUTES = 480
NAP_DURATION_MIN_MINUTES = 15
NAP_DURATION_MAX_MINUTES = 240
DAY_SLEEP_CAP_MAX_MINUTES = 720

# Crib rule applies to naps only, never to bedtime.
MINIMUM_CRIB_MINUTES_DEFAULT = 60
MINIMUM_CRIB_MINUTES_MIN = 30
MINIMUM_CRIB_MINUTES_MAX = 180

REMINDER_MINUTES_MIN = 5
REMINDER_MINUTES_MAX = 120
WAKE_DEADLINE_REMINDER_MINUTES_MAX = 60
NAP_REMINDER_MINUTES_DEFAULT = 30
BEDTIME_REMINDER_MINUTES_DEFAULT = 30
WAKE_DEADLINE_REMINDER_MINUTES_DEFAULT = 15

NAPS_PER_SCHEDULE = {
    "THREE_NAP": 3,
    "TWO_NAP": 2,
    "ONE_NAP": 1,
    "TRANSITION": 1,
}


# ── RECOMMENDATION ENGINE ───────────────────────────────────────────────────
# Bedtime wake window when the schedule has none for the slot after the last nap.
BEDTIME_WAKE_WINDOW_FALLBACK = (210, 270)
# Nap 2/3 wake window when the schedule leaves it unset.
NAP_WAKE_WINDOW_FALLBACK = (150, 210)

# Fallback nap durations when a schedule leaves max duration unset.
NAP_MAX_DURATION_FALLBACK = 120
SINGLE_NAP_MAX_DURATION_FALLBACK = 180

# A nap shorter than max duration by more than this fraction counts as sleep debt.
SLEEP_DEBT_SHORTFALL_FRACTION = 0.2
SLEEP_DEBT_BEDTIME_SHIFT_MINUTES = 15

# During a transition the single-nap slot is currentNapTime ± this tolerance.
TRANSITION_NAP_TOLERANCE_MINUTES = 15

# Nap 2 may run longer than its cap when nap 1 was shorter than this.
SHORT_NAP_MINUTES = 60


# ── SESSION AGGREGATION ─────────────────────────────────────────────────────
HISTORY_WINDOW_DAYS_DEFAULT = 7
GOOD_NAP_MINUTES = 90

# Ad-hoc (car, stroller) naps: no credit below this much sleep, half credit above.
AD_HOC_MIN_CREDIT_MINUTES = 15

# Logged sessions
SESSION_NAP_NUMBER_MAX = 3
SESSION_NOTES_MAX_CHARS = 500


# ── 2-TO-1 NAP TRANSITION ───────────────────────────────────────────────────
# Standard pace: ~6 weeks, nap held at 11:30 for weeks 1-2, then pushed
# 15 minutes every 3-7 days until the goal start time.
# Fast-track: ≤ 4 weeks, may open at 12:00 when an 11:30 trial goes well,
# then pushes every 2-3 days.
TRANSITION_START_NAP_TIME = "11:30"
TRANSITION_FAST_TRACK_NAP_TIME = "12:00"
TRANSITION_GOAL_NAP_TIME = "12:30"
TRANSITION_GOAL_NAP_END_BY = "15:00"
TRANSITION_GOAL_MAX_NAP_MINUTES = 150
TRANSITION_CRIB_RULE_MINUTES = 90
TRANSITION_MAX_WAKE_WINDOW_MINUTES = 330
TRANSITION_PUSH_MINUTES = 15
TRANSITION_PUSH_INTERVAL_DAYS = (3, 7)
TRANSITION_FAST_PUSH_INTERVAL_DAYS = (2, 3)
TRANSITION_BEDTIME_WAKE_WINDOW = (240, 300)
TRANSITION_TEMPORARY_MAX_WAKE_TIME = "08:00"
TRANSITION_HOLD_DAYS = 14
TRANSITION_TARGET_WEEKS_DEFAULT = 6
TRANSITION_TARGET_WEEKS_MIN = 2
TRANSITION_TARGET_WEEKS_MAX = 12
TRANSITION_FAST_TRACK_MAX_WEEKS = 4
TRANSITION_EXPECTED_WEEKS = (4, 6)
TRANSITION_NOTES_MAX_CHARS = 500

# Readiness evidence over the trailing window.
PUSH_MIN_GOOD_NAPS = 3
PUSH_MIN_TOTAL_NAPS = 5
FAST_TRACK_MIN_GOOD_NAPS = 2
