RECENT_WINDOW_DAYS = 28
STREAK_LOOKBACK_DAYS = 365
WEEK_DAYS = 7

MAX_INTENSITY = 4
MAX_PROGRESS_RATIO = 2
MAX_PROGRESS_PERCENT = 200

FREQUENCIES = ["Daily", "Weekly", "Monthly"]
COMPLETION_MODES = ["toggle", "increment"]

HABITS_COLLECTION = "habits"
DAILY_LOGS_COLLECTION = "daily_logs"
LOCAL_RECORDS_TABLE = "local_records"

HABIT_MIRROR_PREFIX = "habit-"
DAILY_LOG_MIRROR_PREFIX = "daily-log-"

RATIO_COLOR_EMPTY = "#1a1d21"
RATIO_COLOR_STEPS = [
    (0.5, "#a7f3d0"),
    (1.0, "#4ade80"),
    (1.5, "#16a34a"),
]
RATIO_COLOR_MAX = "#0b6b36"

BACKUP_APP_NAME = "DailyLog Pro"
BACKUP_VERSION = "1.0"
