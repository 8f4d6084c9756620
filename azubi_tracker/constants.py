"""Central constants for Streamlit session state keys and defaults."""

SS_USER: str = "user"
SS_TASKS: str = "tasks"
SS_FILES: str = "files"
SS_PROGRESS: str = "progress"
SS_REPORT: str = "report_session"
SS_QUIZ: str = "quiz_session"
SS_CHAT: str = "chat_messages"
SS_CHAT_CANCEL: str = "chat_cancel_requested"
SS_NEEDS_SYNC: str = "needs_sync"
SS_STORAGE: str = "storage_backend"

CUSTOM_API_KEY: str = "custom_api_key"
NAVIGATION_KEY: str = "navigation"

XP_PER_LEVEL: int = 100
XP_TASK_COMPLETED: int = 50
XP_QUIZ_CORRECT: int = 20
XP_QUIZ_FINISHED: int = 50
XP_REPORT_COMPLETED: int = 100

MAX_INLINE_FILE_BYTES: int = 500 * 1024
MAX_REMOTE_FILE_BYTES: int = 50 * 1024 * 1024
SIGNED_URL_TTL_SECONDS: int = 60 * 60 * 24

DEFAULT_TOTAL_HOURS: str = "40"
MIN_PASSWORD_LENGTH: int = 6
MIN_NAME_LENGTH: int = 2
