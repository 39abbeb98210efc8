import os


DATA_DIR = os.getenv("FRIDAY_DATA_DIR", os.path.join(os.getcwd(), "data"))
CLAWDBOT_HOME = os.getenv("CLAWDBOT_HOME", os.path.join(os.path.expanduser("~"), ".clawdbot"))


class Config:
    DATA_DIR = DATA_DIR
    DATABASE_PATH = os.getenv("FRIDAY_DB_PATH", os.path.join(DATA_DIR, "tasks.db"))
    INBOX_PATH = os.getenv("FRIDAY_INBOX_PATH", os.path.join(DATA_DIR, "friday-inbox.json"))

    # external, read-only sources
    CRON_JOBS_PATH = os.getenv("FRIDAY_CRON_JOBS_PATH", os.path.join(CLAWDBOT_HOME, "cron", "jobs.json"))
    AGENTS_DIR = os.getenv("FRIDAY_AGENTS_DIR", os.path.join(CLAWDBOT_HOME, "agents"))

    ADMIN_PASSWORD = os.getenv("FRIDAY_ADMIN_PASSWORD", "")
    TOKEN_TTL_SECONDS = int(os.getenv("FRIDAY_TOKEN_TTL_SECONDS", 7 * 24 * 60 * 60))

    USAGE_CACHE_TTL_SECONDS = int(os.getenv("FRIDAY_USAGE_CACHE_TTL_SECONDS", 5 * 60))
    USAGE_MAX_FILES = int(os.getenv("FRIDAY_USAGE_MAX_FILES", 0)) or None

    HUMAN_ASSIGNEE = os.getenv("FRIDAY_HUMAN_ASSIGNEE", "zhilong")
    AGENT_ASSIGNEE = os.getenv("FRIDAY_AGENT_ASSIGNEE", "friday")

    CORS_ORIGINS = os.getenv("FRIDAY_CORS_ORIGINS", "*")
    LOG_LEVEL = os.getenv("FRIDAY_LOG_LEVEL", "INFO")
    LOG_DIR = os.getenv("FRIDAY_LOG_DIR") or None
    PORT = int(os.getenv("PORT", 4747))
