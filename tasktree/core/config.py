from os import getenv


class Settings:
    APP_NAME = getenv("APP_NAME", "TaskTree API")
    DATABASE_URL = getenv("DATABASE_URL", "postgresql+psycopg://tasktree:tasktree@db:5432/tasktree")
    SQL_ECHO = getenv("SQL_ECHO", "false").lower() in ("1", "true", "yes")
    LOG_LEVEL = getenv("LOG_LEVEL", "INFO").upper()

    # Pagination de l'historique
    ACTIVITY_PAGE_SIZE = int(getenv("ACTIVITY_PAGE_SIZE", "50"))
    ACTIVITY_MAX_PAGE_SIZE = int(getenv("ACTIVITY_MAX_PAGE_SIZE", "100"))

settings = Settings()
