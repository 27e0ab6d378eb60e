import os
import log
from dotenv import load_dotenv

# Load .env file into environment
load_dotenv()

# 90 days, matches the lifetime of the visitor cookies
DEFAULT_COOKIE_MAX_AGE = 90 * 24 * 60 * 60


def _split_tokens(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [token.strip() for token in raw.split(",") if token.strip()]


class Config:
    def __init__(self):
        self.valkey_host = os.getenv("VALKEY_HOST", "localhost")
        self.valkey_port = int(os.getenv("VALKEY_PORT", 6379))
        self.database_url = os.getenv("DATABASE_URL", "sqlite:///./landing_experiments.db")
        self.log_level = os.getenv("LOG_LEVEL", default="INFO")
        # empty disables the file handler
        self.log_file = os.getenv("LOG_FILE", "landing_experiments.log")
        self.valid_tokens = _split_tokens(os.getenv("VALID_TOKENS"))
        self.celery_broker_url = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/1")
        self.celery_backend_url = os.getenv("CELERY_BACKEND_URL", "redis://localhost:6379/1")

        # "approximate" (erf approximation) or "scipy"
        self.stats_backend = os.getenv("STATS_BACKEND", "approximate")

        self.visitor_cookie_name = os.getenv("VISITOR_COOKIE_NAME", "prisma_visitor_id")
        self.experiment_cookie_name = os.getenv("EXPERIMENT_COOKIE_NAME", "prisma_experiments")
        self.cookie_max_age = int(os.getenv("COOKIE_MAX_AGE", DEFAULT_COOKIE_MAX_AGE))
        self.cookie_secure = os.getenv("COOKIE_SECURE", "false").lower() in ("1", "true", "yes")

        # Call setup_logging when the application starts
        log.setup_logging(self.log_level, self.log_file)

    def __repr__(self):
        return (
            f"<Settings host={self.valkey_host} port={self.valkey_port} loglevel={self.log_level}, "
            f"broker_url:{self.celery_broker_url}, backend_url:{self.celery_backend_url}, "
            f"stats_backend:{self.stats_backend}>"
        )

config = Config()
