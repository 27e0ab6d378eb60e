from fastapi import Depends
from services.cache import get_cache_client
from services.stats import get_distribution
from auth.security import get_current_client
from data.database import get_db
from config import config


def get_stats_distribution():
    return get_distribution(config.stats_backend)


# --- DEPENDENCY INJECTION SETUP ---
CLIENT_AUTH = Depends(get_current_client)
DB_DEPENDENCY = Depends(get_db)
CACHE_CLIENT = Depends(get_cache_client)
STATS_DISTRIBUTION = Depends(get_stats_distribution)
