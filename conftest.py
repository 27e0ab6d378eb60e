import os

# config.Config reads the environment once at import time, so the test
# settings must be in place before any test module imports the app.
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["VALID_TOKENS"] = "fake-client-token"
os.environ["VALKEY_HOST"] = ""  # empty host selects the in-memory cache backend
os.environ["STATS_BACKEND"] = "approximate"
os.environ["LOG_FILE"] = ""
