import os

# purpose: environment-driven settings shared by services, routes and workers
# status: active

SECRET_KEY = os.getenv("SECRET_KEY", "change-me-in-production")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

RECALL_NUMBER_PREFIX = os.getenv("RECALL_NUMBER_PREFIX", "RCL")
RECALL_NUMBER_MAX_ATTEMPTS = int(os.getenv("RECALL_NUMBER_MAX_ATTEMPTS", "10"))

DEFAULT_CALIBRATION_INTERVAL_DAYS = int(os.getenv("DEFAULT_CALIBRATION_INTERVAL_DAYS", "365"))
DUE_SOON_DAYS = int(os.getenv("DUE_SOON_DAYS", "7"))

DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "15"))
MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "100"))

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if origin.strip()
]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR = os.getenv("LOG_DIR")

SENTRY_DSN = os.getenv("SENTRY_DSN")


def testing() -> bool:
    return os.getenv("TESTING") == "1"
