import os

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./reviewtrust.db")

# Access tokens are issued by the hosted identity provider and signed with the
# project's shared JWT secret.
JWT_SECRET = os.getenv("JWT_SECRET", "change-me")
JWT_AUDIENCE = os.getenv("JWT_AUDIENCE", "authenticated")
JWT_ALGORITHMS = ["HS256"]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_JSON = os.getenv("LOG_JSON", "false").lower() in ("1", "true", "yes")

REVIEWS_PAGE_SIZE = int(os.getenv("REVIEWS_PAGE_SIZE", "5"))
EXPLORE_PAGE_SIZE = int(os.getenv("EXPLORE_PAGE_SIZE", "10"))
SUGGESTION_LIMIT = int(os.getenv("SUGGESTION_LIMIT", "5"))
SUGGESTION_DEBOUNCE_MS = int(os.getenv("SUGGESTION_DEBOUNCE_MS", "300"))
