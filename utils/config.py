import os
from dotenv import load_dotenv

# Load environment variables from .env before anything reads them
load_dotenv()


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    def __init__(self):
        self.DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./soufra.db")
        self.SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
        self.ALGORITHM = "HS256"
        self.ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 1440))
        # Live view consistency backstop, seconds
        self.ORDERS_REFRESH_INTERVAL = float(os.getenv("ORDERS_REFRESH_INTERVAL", 15))
        self.ATOMIC_ORDER_WRITES = _as_bool(os.getenv("ATOMIC_ORDER_WRITES", "true"))
        self.ENFORCE_STATUS_FLOW = _as_bool(os.getenv("ENFORCE_STATUS_FLOW", "false"))
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


settings = Settings()
