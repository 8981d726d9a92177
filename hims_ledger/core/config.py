# hims_ledger/core/config.py
import os
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


def _split_csv(value: str) -> List[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


class Settings(BaseModel):
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "HIMS Patient Ledger")

    # ---------- Time ----------
    # hospital wall-clock zone; naive SQL timestamps are read in this zone
    TIMEZONE: str = os.getenv("TIMEZONE", "Asia/Kolkata")
    # display zones that get the fixed +5:30 correction instead of tzdata
    IST_CORRECTION_ZONES: List[str] = _split_csv(
        os.getenv("IST_CORRECTION_ZONES", "Asia/Kolkata,IST"))
    IST_CORRECTION_MINUTES: int = int(
        os.getenv("IST_CORRECTION_MINUTES", "330"))

    # ---------- Daily receipt counter ----------
    COUNTER_BASE_URL: str = os.getenv("COUNTER_BASE_URL",
                                      "http://127.0.0.1:5000/api")
    COUNTER_TIMEOUT: float = float(os.getenv("COUNTER_TIMEOUT", "5"))
    COUNTER_AUTH_TOKEN: str = os.getenv("COUNTER_AUTH_TOKEN", "")
    COUNTER_ENABLED: bool = _flag("COUNTER_ENABLED", "true")

    # ---------- Documents ----------
    CURRENCY_SYMBOL: str = os.getenv("CURRENCY_SYMBOL", "₹")
    HOSPITAL_NAME: str = os.getenv("HOSPITAL_NAME", "City General Hospital")
    HOSPITAL_ADDRESS: str = os.getenv("HOSPITAL_ADDRESS", "")
    HOSPITAL_PHONE: str = os.getenv("HOSPITAL_PHONE", "")
    HOSPITAL_EMAIL: str = os.getenv("HOSPITAL_EMAIL", "")
    HOSPITAL_REGISTRATION_NUMBER: str = os.getenv(
        "HOSPITAL_REGISTRATION_NUMBER", "")

    # ---------- Logging ----------
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: str = os.getenv("LOG_FILE", "")


settings = Settings()
