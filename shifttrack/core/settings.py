import os
from typing import List


def env_str(name: str, default: str) -> str:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    return v.strip()


def env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return int(v)
    except ValueError:
        return default


def env_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return float(v)
    except ValueError:
        return default


def env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    return v.strip() not in {"0", "false", "False", "no", "NO"}


def env_list(name: str, default: List[str]) -> List[str]:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return list(default)
    return [part.strip() for part in v.split(",") if part.strip()]


def business_timezone_name() -> str:
    return env_str("BUSINESS_TIMEZONE", "Europe/Bucharest")


def gps_tracked_departments() -> List[str]:
    return env_list("GPS_TRACKED_DEPARTMENTS", ["Intretinere Parcari", "Control"])


def gps_silence_threshold_minutes() -> int:
    return env_int("GPS_SILENCE_THRESHOLD_MINUTES", 30)


def compliance_tolerance_minutes() -> int:
    return env_int("COMPLIANCE_TOLERANCE_MINUTES", 15)
