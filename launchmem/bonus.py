from __future__ import annotations

import math
import time

ONE_HOUR_MS = 60 * 60 * 1000
SIX_HOURS_MS = 6 * ONE_HOUR_MS
ONE_DAY_MS = 24 * ONE_HOUR_MS

MAX_FREQUENCY_BONUS = 100
MAX_RECENCY_BONUS = 50
RECENCY_TTL_DAYS = 7

MAX_FILE_LAST_USED_BONUS = 100
FILE_LAST_USED_TTL_DAYS = 7
FILE_LAST_USED_HALF_LIFE_MS = SIX_HOURS_MS
LAST_USED_PROPORTION_AT_6H = 0.5
LAST_USED_PROPORTION_AT_24H = 0.2


def _now_ms() -> int:
    return int(time.time() * 1000)


def frequency_bonus(count: int) -> int:
    """Logarithmic usage-count bonus: 0 -> 0, 1 -> 15, 9 -> 50, 99+ -> 100."""

    if count <= 0:
        return 0
    bonus = math.floor(math.log10(count + 1) * (MAX_FREQUENCY_BONUS / 2))
    return min(bonus, MAX_FREQUENCY_BONUS)


def recency_bonus(last_used_ms: float, now_ms: float | None = None) -> int:
    """Full bonus within a day of use, then linear decay to 0 after a week."""

    now_ms = _now_ms() if now_ms is None else now_ms
    age = now_ms - last_used_ms
    if age < ONE_DAY_MS:
        return MAX_RECENCY_BONUS
    ttl_ms = RECENCY_TTL_DAYS * ONE_DAY_MS
    if age >= ttl_ms:
        return 0
    ratio = 1 - (age - ONE_DAY_MS) / (ttl_ms - ONE_DAY_MS)
    return math.floor(ratio * MAX_RECENCY_BONUS)


def total_bonus(count: int, last_used_ms: float, now_ms: float | None = None) -> int:
    return frequency_bonus(count) + recency_bonus(last_used_ms, now_ms)


def file_last_used_bonus(last_used_ms: float, now_ms: float | None = None) -> int:
    """Bonus for a file's own last-used time, with a hybrid decay.

    0-6h: exponential decay with a 6 hour half-life (max -> 50%).
    6-24h: linear 50% -> 20%.
    1-7 days: linear 20% -> 0.
    """

    now_ms = _now_ms() if now_ms is None else now_ms
    age = now_ms - last_used_ms
    if age <= 0:
        return MAX_FILE_LAST_USED_BONUS
    ttl_ms = FILE_LAST_USED_TTL_DAYS * ONE_DAY_MS
    if age >= ttl_ms:
        return 0

    value_at_6h = math.floor(MAX_FILE_LAST_USED_BONUS * LAST_USED_PROPORTION_AT_6H)
    value_at_24h = math.floor(MAX_FILE_LAST_USED_BONUS * LAST_USED_PROPORTION_AT_24H)

    if age < SIX_HOURS_MS:
        decay = math.log(2) / FILE_LAST_USED_HALF_LIFE_MS
        return math.floor(MAX_FILE_LAST_USED_BONUS * math.exp(-decay * age))
    if age < ONE_DAY_MS:
        ratio = 1 - (age - SIX_HOURS_MS) / (ONE_DAY_MS - SIX_HOURS_MS)
        return math.floor(value_at_24h + ratio * (value_at_6h - value_at_24h))
    ratio = 1 - (age - ONE_DAY_MS) / (ttl_ms - ONE_DAY_MS)
    return math.floor(ratio * value_at_24h)
