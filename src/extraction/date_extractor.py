"""Purchase date suggestion from recognized receipt text."""

import re
from datetime import date

from src.utils.logger import get_logger

logger = get_logger(__name__)

# (regex, group order) with day-first dates tried before year-first ones.
_DATE_PATTERNS: list[tuple[re.Pattern[str], tuple[str, str, str]]] = [
    (re.compile(r"\b(\d{1,2})[/\-](\d{1,2})[/\-](\d{4})\b"), ("day", "month", "year")),
    (re.compile(r"\b(\d{4})[/\-](\d{1,2})[/\-](\d{1,2})\b"), ("year", "month", "day")),
]


def extract_date(text: str) -> date | None:
    """Find the first valid calendar date in receipt text.

    Recognizes ``dd/mm/yyyy``, ``dd-mm-yyyy``, ``yyyy/mm/dd`` and
    ``yyyy-mm-dd``. Matches that are not real dates (``31/02/2024``)
    are skipped.

    Args:
        text: Recognized receipt text.

    Returns:
        The first valid date, or ``None``.
    """
    for pattern, order in _DATE_PATTERNS:
        for match in pattern.finditer(text):
            parts = dict(zip(order, (int(g) for g in match.groups())))
            try:
                found = date(parts["year"], parts["month"], parts["day"])
            except ValueError:
                continue
            logger.debug("Suggested date %s from %r", found, match.group(0))
            return found
    return None
