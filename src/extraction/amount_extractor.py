"""Total amount extraction from recognized receipt text.

Looks for keyword-anchored totals near the end of the receipt first and
falls back to the largest currency-shaped figure, each tier with its own
confidence so reviewers can tell a sure match from a guess.
"""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from src.capture.models import ExtractedAmount
from src.utils.config import ExtractionConfig
from src.utils.logger import get_logger

logger = get_logger(__name__)

# Thousands-grouped figures ("1.234,56", "1,234.56") or plain ones ("1000", "12.50").
_NUMBER = r"(\d{1,3}(?:[.,]\d{3})+(?:[.,]\d{1,2})?|\d+(?:[.,]\d{1,2})?)(?!\d)"

# Keyword-anchored patterns, highest priority first.
_TOTAL_PATTERNS: list[re.Pattern[str]] = [
    re.compile(
        r"\b(?:importe\s+total|suma\s+total|monto\s+total|gran\s+total|total)"
        r"[\s:]*\$?\s*" + _NUMBER,
        re.IGNORECASE,
    ),
    re.compile(r"(?:^|\s)total[\s:]*\$?\s*" + _NUMBER, re.IGNORECASE),
    re.compile(r"\$\s*" + _NUMBER + r"(?=\s*$|\s+total)", re.IGNORECASE),
]

_GENERIC_PATTERN = re.compile(r"\$?\s*" + _NUMBER)


@dataclass
class AmountCandidate:
    """A plausible total found on one line of the receipt."""

    value: Decimal
    confidence: int
    pattern_index: int
    line_index: int
    line: str


def parse_amount(raw: str) -> Decimal | None:
    """Convert a locale-formatted figure to a ``Decimal``.

    When both ``.`` and ``,`` appear, the last one is the decimal mark.
    A lone separator kind is a decimal mark only if at most two digits
    follow its last occurrence; otherwise it groups thousands.

    Args:
        raw: Figure as recognized, possibly with currency symbols.

    Returns:
        Parsed value, or ``None`` if no number could be read.
    """
    cleaned = re.sub(r"[^\d.,]", "", raw)
    if not any(ch.isdigit() for ch in cleaned):
        return None

    has_dot = "." in cleaned
    has_comma = "," in cleaned
    decimal_mark: str | None = None
    if has_dot and has_comma:
        decimal_mark = "." if cleaned.rfind(".") > cleaned.rfind(",") else ","
    elif has_dot or has_comma:
        separator = "." if has_dot else ","
        if len(cleaned) - cleaned.rfind(separator) - 1 <= 2:
            decimal_mark = separator

    if decimal_mark is None:
        canonical = re.sub(r"[.,]", "", cleaned)
    else:
        integer, _, fraction = cleaned.rpartition(decimal_mark)
        canonical = f"{re.sub(r'[.,]', '', integer) or '0'}.{fraction or '0'}"

    try:
        return Decimal(canonical)
    except InvalidOperation:
        return None


class AmountExtractor:
    """Finds the most probable total due in OCR text.

    Args:
        config: Search window, plausibility bound and scoring constants.
    """

    def __init__(self, config: ExtractionConfig | None = None) -> None:
        self.config = config or ExtractionConfig()

    def extract(self, text: str) -> ExtractedAmount:
        """Extract the total amount with a confidence score.

        Args:
            text: Recognized receipt text, possibly multi-line.

        Returns:
            The best candidate, or a null value with confidence 0.
        """
        window = self.search_window(text)
        if not window:
            return ExtractedAmount.not_found()

        ranked = self.keyword_candidates(window)
        if ranked:
            best = ranked[0]
            logger.info(
                "Total %s found on line %r (confidence %d)",
                best.value,
                best.line,
                best.confidence,
            )
            return ExtractedAmount(
                best.value,
                float(best.confidence),
                self._distinct([c.value for c in ranked]),
            )

        figures = self._plausible_figures(window)
        if figures:
            logger.info("No total keyword, using largest figure %s", figures[0])
            return ExtractedAmount(
                figures[0],
                float(self.config.fallback_confidence),
                self._distinct(figures),
            )

        logger.info("No plausible amount in %d lines", len(window))
        return ExtractedAmount.not_found()

    def search_window(self, text: str) -> list[str]:
        """Return the trailing lines where totals usually appear."""
        lines = [line.strip() for line in text.splitlines()]
        lines = [line for line in lines if line]
        return lines[-self.config.window_lines :]

    def is_plausible(self, value: Decimal | None) -> bool:
        return value is not None and 0 < value < self.config.max_amount

    def score_line(self, line: str) -> int:
        """Score a line holding a keyword-anchored figure."""
        score = self.config.base_confidence
        if "total" in line.lower():
            score += self.config.keyword_bonus
        if "$" in line:
            score += self.config.currency_bonus
        return score

    def keyword_candidates(self, window: list[str]) -> list[AmountCandidate]:
        """Collect keyword-anchored figures, best first.

        Each pattern contributes at most its first plausible match per line.
        Higher score wins; ties favor the earlier pattern, then the later line.
        """
        candidates: list[AmountCandidate] = []
        for pattern_index, pattern in enumerate(_TOTAL_PATTERNS):
            for line_index, line in enumerate(window):
                for match in pattern.finditer(line):
                    value = parse_amount(match.group(1))
                    if not self.is_plausible(value):
                        continue
                    candidates.append(
                        AmountCandidate(
                            value=value,
                            confidence=self.score_line(line),
                            pattern_index=pattern_index,
                            line_index=line_index,
                            line=line,
                        )
                    )
                    break
        return sorted(
            candidates,
            key=lambda c: (-c.confidence, c.pattern_index, -c.line_index),
        )

    def _plausible_figures(self, window: list[str]) -> list[Decimal]:
        figures = []
        for line in window:
            for match in _GENERIC_PATTERN.finditer(line):
                value = parse_amount(match.group(1))
                if self.is_plausible(value):
                    figures.append(value)
        return sorted(figures, reverse=True)

    def _distinct(self, values: list[Decimal]) -> tuple[Decimal, ...]:
        distinct: list[Decimal] = []
        for value in values:
            if value not in distinct:
                distinct.append(value)
        return tuple(distinct[: self.config.max_candidates])
