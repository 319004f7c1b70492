"""
Expression Rules - Deterministic rewriting of caregiver shorthand

Responsibilities:
- Turn casual vehicle shorthand into the formal record wording
  ("車で" -> "電車で", "車両" -> "バス")
- Collapse "park + playground equipment" sentences into a fixed phrase
- Never mangle literal vehicle words (車椅子, 自転車, 電車, バス)

Design principles:
- Pure and total: any input (including None) yields a string
- Protected words are swapped for placeholders before the blanket rules
  run, on every invocation, so re-applying to rewritten text is a no-op
- One length-preserving placeholder per match occurrence, restored in
  recording order
"""

import re
from typing import List, Optional, Tuple

# Protected in this order; each word is scanned over the whole text
PROTECTED_WORDS = ("車椅子", "自転車", "電車", "バス")

VEHICLE_WORD = "車両"
VEHICLE_REPLACEMENT = "バス"

CAR_CHAR = "車"
CAR_REPLACEMENT = "電車"

# 公園 followed by 遊具 within 20 chars, without crossing a sentence end
PARK_PATTERN = re.compile(r"公園[^。！？\n]{0,20}遊具[^。！？\n]*")
PARK_REPLACEMENT = "公園を散歩した"

# Private-use code points cannot appear in ordinary caregiver text
_PLACEHOLDER_BASE = 0xE000


def _placeholder(index: int, word: str) -> str:
    # Same length as the word so the park window counts original characters
    return chr(_PLACEHOLDER_BASE + index) * len(word)


def _protect(text: str, placeholders: List[Tuple[str, str]]) -> str:
    """Replace every protected word occurrence with a unique placeholder"""
    for word in PROTECTED_WORDS:
        pattern = re.compile(re.escape(word))

        def _stash(match: "re.Match[str]") -> str:
            token = _placeholder(len(placeholders), match.group(0))
            placeholders.append((token, match.group(0)))
            return token

        text = pattern.sub(_stash, text)
    return text


def _restore(text: str, placeholders: List[Tuple[str, str]]) -> str:
    for token, original in placeholders:
        text = text.replace(token, original)
    return text


def apply_expression_rules(text: Optional[str]) -> str:
    """
    Rewrite free text into record wording.

    Steps (each a full-text scan):
    1. Protect 車椅子 / 自転車 / 電車 / バス with placeholders
    2. 車両 -> バス
    3. standalone 車 -> 電車
    4. 公園 ... 遊具 ... (same sentence) -> 公園を散歩した
    5. Restore placeholders

    Args:
        text: Destination, memo or assembled narrative text

    Returns:
        str: Rewritten text ('' for None/empty input)

    Examples:
        >>> apply_expression_rules("車で行った")
        '電車で行った'
        >>> apply_expression_rules("車両で移動")
        'バスで移動'
        >>> apply_expression_rules("公園で遊具を使った")
        '公園を散歩した'
        >>> apply_expression_rules("車椅子")
        '車椅子'
    """
    if not text:
        return ""
    if not isinstance(text, str):
        text = str(text)

    placeholders: List[Tuple[str, str]] = []
    result = _protect(text, placeholders)

    result = result.replace(VEHICLE_WORD, VEHICLE_REPLACEMENT)
    result = result.replace(CAR_CHAR, CAR_REPLACEMENT)
    result = PARK_PATTERN.sub(PARK_REPLACEMENT, result)

    return _restore(result, placeholders)
