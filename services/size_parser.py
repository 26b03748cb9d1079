"""
services/size_parser.py – Turn a human-readable size string into a number
that orders correctly.

The result is a KB-equivalent magnitude (GB × 1024², MB × 1024, KB × 1).  It is
only ever compared, never shown, so it need not be byte-exact.
"""

import re

SIZE_PATTERN: re.Pattern = re.compile(r"(\d+\.?\d*)\s*(gb|mb|kb)", re.IGNORECASE)

_UNIT_FACTORS = {
    "gb": 1024 * 1024,
    "mb": 1024,
    "kb": 1,
}


def parse_size(text: object) -> float:
    """
    Parse the first ``<number> <unit>`` token in *text*.

    Returns 0 for anything that does not match, including non-strings.
    """
    if not isinstance(text, str):
        return 0
    match = SIZE_PATTERN.search(text)
    if not match:
        return 0
    return float(match.group(1)) * _UNIT_FACTORS[match.group(2).lower()]
