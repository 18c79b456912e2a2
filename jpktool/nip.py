from __future__ import annotations

import re


NIP_WEIGHTS = (6, 5, 7, 2, 3, 4, 5, 6, 7)
_NON_DIGITS = re.compile(r"\D")


def normalize_nip(value: str) -> str:
    """Strip separators and country prefixes, keeping digits only."""
    return _NON_DIGITS.sub("", value or "")


def is_valid_nip(value: str | None) -> bool:
    if not value:
        return False

    digits = normalize_nip(value)
    if len(digits) != 10:
        return False

    checksum = sum(int(digit) * weight for digit, weight in zip(digits, NIP_WEIGHTS)) % 11
    # a residue of 10 can never match a single digit, so such ids are invalid
    return checksum == int(digits[9])
