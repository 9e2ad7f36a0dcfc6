"""CPF - Brazilian taxpayer id as the card gateway accepts it."""

import re

from storefront.core.errors import BusinessRuleError

_NON_DIGIT = re.compile(r"\D")


def normalize_cpf(raw: str | None) -> str:
    """Strip punctuation. Raises INVALID_CPF unless 11 digits, not all the same."""
    digits = _NON_DIGIT.sub("", raw or "")
    if len(digits) != 11 or len(set(digits)) == 1:
        raise BusinessRuleError("CPF must have 11 digits", "INVALID_CPF")
    return digits
