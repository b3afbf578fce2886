import re

_NON_DIGITS = re.compile(r"\D")
NATIONAL_NUMBER_LENGTHS = (10, 11)


def normalize_phone(raw: str | None, country_code: str = "55") -> str:
    """Canonical digits-only form of a phone number, e.g. '(11) 98765-4321' -> '5511987654321'.

    Never raises; anything without digits normalizes to ''.
    """
    if not raw:
        return ""
    digits = _NON_DIGITS.sub("", str(raw))
    if (
        country_code
        and len(digits) in NATIONAL_NUMBER_LENGTHS
        and not digits.startswith(country_code)
    ):
        return f"{country_code}{digits}"
    return digits
