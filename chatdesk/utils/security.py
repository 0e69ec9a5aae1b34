"""Security helpers: PII masking and safe logging (minimal)."""
import re

_LONG_DIGITS = re.compile(r"\+?\d[\d\s-]{8,}\d")


def mask_pii(text: str) -> str:
    # Very naive masking example
    if not text:
        return ""
    return _LONG_DIGITS.sub("[REDACTED]", text)


def mask_phone(phone: str) -> str:
    """Keep the last four digits of a phone number for log correlation."""
    if not phone:
        return "unknown"
    digits = re.sub(r"\D", "", phone)
    if len(digits) <= 4:
        return "*" * len(digits)
    return "*" * (len(digits) - 4) + digits[-4:]
