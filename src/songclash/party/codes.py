"""
Party codes and join links.

Codes are short, URL-safe and random. No uniqueness check is made here;
a create that lands on an occupied code fails with PartyAlreadyExistsError
and the caller picks a new code.
"""

import logging
import secrets
import string
from typing import Optional
from urllib.parse import parse_qs, urlencode, urlsplit

logger = logging.getLogger(__name__)

DEFAULT_ALPHABET = "123456789"
DEFAULT_LENGTH = 6
JOIN_PARAM = "join"

_MEMBER_ID_ALPHABET = string.ascii_lowercase + string.digits


class PartyCodeGenerator:
    """Draws fixed-length codes from a configured alphabet."""

    def __init__(self, length: int = DEFAULT_LENGTH, alphabet: str = DEFAULT_ALPHABET, rng=None):
        """
        Args:
            length: Number of characters per code
            alphabet: Characters codes are drawn from (must be URL-safe)
            rng: Object with a choice() method; defaults to the secrets module
        """
        if length < 1:
            raise ValueError(f"Code length must be positive, got {length}")
        if len(set(alphabet)) < 2:
            raise ValueError(f"Alphabet needs at least 2 distinct characters: {alphabet!r}")
        self.length = length
        self.alphabet = alphabet
        self._rng = rng or secrets

    @classmethod
    def from_config(cls, config: dict) -> "PartyCodeGenerator":
        """Build from the [party] config section."""
        return cls(
            length=config.get("code_length", DEFAULT_LENGTH),
            alphabet=config.get("code_alphabet", DEFAULT_ALPHABET),
        )

    def generate(self) -> str:
        return "".join(self._rng.choice(self.alphabet) for _ in range(self.length))

    def is_valid(self, code: str) -> bool:
        """True if code has this generator's length and alphabet."""
        return len(code) == self.length and all(c in self.alphabet for c in code)


def synthesize_member_id() -> str:
    """Session-stable id for a member whose provider exposes no user id."""
    suffix = "".join(secrets.choice(_MEMBER_ID_ALPHABET) for _ in range(9))
    return f"user_{suffix}"


def share_link(base_url: str, code: str) -> str:
    """Link that drops the recipient straight into the join flow."""
    return f"{base_url.rstrip('/')}/?{urlencode({JOIN_PARAM: code})}"


def parse_join_code(link_or_code: str) -> Optional[str]:
    """
    Extract a party code from a share link, or accept a bare code.

    Returns None for a link without a join parameter.
    """
    text = link_or_code.strip()
    if not text:
        return None
    if "?" not in text and "://" not in text:
        return text

    values = parse_qs(urlsplit(text).query).get(JOIN_PARAM)
    if not values or not values[0].strip():
        logger.debug(f"No {JOIN_PARAM} parameter in {text}")
        return None
    return values[0].strip()
