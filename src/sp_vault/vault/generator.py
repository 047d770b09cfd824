"""Random secret generation for new vault entries."""

import secrets
import string
from dataclasses import dataclass

from ..core.exceptions import ValidationError

SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"
DEFAULT_LENGTH = 16
MAX_LENGTH = 1024


@dataclass(frozen=True)
class SecretOptions:
    """Which character classes go into a generated secret."""
    length: int = DEFAULT_LENGTH
    uppercase: bool = True
    lowercase: bool = True
    numbers: bool = True
    symbols: bool = True

    def alphabet(self) -> str:
        chars = ""
        if self.uppercase:
            chars += string.ascii_uppercase
        if self.lowercase:
            chars += string.ascii_lowercase
        if self.numbers:
            chars += string.digits
        if self.symbols:
            chars += SYMBOLS
        return chars


def generate_secret(options: SecretOptions = SecretOptions()) -> str:
    """Draw ``options.length`` characters uniformly from the selected classes.

    Uses the ``secrets`` CSPRNG. No per-class minimum is enforced, so every
    character is an independent uniform draw.

    Raises:
        ValidationError: No character class selected, or length outside 1..1024.
    """
    if isinstance(options.length, bool) or not isinstance(options.length, int):
        raise ValidationError("Length must be an integer")
    if not 1 <= options.length <= MAX_LENGTH:
        raise ValidationError(f"Length must be between 1 and {MAX_LENGTH}")

    chars = options.alphabet()
    if not chars:
        raise ValidationError("At least one character type must be selected")

    return "".join(secrets.choice(chars) for _ in range(options.length))
