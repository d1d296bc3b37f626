"""
Names for provisioned resources.
"""

import secrets

# No 0/O/l to keep generated names readable in the console
_ALPHABET = "abcdefghijkmnopqrstuvwxyzABCDEFGHIJKLMNPQRSTUVWXYZ123456789"

MAX_IDENTIFIER_LENGTH = 63


def random_suffix(length: int = 8) -> str:
    """Return a random alphanumeric string of the given length."""
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def resource_name(prefix: str, length: int = 8) -> str:
    """Return ``<prefix>-<random suffix>``."""
    return f"{prefix}-{random_suffix(length)}"


def restored_identifier(source_identifier: str, reserve: int = 0, length: int = 8) -> str:
    """Identifier for a restored copy of ``source_identifier``.

    The source part is shortened so the result, plus ``reserve`` characters
    appended later, stays within the RDS identifier limit. RDS identifiers
    are case-insensitive and stored lower-case, so the suffix is lower-cased
    to match what ``describe_*`` calls will return.
    """
    room = MAX_IDENTIFIER_LENGTH - reserve - length - 1
    # No trailing or doubled hyphens once the suffix is joined on
    base = source_identifier[:room].rstrip("-")
    return resource_name(base, length).lower()
