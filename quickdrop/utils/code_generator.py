"""
Pickup code generation.
"""
import secrets
from typing import Callable

CODE_SPACE = 1_000_000
CODE_LENGTH = 6


def generate_code() -> str:
    """
    Generate a numeric pickup code like "042917".

    Uniform over [0, 1_000_000), zero-padded to six digits so it is easy
    to read out or type on a phone keypad.
    """
    return f"{secrets.randbelow(CODE_SPACE):0{CODE_LENGTH}d}"


def ensure_unique_code(is_taken: Callable[[str], bool], attempts: int = 10) -> str:
    """
    Generate a code and verify it is not already in use.

    Args:
        is_taken: Predicate returning True when a candidate is occupied
        attempts: How many candidates to try before giving up

    Returns:
        str: A code for which ``is_taken`` returned False
    """
    for _ in range(attempts):
        code = generate_code()
        if not is_taken(code):
            return code
    raise RuntimeError(f"Failed to generate unique code after {attempts} attempts")
