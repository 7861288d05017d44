from __future__ import annotations

import secrets

CODE_LENGTH = 6


def generate_verification_code() -> str:
    """Return a uniformly distributed zero-padded 6-digit code."""
    return f"{secrets.randbelow(10 ** CODE_LENGTH):0{CODE_LENGTH}d}"
