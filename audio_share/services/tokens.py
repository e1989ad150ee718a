import re
import secrets

import config

TOKEN_PATTERN = re.compile(r'[A-Za-z0-9_-]+')


def generate_token() -> str:
    """Return a fresh 128-bit random token as 32 hex characters."""
    return secrets.token_hex(16)


def is_valid_token(token: str) -> bool:
    """Check if a token could have been issued by this server."""
    if not token or len(token) > config.MAX_TOKEN_LENGTH:
        return False

    # Only a-z, A-Z, 0-9, underscore and minus; keeps tokens safe as path parts
    return bool(TOKEN_PATTERN.fullmatch(token))
