from __future__ import annotations

import re
import secrets
import string
from typing import Callable
from urllib.parse import urlencode

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_SUFFIX_LENGTH = 4


def first_name_token(client_name: str) -> str:
    first = client_name.strip().split(" ", 1)[0] if client_name.strip() else ""
    token = re.sub(r"[^A-Z]", "", first.upper())
    return token or "CLIENT"


def generate_referral_code(
    client_name: str,
    *,
    prefix: str = "FLHC",
    is_taken: Callable[[str], bool] = lambda code: False,
    max_attempts: int = 20,
) -> str:
    """Build PREFIX-FIRSTNAME-XXXX, retrying the random suffix on collision."""
    base = f"{prefix}-{first_name_token(client_name)}"
    for _ in range(max_attempts):
        suffix = "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_SUFFIX_LENGTH))
        code = f"{base}-{suffix}"
        if not is_taken(code):
            return code
    raise RuntimeError(f"could not allocate a unique referral code for {base}")


def referral_link(base_url: str, *, referral_code: str, referrer_name: str) -> str:
    query = urlencode({"ref": referral_code, "referrer": referrer_name})
    return f"{base_url.rstrip('/')}/new-referral-client?{query}"
