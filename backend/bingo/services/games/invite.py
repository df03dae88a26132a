import secrets
import string

INVITE_CODE_ALPHABET = string.ascii_uppercase + string.digits
INVITE_CODE_LENGTH = 6


def generate_invite_code(rng=None, length: int = INVITE_CODE_LENGTH) -> str:
    """Generate a short, shareable invite code.

    Uniqueness is not checked here; callers retry when a code is taken.
    """
    if rng is None:
        return ''.join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(length))
    return ''.join(rng.choices(INVITE_CODE_ALPHABET, k=length))


def normalize_invite_code(code) -> str:
    return (code or '').strip().upper()
