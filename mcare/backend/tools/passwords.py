import re

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

_password_hasher = PasswordHasher()

# At least 8 characters with a lowercase, an uppercase, a digit and a symbol.
_STRONG_PASSWORD = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[^A-Za-z0-9]).{8,}$")

WEAK_PASSWORD_MESSAGE = (
    "Your password is weak. It must be at least 8 characters long, contain at least one "
    "uppercase letter, one lowercase letter, one number, and one special character."
)


def hash_password(password: str) -> str:
    return _password_hasher.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return _password_hasher.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False


def is_strong_password(password: str) -> bool:
    return bool(_STRONG_PASSWORD.match(password or ""))
