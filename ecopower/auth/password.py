import secrets
import string

from passlib.context import CryptContext

pwd_ctx = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

TEMPORARY_PASSWORD_LENGTH = 10


def hash_password(password: str) -> str:
    return pwd_ctx.hash(password)


def verify_password(password: str, hashed: str | None) -> bool:
    # Compte Google sans mot de passe local
    if not hashed:
        return False
    return pwd_ctx.verify(password, hashed)


def generate_temporary_password(length: int = TEMPORARY_PASSWORD_LENGTH) -> str:
    """Mot de passe temporaire envoyé au résident, à changer au premier login"""
    alphabet = string.ascii_letters + string.digits
    while True:
        candidate = "".join(secrets.choice(alphabet) for _ in range(length))
        if any(c.isdigit() for c in candidate) and any(c.isalpha() for c in candidate):
            return candidate
