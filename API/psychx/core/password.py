"""Password hashing for account login.

Uses a standard passlib hash (pbkdf2_sha256) so seeded demo accounts and real
accounts verify the same way.
"""
from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(plain: str) -> str:
    return pwd_context.hash(plain or "")


def verify_password(plain: str, hashed: str) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(plain or "", hashed)
