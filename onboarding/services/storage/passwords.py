"""Password hashing for accounts created at the end of onboarding."""

from passlib.context import CryptContext

# pbkdf2 avoids the 72-byte truncation of bcrypt; the validator caps length anyway.
pwd_ctx = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_pw(p: str) -> str: return pwd_ctx.hash(p)
def verify_pw(p: str, h: str) -> bool: return pwd_ctx.verify(p, h)
