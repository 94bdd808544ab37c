# security.py
from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

def hash_password(raw: str) -> str:
    return pwd_context.hash(raw)

def verify_password(raw: str, hashed: str) -> bool:
    if not hashed:
        return False
    try:
        return pwd_context.verify(raw, hashed)
    except ValueError:
        # not a hash this context recognises (e.g. a legacy plaintext row)
        return False
