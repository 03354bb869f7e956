# services/passwords.py
from passlib.context import CryptContext

# argon2 is memory-hard; "deprecated=auto" lets us rotate schemes later
pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def burn_password_check() -> None:
    """Spend the same hashing time as a real check (used when the account doesn't exist)."""
    pwd_context.dummy_verify()
