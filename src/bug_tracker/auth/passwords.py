import bcrypt
from starlette.concurrency import run_in_threadpool


def hash_password_sync(password: str, rounds: int = 10) -> str:
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def is_bcrypt_hash(stored: str) -> bool:
    return stored.startswith(("$2a$", "$2b$", "$2y$"))


def verify_password_sync(password: str, stored: str) -> bool:
    """Check ``password`` against a bcrypt hash, or a legacy plain-text value."""
    if not is_bcrypt_hash(stored):
        return password == stored
    try:
        return bcrypt.checkpw(password.encode("utf-8"), stored.encode("utf-8"))
    except ValueError:
        return False


async def hash_password(password: str, rounds: int = 10) -> str:
    # bcrypt is CPU bound; keep it off the event loop.
    return await run_in_threadpool(hash_password_sync, password, rounds)


async def verify_password(password: str, stored: str) -> bool:
    return await run_in_threadpool(verify_password_sync, password, stored)
