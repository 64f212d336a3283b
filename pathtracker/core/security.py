from __future__ import annotations

import secrets
from dataclasses import dataclass

import bcrypt

API_KEY_PREFIX = "pwtrk_"
API_KEY_RANDOM_LENGTH = 32
API_KEY_LOOKUP_PREFIX_LENGTH = 12


@dataclass(frozen=True)
class GeneratedApiKey:
    key: str
    key_hash: str
    prefix: str


def generate_api_key(*, rounds: int) -> GeneratedApiKey:
    # token_urlsafe(24) yields 32 chars over [A-Za-z0-9_-]
    key = f"{API_KEY_PREFIX}{secrets.token_urlsafe(24)[:API_KEY_RANDOM_LENGTH]}"
    return GeneratedApiKey(
        key=key,
        key_hash=hash_secret(key, rounds=rounds),
        prefix=lookup_prefix(key),
    )


def lookup_prefix(key: str) -> str:
    return key[:API_KEY_LOOKUP_PREFIX_LENGTH]


def hash_secret(secret: str, *, rounds: int) -> str:
    return bcrypt.hashpw(secret.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("ascii")


def verify_secret(secret: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(secret.encode("utf-8"), hashed.encode("ascii"))
    except ValueError:
        return False
