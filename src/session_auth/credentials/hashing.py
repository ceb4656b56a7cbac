"""Password digests."""

import abc
import asyncio

import bcrypt

from ..config import DEFAULT_BCRYPT_COST

MIN_BCRYPT_COST = 4
MAX_BCRYPT_COST = 31


class PasswordHasher(abc.ABC):
    """Turns secrets into salted digests and checks secrets against them."""

    digest_length: int

    @abc.abstractmethod
    def generate(self, secret: str) -> bytes:
        """Return a salted digest of ``secret``."""

    @abc.abstractmethod
    def compare(self, digest: bytes, secret: str) -> bool:
        """Return whether ``secret`` produced ``digest``."""

    async def generate_async(self, secret: str) -> bytes:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.generate, secret)

    async def compare_async(self, digest: bytes, secret: str) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.compare, digest, secret)


class BcryptPasswordHasher(PasswordHasher):
    """bcrypt with a configurable work factor.

    A wrong password compares as ``False``; a digest that is not bcrypt
    output raises ``ValueError``.
    """

    digest_length = 60

    def __init__(self, cost: int = DEFAULT_BCRYPT_COST) -> None:
        if not MIN_BCRYPT_COST <= cost <= MAX_BCRYPT_COST:
            raise ValueError(f"bcrypt cost must be between {MIN_BCRYPT_COST} and {MAX_BCRYPT_COST}; got {cost}")
        self.cost = cost

    def generate(self, secret: str) -> bytes:
        return bcrypt.hashpw(secret.encode("utf-8"), bcrypt.gensalt(rounds=self.cost))

    def compare(self, digest: bytes, secret: str) -> bool:
        return bcrypt.checkpw(secret.encode("utf-8"), digest)


__all__ = ["BcryptPasswordHasher", "DEFAULT_BCRYPT_COST", "PasswordHasher"]
