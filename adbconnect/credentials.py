"""In-memory credential store used to answer device authentication challenges."""

from __future__ import annotations

import hashlib
import hmac
import secrets
from dataclasses import dataclass
from typing import Iterable, Iterator, Protocol


@dataclass(frozen=True)
class CredentialKey:
    """A shared secret the device learns once the user authorizes it."""

    secret: bytes

    @property
    def token(self) -> str:
        return self.secret.hex()

    @property
    def fingerprint(self) -> str:
        return hashlib.sha256(self.secret).hexdigest()[:16]

    def sign(self, challenge: str) -> str:
        return hmac.new(self.secret, challenge.encode("utf-8"), hashlib.sha256).hexdigest()


class CredentialStore(Protocol):
    def iter_keys(self) -> Iterator[CredentialKey]:
        ...

    def generate_key(self) -> CredentialKey:
        ...


class MemoryCredentialStore:
    """Keep keys for the lifetime of the process only."""

    def __init__(self, keys: Iterable[CredentialKey] = ()) -> None:
        self._keys = list(keys)

    def __len__(self) -> int:
        return len(self._keys)

    def iter_keys(self) -> Iterator[CredentialKey]:
        return iter(list(self._keys))

    def generate_key(self) -> CredentialKey:
        key = CredentialKey(secrets.token_bytes(32))
        self._keys.append(key)
        return key
