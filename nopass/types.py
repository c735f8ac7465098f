"""Result variants and identity transforms for nopass."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True, slots=True)
class ExpiredOrMissing:
    """The secret does not resolve to a live row.

    Never existed, expired and already consumed all look the same.
    """

    reason: str = "expired_or_missing"


@dataclass(frozen=True, slots=True)
class MetadataRecordingFailed:
    """Best-effort access recording could not be written."""

    reason: str


EXPIRED_OR_MISSING = ExpiredOrMissing()


@dataclass(frozen=True, slots=True)
class LiteralIdentity:
    """Bind the login token to a fixed identity."""

    value: str

    def apply(self, otp_identity: str) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class TransformIdentity:
    """Derive the login token identity from the one-time password identity."""

    fn: Callable[[str], str]

    def apply(self, otp_identity: str) -> str:
        return self.fn(otp_identity)


IdentityTransform = LiteralIdentity | TransformIdentity


def _unchanged(identity: str) -> str:
    return identity


KEEP_IDENTITY = TransformIdentity(_unchanged)
