"""
DatasiteSync Client - Delta Codec

Seam between the sync protocol and the rsync-style signature/diff
algorithm. The protocol only needs three things from it: a signature of
some content, a diff from signed content to new content, and a way to
apply a diff to a base.

Author: DatasiteSync Project
"""

from abc import ABC, abstractmethod


class DeltaCodec(ABC):
    """Interface for signature/diff/patch providers."""

    @abstractmethod
    def signature(self, data: bytes) -> bytes:
        """Compute the signature of some content."""

    @abstractmethod
    def diff(self, signature: bytes, data: bytes) -> bytes:
        """Compute the diff from the signed content to data."""

    @abstractmethod
    def apply(self, base: bytes, diff: bytes) -> bytes:
        """Apply a diff to base and return the new content."""


class FastRsyncCodec(DeltaCodec):
    """
    Codec backed by py-fast-rsync, the rsync variant the server speaks.
    """

    def signature(self, data: bytes) -> bytes:
        from py_fast_rsync import signature

        return signature.calculate(data)

    def diff(self, signature: bytes, data: bytes) -> bytes:
        import py_fast_rsync

        return py_fast_rsync.diff(signature, data)

    def apply(self, base: bytes, diff: bytes) -> bytes:
        import py_fast_rsync

        return py_fast_rsync.apply(base, diff)
