"""Deterministic seed derivation."""

from __future__ import annotations

import hashlib
import random
import secrets

from faker import Faker


def derive_seed(run_seed: int, *parts: str) -> int:
    """
    Derive a stable 64-bit seed from the run seed and a scope name.

    The same (run_seed, parts) always yields the same value, independent
    of process, thread or scheduling order.

    Example:
        >>> derive_seed(42, "orders") == derive_seed(42, "orders")
        True
    """
    material = ":".join([str(run_seed), *parts]).encode("utf-8")
    return int.from_bytes(hashlib.sha256(material).digest()[:8], "big")


def new_run_seed() -> int:
    """Draw a fresh run seed from OS entropy."""
    return secrets.randbits(63)


def table_random(run_seed: int, table: str) -> random.Random:
    """Random source scoped to one table of one run."""
    return random.Random(derive_seed(run_seed, table))


def table_faker(run_seed: int, table: str, locale: str = "en_US") -> Faker:
    """Faker instance scoped to one table of one run."""
    fake = Faker(locale)
    fake.seed_instance(derive_seed(run_seed, table, "faker"))
    return fake
