import hashlib
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Optional, Tuple

import numpy as np

from .errors import ConfigMismatch
from .models import DEFAULT_HASH_SEED, DetectionConfig
from .preprocess import Preprocessor


MINHASH_PRIME = 2**32 - 5
SENTINEL_MAX = 2**32 - 1
DEFAULT_BLOCK_SIZE = 4096

_FNV_OFFSET_BASIS = 0x811C9DC5
_FNV_PRIME = 0x01000193


def fnv1a_32(text: str) -> int:
    """32-bit FNV-1a over the UTF-8 bytes of ``text``."""
    value = _FNV_OFFSET_BASIS
    for byte in text.encode("utf-8"):
        value ^= byte
        value = (value * _FNV_PRIME) & 0xFFFFFFFF
    return value


@lru_cache(maxsize=32)
def _draw_coefficients(
    seed: str, version: int, num_permutations: int, prime: int
) -> Tuple[np.ndarray, np.ndarray]:
    def draw(label: str, index: int) -> int:
        payload = f"{seed}|v{version}|{label}|{index}".encode("utf-8")
        digest = hashlib.sha256(payload).digest()
        return int.from_bytes(digest[:8], "big") % (prime - 1) + 1

    a = np.array([draw("a", i) for i in range(num_permutations)], dtype=np.uint64)
    b = np.array([draw("b", i) for i in range(num_permutations)], dtype=np.uint64)
    a.setflags(write=False)
    b.setflags(write=False)
    return a, b


@dataclass(frozen=True)
class HashFamily:
    """Versioned set of ``(a_i, b_i)`` permutation coefficients.

    Coefficients are derived from ``seed`` and ``version`` alone, so two
    processes built with the same values produce comparable signatures.
    Bump ``version`` whenever the derivation changes.
    """

    seed: str = DEFAULT_HASH_SEED
    version: int = 1
    num_permutations: int = 128
    prime: int = MINHASH_PRIME

    def __post_init__(self) -> None:
        if self.num_permutations < 1:
            raise ValueError(
                f"num_permutations must be positive, got {self.num_permutations}"
            )
        if not 2 < self.prime < SENTINEL_MAX:
            raise ValueError(f"prime must lie in (2, {SENTINEL_MAX}), got {self.prime}")

    @classmethod
    def from_config(cls, config: DetectionConfig) -> "HashFamily":
        return cls(
            seed=config.hash_seed,
            version=config.hash_version,
            num_permutations=config.num_permutations,
        )

    @property
    def coefficients(self) -> Tuple[np.ndarray, np.ndarray]:
        return _draw_coefficients(
            self.seed, self.version, self.num_permutations, self.prime
        )


@dataclass(frozen=True, eq=False)
class Signature:
    values: np.ndarray
    family: HashFamily

    def __post_init__(self) -> None:
        values = np.array(self.values, copy=True)
        if values.ndim != 1:
            raise ValueError(f"Signature must be one-dimensional, got shape {values.shape}")
        if values.dtype != np.uint32:
            raise ValueError(f"Signature must hold uint32 values, got {values.dtype}")
        if len(values) != self.family.num_permutations:
            raise ConfigMismatch(
                f"Signature length {len(values)} does not match "
                f"{self.family.num_permutations} permutations"
            )
        values.setflags(write=False)
        object.__setattr__(self, "values", values)

    @property
    def degenerate(self) -> bool:
        return bool(np.all(self.values == SENTINEL_MAX))

    def __len__(self) -> int:
        return len(self.values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Signature):
            return NotImplemented
        return self.family == other.family and np.array_equal(self.values, other.values)

    __hash__ = None


def ensure_same_family(signatures: Iterable[Signature]) -> Optional[HashFamily]:
    family: Optional[HashFamily] = None
    for signature in signatures:
        if family is None:
            family = signature.family
        elif signature.family != family:
            raise ConfigMismatch(
                f"Signatures from hash family {signature.family} cannot be "
                f"compared with {family}"
            )
    return family


def estimate_jaccard(signature_a: Signature, signature_b: Signature) -> float:
    """Fraction of agreeing rows, the MinHash estimate of shingle Jaccard."""
    ensure_same_family((signature_a, signature_b))
    return float(np.mean(signature_a.values == signature_b.values))


class MinHasher:
    def __init__(
        self,
        family: Optional[HashFamily] = None,
        preprocessor: Optional[Preprocessor] = None,
        block_size: int = DEFAULT_BLOCK_SIZE,
    ) -> None:
        if block_size < 1:
            raise ValueError(f"block_size must be positive, got {block_size}")
        self.family = family or HashFamily()
        self.preprocessor = preprocessor or Preprocessor(DetectionConfig())
        self.block_size = block_size
        self._a, self._b = self.family.coefficients

    def signature(self, shingles: Iterable[str]) -> Signature:
        base_hashes = np.fromiter(
            (fnv1a_32(shingle) for shingle in shingles), dtype=np.uint64
        )
        minimum = np.full(self.family.num_permutations, SENTINEL_MAX, dtype=np.uint64)
        prime = np.uint64(self.family.prime)
        # Peak memory is block_size x P uint64 values regardless of text length
        for start in range(0, base_hashes.size, self.block_size):
            block = base_hashes[start : start + self.block_size]
            # a * H < 2**64, and (a * H mod M) + b < 2**33, so uint64 never wraps
            permuted = np.outer(block, self._a)
            permuted %= prime
            permuted += self._b
            permuted %= prime
            np.minimum(minimum, permuted.min(axis=0), out=minimum)
        return Signature(values=minimum.astype(np.uint32), family=self.family)

    def signature_for_text(self, text: str) -> Signature:
        return self.signature(self.preprocessor.shingles(text))
