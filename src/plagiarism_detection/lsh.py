import hashlib
import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Set, Tuple

from .errors import ConfigMismatch
from .minhash import HashFamily, Signature
from .models import CandidatePair


BandKey = Tuple[int, str]


def candidate_probability(similarity: float, bands: int, rows: int) -> float:
    """Chance that a pair with the given similarity shares at least one bucket."""
    return 1.0 - (1.0 - similarity**rows) ** bands


def validate_banding(num_bands: int, rows_per_band: int, num_permutations: int) -> None:
    if num_bands < 1 or rows_per_band < 1:
        raise ConfigMismatch(
            f"Bands and rows must be positive, got {num_bands}x{rows_per_band}"
        )
    if num_bands * rows_per_band != num_permutations:
        raise ConfigMismatch(
            f"{num_bands} bands x {rows_per_band} rows does not cover "
            f"{num_permutations} permutations"
        )


class LSHIndex:
    """Buckets documents by MinHash band fingerprints.

    Documents sharing the fingerprint of any band become candidate pairs.
    """

    def __init__(self, num_bands: int, rows_per_band: int, family: HashFamily) -> None:
        validate_banding(num_bands, rows_per_band, family.num_permutations)
        self.num_bands = num_bands
        self.rows_per_band = rows_per_band
        self.family = family
        self._buckets: Dict[BandKey, List[str]] = defaultdict(list)
        self._doc_ids: Set[str] = set()

    def __len__(self) -> int:
        return len(self._doc_ids)

    def band_keys(self, signature: Signature) -> List[BandKey]:
        if signature.family != self.family:
            raise ConfigMismatch(
                f"Signature family {signature.family} does not match index family {self.family}"
            )
        values = signature.values.astype("<u4", copy=False)
        keys: List[BandKey] = []
        for band in range(self.num_bands):
            start = band * self.rows_per_band
            rows = values[start : start + self.rows_per_band]
            fingerprint = hashlib.blake2b(rows.tobytes(), digest_size=16).hexdigest()
            keys.append((band, fingerprint))
        return keys

    def add(self, doc_id: str, signature: Signature) -> None:
        self.add_keys(doc_id, self.band_keys(signature))

    def add_keys(self, doc_id: str, keys: Iterable[BandKey]) -> None:
        if doc_id in self._doc_ids:
            raise ValueError(f"Document {doc_id} is already indexed")
        self._doc_ids.add(doc_id)
        for key in keys:
            self._buckets[key].append(doc_id)

    def candidate_pairs(self) -> Set[CandidatePair]:
        pairs: Set[CandidatePair] = set()
        shared_buckets = 0
        for members in self._buckets.values():
            if len(members) < 2:
                continue
            shared_buckets += 1
            for i, doc_a in enumerate(members):
                for doc_b in members[i + 1 :]:
                    pairs.add(CandidatePair.of(doc_a, doc_b))
        logging.debug(
            "LSH: %d documents, %d buckets, %d shared, %d candidate pairs",
            len(self._doc_ids),
            len(self._buckets),
            shared_buckets,
            len(pairs),
        )
        return pairs
