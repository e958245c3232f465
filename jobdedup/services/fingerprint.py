"""64-bit SimHash fingerprints with LSH band keys.

Each posting is shingled per field, weighted by literal repetition of the
tagged shingles, and folded into a 64-slot vote accumulator. Slots 0-31 take
their votes from an unsalted 32-bit string hash and slots 32-63 from the same
hash over the salted shingle. The bit vector is then cut into ``num_bands``
contiguous slices; two fingerprints within the duplicate threshold almost
always agree on at least one slice, which is what makes band lookup a usable
candidate filter.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

from jobdedup.core.config import FINGERPRINT_BITS, FieldWeights
from jobdedup.core.errors import DedupConfigurationError
from jobdedup.schemas.postings import PostingIn
from jobdedup.services.normalize import normalize_company, normalize_description, normalize_title

HASH_BITS = 32
SALT = "_salt"
COMPANY_NGRAM = 3
TITLE_NGRAM = 3
DESCRIPTION_NGRAM = 5


@dataclass(slots=True)
class Fingerprint:
    hash: str
    bits: list[int]
    bands: list[str]
    indexed_at: datetime


def hash32(text: str) -> int:
    """Unsigned 32-bit polynomial string hash (``h * 31 + code``)."""
    value = 0
    for char in text:
        value = (value * 31 + ord(char)) & 0xFFFFFFFF
    return value


def char_ngrams(text: str, size: int) -> list[str]:
    if len(text) < size:
        return [text]
    return [text[start : start + size] for start in range(len(text) - size + 1)]


def simhash_bits(shingles: Iterable[str]) -> list[int]:
    votes = [0] * FINGERPRINT_BITS
    for shingle in shingles:
        first = hash32(shingle)
        second = hash32(shingle + SALT)
        for bit in range(HASH_BITS):
            votes[bit] += 1 if (first >> bit) & 1 else -1
            votes[bit + HASH_BITS] += 1 if (second >> bit) & 1 else -1
    return [1 if vote > 0 else 0 for vote in votes]


def bits_to_hex(bits: Sequence[int]) -> str:
    if not bits:
        return ""
    value = 0
    for bit in bits:
        value = (value << 1) | (1 if bit else 0)
    width = (len(bits) + 3) // 4
    # Left-align partial nibbles so 4-bit groups read MSB first.
    value <<= width * 4 - len(bits)
    return format(value, f"0{width}x")


def band_keys(bits: Sequence[int], num_bands: int) -> list[str]:
    if num_bands <= 0 or len(bits) % num_bands != 0:
        raise DedupConfigurationError(f"{num_bands} bands cannot evenly split {len(bits)} bits")
    width = len(bits) // num_bands
    return [f"b{band}:{bits_to_hex(bits[band * width : (band + 1) * width])}" for band in range(num_bands)]


def hamming_distance(left: Sequence[int], right: Sequence[int]) -> int:
    distance = sum(1 for a, b in zip(left, right) if a != b)
    return distance + abs(len(left) - len(right))


class FingerprintGenerator:
    def __init__(self, weights: FieldWeights | None = None, num_bands: int = 4) -> None:
        if num_bands <= 0 or FINGERPRINT_BITS % num_bands != 0:
            raise DedupConfigurationError(f"num_bands must evenly divide {FINGERPRINT_BITS}, got {num_bands}")
        self.weights = weights or FieldWeights()
        self.num_bands = num_bands

    def shingles(self, posting: PostingIn) -> list[str]:
        company = [f"C:{gram}" for gram in char_ngrams(normalize_company(posting.company), COMPANY_NGRAM)]
        title = [f"T:{gram}" for gram in char_ngrams(normalize_title(posting.title), TITLE_NGRAM)]
        description = [
            f"D:{gram}" for gram in char_ngrams(normalize_description(posting.description), DESCRIPTION_NGRAM)
        ]
        return company * self.weights.company + title * self.weights.title + description * self.weights.description

    def generate(self, posting: PostingIn, *, now: datetime | None = None) -> Fingerprint:
        bits = simhash_bits(self.shingles(posting))
        return Fingerprint(
            hash=bits_to_hex(bits),
            bits=bits,
            bands=band_keys(bits, self.num_bands),
            indexed_at=now or datetime.now(timezone.utc),
        )
