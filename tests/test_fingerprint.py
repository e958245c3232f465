import pytest

from jobdedup.core.config import FieldWeights
from jobdedup.core.errors import DedupConfigurationError
from jobdedup.schemas.postings import PostingIn
from jobdedup.services.fingerprint import (
    FingerprintGenerator,
    band_keys,
    bits_to_hex,
    char_ngrams,
    hamming_distance,
    hash32,
    simhash_bits,
)


def _posting(**overrides: str) -> PostingIn:
    fields = {
        "id": "job-1",
        "company": "Acme Inc.",
        "title": "Line Cook",
        "description": "Prepare meals on the line and keep the station clean.",
        "location": "Austin, TX",
    }
    fields.update(overrides)
    return PostingIn(**fields)


def test_hash32_matches_unsigned_java_string_hash() -> None:
    assert hash32("") == 0
    assert hash32("abc") == 96354
    assert hash32("hello") == 99162322
    assert hash32("polygenelubricants") == 2147483648


def test_char_ngrams_short_text_yields_itself() -> None:
    assert char_ngrams("cook", 3) == ["coo", "ook"]
    assert char_ngrams("ab", 3) == ["ab"]


def test_bits_to_hex_reads_msb_first() -> None:
    assert bits_to_hex([1, 0, 1, 0]) == "a"
    assert bits_to_hex([0, 0, 0, 1, 1, 1, 1, 1]) == "1f"
    assert bits_to_hex([1] * 16) == "ffff"
    assert bits_to_hex([]) == ""


def test_simhash_bits_is_64_wide_and_deterministic() -> None:
    shingles = ["C:acm", "C:cme", "T:coo", "T:ook"]
    bits = simhash_bits(shingles)
    assert len(bits) == 64
    assert set(bits) <= {0, 1}
    assert simhash_bits(shingles) == bits
    assert simhash_bits([]) == [0] * 64


def test_shingles_are_tagged_and_weighted_by_repetition() -> None:
    generator = FingerprintGenerator(FieldWeights(company=2, title=1, description=4))
    shingles = generator.shingles(_posting(company="Acme", title="Cook", description="abcdef"))

    assert shingles.count("C:acm") == 2
    assert shingles.count("T:coo") == 1
    assert shingles.count("D:abcde") == 4
    assert len(shingles) == 2 * 2 + 2 + 4 * 2


def test_band_keys_are_contiguous_slices_of_the_fingerprint() -> None:
    fingerprint = FingerprintGenerator(num_bands=4).generate(_posting())

    assert len(fingerprint.bits) == 64
    assert len(fingerprint.hash) == 16
    assert [band.split(":")[0] for band in fingerprint.bands] == ["b0", "b1", "b2", "b3"]
    assert "".join(band.split(":")[1] for band in fingerprint.bands) == fingerprint.hash
    for index, band in enumerate(fingerprint.bands):
        assert band == f"b{index}:{bits_to_hex(fingerprint.bits[index * 16 : (index + 1) * 16])}"
    assert band_keys(fingerprint.bits, 4) == fingerprint.bands


def test_band_keys_reject_uneven_split() -> None:
    with pytest.raises(DedupConfigurationError):
        band_keys([0] * 64, 3)
    with pytest.raises(DedupConfigurationError):
        FingerprintGenerator(num_bands=5)


def test_cosmetic_variants_share_a_fingerprint() -> None:
    generator = FingerprintGenerator()
    left = generator.generate(_posting(company="Acme Inc.", title="Line Cook"))
    right = generator.generate(_posting(id="job-2", company="ACME", title="Line Cook!!"))

    assert left.hash == right.hash
    assert hamming_distance(left.bits, right.bits) == 0


def test_hamming_distance_counts_length_difference() -> None:
    assert hamming_distance([1, 0, 1], [1, 1, 1]) == 1
    assert hamming_distance([1, 0], [1, 0, 1, 1]) == 2
