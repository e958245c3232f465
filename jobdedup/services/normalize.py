"""Canonical forms for posting text so cosmetic variants shingle identically."""

from __future__ import annotations

import re

_CAMEL_BOUNDARY_RE = re.compile(r"([a-z])([A-Z])")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")
_WHITESPACE_RE = re.compile(r"\s+")

LEADING_ARTICLES = {"the", "a", "an"}

# Intentionally limited to 0-12; this is not a numeral parser.
DIGIT_WORDS = {
    "0": "zero",
    "1": "one",
    "2": "two",
    "3": "three",
    "4": "four",
    "5": "five",
    "6": "six",
    "7": "seven",
    "8": "eight",
    "9": "nine",
    "10": "ten",
    "11": "eleven",
    "12": "twelve",
}

COMPANY_SUFFIXES = {
    "inc",
    "incorporated",
    "corp",
    "corporation",
    "co",
    "company",
    "llc",
    "ltd",
    "limited",
    "lp",
    "plc",
    "stores",
    "international",
    "brands",
    "group",
    "holdings",
    "services",
    "solutions",
    "enterprises",
}

TITLE_NOISE = {
    "immediate",
    "hiring",
    "urgent",
    "needed",
    "wanted",
    "now",
    "apply",
    "today",
    "asap",
    "openings",
    "opening",
    "available",
    "ft",
    "pt",
    "full",
    "part",
    "time",
    "fulltime",
    "parttime",
    "temp",
    "temporary",
    "permanent",
    "contract",
    "seasonal",
    "entry",
    "level",
    "senior",
    "junior",
    "sr",
    "jr",
    "and",
    "or",
    "the",
    "a",
    "an",
    "of",
    "for",
    "in",
}


def normalize_company(name: str | None) -> str:
    if not name:
        return ""
    text = _CAMEL_BOUNDARY_RE.sub(r"\1 \2", name).lower()
    text = _NON_ALNUM_RE.sub(" ", text.replace("&", "and"))
    words = text.split()

    while words and words[0] in LEADING_ARTICLES:
        words.pop(0)
    words = [DIGIT_WORDS.get(word, word) for word in words]
    # Suffixes come off the end only, and never the last remaining word.
    while len(words) > 1 and words[-1] in COMPANY_SUFFIXES:
        words.pop()
    return "".join(words)


def normalize_title(title: str | None) -> str:
    if not title:
        return ""
    words = _NON_ALNUM_RE.sub(" ", title.lower()).split()
    return "".join(word for word in words if word not in TITLE_NOISE)


def normalize_description(description: str | None) -> str:
    if not description:
        return ""
    text = _NON_ALNUM_RE.sub(" ", description.lower())
    return _WHITESPACE_RE.sub(" ", text).strip()
