"""Text segmentation.

Splits extracted document text into overlapping, word-aligned segments.
Pure functions, no state is kept between calls.
"""

import math
import re

MIN_SPLIT_LENGTH = 100      # characters; shorter texts are returned as one segment
MIN_SEGMENT_LENGTH = 10     # characters; shorter segments are dropped
FALLBACK_OVERLAP_RATIO = 0.2

# (max word count, target size in words, overlap in words)
SEGMENT_BANDS: list[tuple[float, int, int]] = [
    (500, 250, 50),
    (3000, 500, 100),
    (5000, 1000, 150),
    (math.inf, 1500, 200),
]

_WHITESPACE = re.compile(r"\s+")
_NON_PRINTABLE = re.compile(r"[^\x20-\x7E\n]")
_SMART_QUOTES = re.compile(r"[“”‘’]")
_BULLETS = re.compile(r"[•➜→]")


def normalize_text(text: str) -> str:
    """Collapse whitespace and strip non-printable characters."""
    text = _WHITESPACE.sub(" ", text or "")
    return _NON_PRINTABLE.sub("", text).strip()


def clean_segment(segment: str) -> str:
    """Prepare a segment for embedding.

    Smart quotes become plain double quotes and bullets or arrows become
    dashes before anything outside printable ASCII is removed.
    """
    segment = _SMART_QUOTES.sub('"', segment)
    segment = _BULLETS.sub("-", segment)
    segment = _NON_PRINTABLE.sub("", segment)
    return _WHITESPACE.sub(" ", segment).strip()


def select_band(word_count: int) -> tuple[int, int]:
    """Pick (target_size, overlap) in words for a document of the given length.

    Args:
        word_count (int): Number of words in the normalized text.

    Returns:
        tuple[int, int]: Target segment size and overlap, both in words.
    """
    for max_words, target_size, overlap in SEGMENT_BANDS:
        if word_count <= max_words:
            return target_size, overlap
    # unreachable, the last band is unbounded
    return SEGMENT_BANDS[-1][1], SEGMENT_BANDS[-1][2]


def resolve_window(word_count: int, target_size: int | None = None, overlap: int | None = None) -> tuple[int, int]:
    """Fill in whatever window parameter the caller left unset.

    Without a target size both values come from the band table. A given
    target size is always kept, its overlap is the band overlap when that
    fits, otherwise floor(0.2 * target_size).

    Raises:
        ValueError: If target_size is not positive.
    """
    if not target_size:
        band_size, band_overlap = select_band(word_count)
        target_size = band_size
        overlap = band_overlap if overlap is None else overlap
    elif overlap is None:
        overlap = select_band(word_count)[1]
    if target_size < 1:
        raise ValueError(f"target_size must be positive, got {target_size}")
    if overlap < 0 or overlap >= target_size:
        overlap = math.floor(target_size * FALLBACK_OVERLAP_RATIO)
    return target_size, overlap


def segment(text: str, target_size: int | None = None, overlap: int | None = None) -> list[str]:
    """Split text into overlapping word windows.

    Args:
        text (str): Raw extracted text.
        target_size (int | None): Words per segment. Chosen from SEGMENT_BANDS when unset.
        overlap (int | None): Words shared by consecutive segments. Derived by resolve_window() when unset.

    Returns:
        list[str]: Ordered segments. Never empty for input that is non-empty after normalization.
    """
    clean_text = normalize_text(text)
    if not clean_text:
        return []
    if len(clean_text) < MIN_SPLIT_LENGTH:
        return [clean_text]

    words = clean_text.split(" ")
    target_size, overlap = resolve_window(len(words), target_size, overlap)

    step = target_size - overlap
    segments: list[str] = []
    start = 0
    while start < len(words):
        window = " ".join(words[start:start + target_size])
        if len(window) > MIN_SEGMENT_LENGTH:
            segments.append(window)
        if start + target_size >= len(words):
            break
        start += step

    if not segments:
        return [clean_text]
    return segments


class Segmenter:
    """Segmenter with optional fixed window parameters.

    Unset window parameters are resolved per document, see resolve_window().
    """

    def __init__(self, target_size: int | None = None, overlap: int | None = None) -> None:
        self.target_size = target_size
        self.overlap = overlap

    def segment(self, text: str) -> list[str]:
        return segment(text, target_size=self.target_size, overlap=self.overlap)

    def describe(self, text: str) -> tuple[int, int]:
        """Return the (target_size, overlap) that segment() will use for this text."""
        return resolve_window(len(normalize_text(text).split()), self.target_size, self.overlap)
