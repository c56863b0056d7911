import pytest

from services.segmenting.Segmenter import Segmenter, clean_segment, normalize_text, segment, select_band


def words(count: int) -> str:
    return " ".join(f"word{i}" for i in range(count))


@pytest.mark.parametrize(
    "word_count, expected",
    [
        (120, (250, 50)),
        (500, (250, 50)),
        (501, (500, 100)),
        (3000, (500, 100)),
        (3001, (1000, 150)),
        (5000, (1000, 150)),
        (20000, (1500, 200)),
    ],
)
def test_select_band(word_count, expected):
    assert select_band(word_count) == expected


def test_three_thousand_words_use_medium_band():
    text = words(3000)

    segments = segment(text)

    assert Segmenter().describe(text) == (500, 100)
    # windows start at 0, 400, ..., 2800
    assert len(segments) == 8
    assert segments[0].split(" ")[0] == "word0"
    assert segments[-1].split(" ")[-1] == "word2999"


def test_consecutive_segments_share_overlap():
    segments = segment(words(300), target_size=100, overlap=20)

    first, second = segments[0].split(" "), segments[1].split(" ")
    assert len(first) == 100
    assert first[-20:] == second[:20]


def test_every_word_is_covered():
    text = words(1234)

    covered = set()
    for piece in segment(text):
        covered.update(piece.split(" "))

    assert covered == set(text.split(" "))


def test_overlap_not_below_target_is_clamped():
    segments = segment(words(100), target_size=10, overlap=10)

    # overlap falls back to 20% of the target size, so each window advances by 8 words
    assert segments[1].split(" ")[0] == "word8"
    assert segments[1].split(" ")[:2] == segments[0].split(" ")[-2:]


def test_short_text_is_a_single_segment():
    assert segment("  A short\n\nnote.  ") == ["A short note."]


def test_empty_text_gives_no_segments():
    assert segment("") == []
    assert segment(" \n\t ") == []


def test_tiny_windows_fall_back_to_full_text():
    text = " ".join(["a"] * 80)

    # every window is shorter than the minimum segment length
    assert segment(text, target_size=2, overlap=0) == [text]


def test_segmentation_is_deterministic():
    text = words(2000)

    assert segment(text) == segment(text)


def test_normalize_strips_non_printable_and_whitespace():
    assert normalize_text("Total:\x00 12 000\n\n EUR") == "Total: 12 000 EUR"


def test_clean_segment_replaces_quotes_and_bullets():
    assert clean_segment("“Terms” • apply → now") == '"Terms" - apply - now'


def test_fixed_window_segmenter():
    segmenter = Segmenter(target_size=50, overlap=10)

    assert segmenter.describe(words(1000)) == (50, 10)
    assert len(segmenter.segment(words(1000))) == 25


def test_target_size_alone_is_honoured():
    text = words(1000)

    segments = segment(text, target_size=100)

    # the band overlap of 100 does not fit a 100 word window, 20% of it is used
    assert Segmenter(target_size=100).describe(text) == (100, 20)
    assert all(len(piece.split(" ")) <= 100 for piece in segments)
    assert segments[1].split(" ")[0] == "word80"


def test_target_size_alone_keeps_fitting_band_overlap():
    assert Segmenter(target_size=400).describe(words(1000)) == (400, 100)
