import pytest

from sceneforge.timing.captions import (
    NO_HIGHLIGHT,
    TRAILING_HOLD,
    CaptionEntry,
    CaptionTrack,
    active_entry_index,
    active_word_index,
    derive_words,
    estimate_words,
    format_caption_lines,
    format_timestamp,
    generate_srt_from_text,
    parse_srt,
    word_weight,
)

SAMPLE_SRT = (
    "\ufeff2\r\n"
    "00:00:02.500 --> 00:00:04,000\r\n"
    "second line\r\n"
    "\r\n"
    "1\r\n"
    "00:00:00,000 --> 00:00:02,000\r\n"
    "Hello there,\r\n"
    "general Kenobi\r\n"
    "\r\n"
    "3\r\n"
    "00:00:05,000 --> 00:00:06,000\r\n"
    "\r\n"
    "4\r\n"
    "00:00:09,000 --> 00:00:08,000\r\n"
    "backwards\r\n"
    "\r\n"
    "00:00:10,000 --> 00:00:11,250\r\n"
    "no index\r\n"
)


def test_parse_srt_normalises_and_orders_entries():
    entries = parse_srt(SAMPLE_SRT)
    assert [entry.text for entry in entries] == ["Hello there, general Kenobi", "second line", "no index"]
    assert entries[0].start_time == 0
    assert entries[0].end_time == 2
    assert entries[1].start_time == pytest.approx(2.5)
    assert entries[2].end_time == pytest.approx(11.25)


def test_parse_srt_ignores_garbage():
    assert parse_srt("") == []
    assert parse_srt("not a caption file\n\nstill not") == []


def test_scene_scenario_hello_world():
    track = CaptionTrack.from_entries([CaptionEntry(0, 10, "hello world")])
    assert [(word.text, word.start_time, word.end_time) for word in track.words] == [
        ("hello", 0, 5),
        (" ", 5, pytest.approx(5.05)),
        ("world", pytest.approx(5.05), pytest.approx(10.05)),
    ]
    assert track.active_word_index(7) == 2
    assert active_word_index(track.words, 7) == 2


def test_words_rebuild_entry_text():
    entries = parse_srt(SAMPLE_SRT)
    words = derive_words(entries)
    for index, entry in enumerate(entries):
        assert "".join(word.text for word in words if word.parent_entry_index == index) == entry.text


def test_active_word_is_monotonic_in_time():
    track = CaptionTrack.from_srt(SAMPLE_SRT)
    previous = NO_HIGHLIGHT
    seen_highlight = False
    for step in range(0, 1300):
        index = track.active_word_index(step / 100)
        if index == NO_HIGHLIGHT:
            if seen_highlight:
                # Only the tail after the final word's hold may drop the highlight again.
                assert step / 100 >= max(word.end_time for word in track.words) + TRAILING_HOLD - 1e-9
            continue
        seen_highlight = True
        assert index >= previous
        previous = index


def test_active_word_edges():
    track = CaptionTrack.from_entries([CaptionEntry(1, 2, "one"), CaptionEntry(4, 5, "two")])
    assert track.active_word_index(0.0) == NO_HIGHLIGHT
    assert track.active_word_index(0.95) == 0
    # Pause between the entries keeps the last spoken word.
    assert track.active_word_index(3.0) == 0
    assert track.active_word_index(4.2) == 1
    assert track.active_word_index(5.3) == 1
    assert track.active_word_index(5.6) == NO_HIGHLIGHT
    assert track.active_word_index(float("nan")) == NO_HIGHLIGHT


def test_active_entry_lookup():
    entries = [CaptionEntry(1, 2, "one"), CaptionEntry(4, 5, "two")]
    assert active_entry_index(entries, 0.5) == NO_HIGHLIGHT
    assert active_entry_index(entries, 1.5) == 0
    assert active_entry_index(entries, 3.0) == NO_HIGHLIGHT
    assert active_entry_index(entries, 5.0) == 1


def test_word_weight_favours_long_and_punctuated_words():
    assert word_weight("a") == pytest.approx(1.08)
    assert word_weight("hello") == pytest.approx(1.4)
    assert word_weight("hello,") == pytest.approx(1.4 * 1.3)


def test_estimate_spreads_words_over_the_scene():
    words = estimate_words("Hello, world", duration=6)
    assert [word.text for word in words] == ["Hello,", " ", "world"]
    spoken = [word for word in words if not word.is_whitespace]
    assert sum(word.end_time - word.start_time for word in spoken) == pytest.approx(6)
    assert spoken[0].end_time - spoken[0].start_time > spoken[1].end_time - spoken[1].start_time
    assert words[-1].end_time == pytest.approx(6.05)


def test_estimate_without_duration_uses_speaking_rate():
    words = estimate_words("one two three")
    spoken = [word for word in words if not word.is_whitespace]
    assert sum(word.end_time - word.start_time for word in spoken) == pytest.approx(1.0)
    assert estimate_words("   ") == []


def test_fallback_track_when_captions_are_unusable():
    track = CaptionTrack.from_srt("garbage", "Narration for the scene", duration=4)
    assert track.estimated
    assert len(track.entries) == 1
    assert track.active_entry_index(100) == 0
    assert track.active_word_index(0) == 0

    empty = CaptionTrack.from_srt(None, "", duration=4)
    assert empty.words == ()
    assert empty.active_word_index(1) == NO_HIGHLIGHT
    assert empty.active_entry_index(1) == NO_HIGHLIGHT


def test_entry_word_span():
    track = CaptionTrack.from_entries([CaptionEntry(0, 1, "a b"), CaptionEntry(1, 2, "c")])
    assert track.entry_word_span(0) == (0, 3)
    assert track.entry_word_span(1) == (3, 4)
    assert track.entry_word_span(5) == (0, 0)


def test_format_timestamp():
    assert format_timestamp(0) == "00:00:00,000"
    assert format_timestamp(3661.5) == "01:01:01,500"
    assert format_timestamp(-2) == "00:00:00,000"


def test_format_caption_lines_wraps_without_dropping_words():
    text = "the quick brown fox jumps over the lazy dog and keeps running far away into the night"
    formatted = format_caption_lines(text, max_chars=20, max_lines=2)
    lines = formatted.split("\n")
    assert len(lines) == 2
    assert len(lines[0]) <= 20
    assert " ".join(formatted.split()) == text


def test_generate_srt_from_text_round_trips_through_parser():
    text = "one two three four five six seven eight nine ten"
    srt_text = generate_srt_from_text(text, duration=5)
    entries = parse_srt(srt_text)
    assert len(entries) == 2
    assert entries[0].text == "one two three four five six seven eight"
    assert entries[0].end_time == pytest.approx(4.0)
    assert entries[1].start_time == pytest.approx(4.0)
    assert entries[1].end_time == pytest.approx(5.0)
    assert generate_srt_from_text("", 5) == ""
    assert generate_srt_from_text("words", 0) == ""
