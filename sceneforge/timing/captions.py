"""Caption timing: SubRip parsing, word-level timing and highlight lookup.

Everything in here is pure. Parsing sanitises external input once; the
lookups (``CaptionTrack.active_word_index`` and friends) run on every
preview tick and rendered frame and are O(log n) in the number of words.
"""

from __future__ import annotations

import math
import re
from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Iterable, Sequence

NO_HIGHLIGHT = -1
WHITESPACE_DURATION = 0.05
HIGHLIGHT_TOLERANCE = 0.1
TRAILING_HOLD = 0.5
WORDS_PER_SECOND = 3.0
LETTER_WEIGHT = 0.08
PUNCTUATION_WEIGHT = 1.3
MAX_WORDS_PER_CAPTION = 8
MAX_CHARS_PER_LINE = 42
MAX_LINES_PER_CAPTION = 2

_TOKENS = re.compile(r"(\s+)")
_BLOCK_BREAK = re.compile(r"\n\s*\n")
_TIMECODE = re.compile(
    r"(\d{1,2}):(\d{2}):(\d{2})[,.](\d{3})\s*-->\s*(\d{1,2}):(\d{2}):(\d{2})[,.](\d{3})"
)
_PUNCTUATION = re.compile(r"[.,!?;:]")
_NON_WORD = re.compile(r"[^\w]")


@dataclass(frozen=True)
class CaptionEntry:
    start_time: float
    end_time: float
    text: str

    @property
    def duration(self) -> float:
        return max(0.0, self.end_time - self.start_time)


@dataclass(frozen=True)
class Word:
    text: str
    start_time: float
    end_time: float
    parent_entry_index: int

    @property
    def is_whitespace(self) -> bool:
        return self.text.isspace()


def split_tokens(text: str) -> list[str]:
    """Split on whitespace, keeping each whitespace run as its own token."""
    return [token for token in _TOKENS.split(text) if token]


def _timecode_seconds(hours: str, minutes: str, seconds: str, millis: str) -> float:
    return int(hours) * 3600 + int(minutes) * 60 + int(seconds) + int(millis) / 1000.0


def parse_srt(text: str) -> list[CaptionEntry]:
    if not isinstance(text, str) or not text.strip():
        return []
    normalized = text.lstrip("\ufeff").replace("\r\n", "\n").replace("\r", "\n")
    entries: list[CaptionEntry] = []
    for block in _BLOCK_BREAK.split(normalized.strip()):
        lines = [line.strip() for line in block.split("\n") if line.strip()]
        # The sequence number is optional; the timecode is one of the first two lines.
        timecode_at = next((idx for idx, line in enumerate(lines[:2]) if "-->" in line), None)
        if timecode_at is None:
            continue
        match = _TIMECODE.search(lines[timecode_at])
        if not match:
            continue
        groups = match.groups()
        start = _timecode_seconds(*groups[:4])
        end = _timecode_seconds(*groups[4:])
        content = " ".join(lines[timecode_at + 1 :]).strip()
        if not content or end < start:
            continue
        entries.append(CaptionEntry(start_time=start, end_time=end, text=content))
    entries.sort(key=lambda entry: entry.start_time)
    return entries


def _entry_words(entry: CaptionEntry, entry_index: int) -> list[Word]:
    tokens = split_tokens(entry.text)
    spoken = sum(1 for token in tokens if not token.isspace())
    per_word = entry.duration / spoken if spoken else 0.0
    cursor = entry.start_time
    words: list[Word] = []
    for token in tokens:
        step = WHITESPACE_DURATION if token.isspace() else per_word
        words.append(Word(text=token, start_time=cursor, end_time=cursor + step, parent_entry_index=entry_index))
        cursor += step
    return words


def derive_words(entries: Iterable[CaptionEntry]) -> list[Word]:
    words: list[Word] = []
    for index, entry in enumerate(entries):
        words.extend(_entry_words(entry, index))
    return words


def word_weight(token: str) -> float:
    weight = 1 + LETTER_WEIGHT * len(_NON_WORD.sub("", token))
    if _PUNCTUATION.search(token):
        weight *= PUNCTUATION_WEIGHT
    return weight


def estimate_words(text: str, duration: float | None = None) -> list[Word]:
    """Approximate word timings for narration that has no caption file.

    The speaking window is the scene duration when one is known, otherwise
    three words per second. Each word gets a share of the window
    proportional to its weight: longer words and words carrying punctuation
    take longer. Whitespace tokens take a fixed 0.05s. This is an estimate,
    not a transcription.
    """
    tokens = split_tokens(text or "")
    spoken = [token for token in tokens if not token.isspace()]
    if not spoken:
        return []
    if duration is not None and math.isfinite(duration) and duration > 0:
        window = duration
    else:
        window = len(spoken) / WORDS_PER_SECOND
    total_weight = sum(word_weight(token) for token in spoken)
    cursor = 0.0
    words: list[Word] = []
    for token in tokens:
        if token.isspace():
            step = WHITESPACE_DURATION
        else:
            step = window * word_weight(token) / total_weight
        words.append(Word(text=token, start_time=cursor, end_time=cursor + step, parent_entry_index=0))
        cursor += step
    return words


@dataclass(frozen=True)
class CaptionTrack:
    entries: tuple[CaptionEntry, ...] = ()
    words: tuple[Word, ...] = ()
    estimated: bool = False
    _max_ends: tuple[float, ...] = field(init=False, repr=False, compare=False)
    _entry_starts: tuple[float, ...] = field(init=False, repr=False, compare=False)
    _entry_spans: tuple[tuple[int, int], ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        running: list[float] = []
        latest = -math.inf
        for word in self.words:
            latest = max(latest, word.end_time)
            running.append(latest)
        spans: list[list[int]] = [[0, 0] for _ in self.entries]
        for index, word in enumerate(self.words):
            if 0 <= word.parent_entry_index < len(spans):
                span = spans[word.parent_entry_index]
                if span[1] == 0:
                    span[0] = index
                span[1] = index + 1
        object.__setattr__(self, "_max_ends", tuple(running))
        object.__setattr__(self, "_entry_starts", tuple(entry.start_time for entry in self.entries))
        object.__setattr__(self, "_entry_spans", tuple((span[0], span[1]) for span in spans))

    @classmethod
    def from_entries(cls, entries: Sequence[CaptionEntry]) -> CaptionTrack:
        ordered = sorted(entries, key=lambda entry: entry.start_time)
        return cls(entries=tuple(ordered), words=tuple(derive_words(ordered)))

    @classmethod
    def from_text(cls, text: str, duration: float | None = None) -> CaptionTrack:
        words = estimate_words(text, duration)
        if not words:
            return cls(estimated=True)
        entry = CaptionEntry(start_time=0.0, end_time=words[-1].end_time, text=text)
        return cls(entries=(entry,), words=tuple(words), estimated=True)

    @classmethod
    def from_srt(cls, srt_text: str | None, fallback_text: str = "", duration: float | None = None) -> CaptionTrack:
        entries = parse_srt(srt_text) if srt_text else []
        if entries:
            return cls.from_entries(entries)
        return cls.from_text(fallback_text, duration)

    def active_word_index(self, current_time: float) -> int:
        """Index of the word to highlight at ``current_time``, or ``NO_HIGHLIGHT``.

        While any word is highlighted the index never decreases as time moves
        forward. The one exception is the end of the track: once
        ``TRAILING_HOLD`` seconds have passed after the last word ends, the
        index drops back to ``NO_HIGHLIGHT`` and stays there.
        """
        if not self.words or current_time != current_time:
            return NO_HIGHLIGHT
        # First word whose end (plus tolerance) lies after current_time.
        candidate = bisect_right(self._max_ends, current_time - HIGHLIGHT_TOLERANCE)
        if candidate < len(self.words):
            if self.words[candidate].start_time - HIGHLIGHT_TOLERANCE <= current_time:
                return candidate
            if candidate == 0:
                return NO_HIGHLIGHT
            # Pause between two words: hold the one that finished last.
            return candidate - 1
        if current_time < self._max_ends[-1] + TRAILING_HOLD:
            return len(self.words) - 1
        return NO_HIGHLIGHT

    def active_entry_index(self, current_time: float) -> int:
        if not self.entries or current_time != current_time:
            return NO_HIGHLIGHT
        if self.estimated:
            return 0
        index = bisect_right(self._entry_starts, current_time) - 1
        if index >= 0 and current_time <= self.entries[index].end_time:
            return index
        return NO_HIGHLIGHT

    def entry_word_span(self, entry_index: int) -> tuple[int, int]:
        if 0 <= entry_index < len(self._entry_spans):
            return self._entry_spans[entry_index]
        return (0, 0)


def active_word_index(words: CaptionTrack | Sequence[Word], current_time: float) -> int:
    track = words if isinstance(words, CaptionTrack) else CaptionTrack(words=tuple(words))
    return track.active_word_index(current_time)


def active_entry_index(entries: Sequence[CaptionEntry], current_time: float) -> int:
    return CaptionTrack(entries=tuple(entries)).active_entry_index(current_time)


def format_timestamp(seconds: float) -> str:
    total_ms = int(round(max(0.0, seconds) * 1000))
    hours = total_ms // 3_600_000
    minutes = (total_ms % 3_600_000) // 60_000
    secs = (total_ms % 60_000) // 1000
    millis = total_ms % 1000
    return f"{hours:02}:{minutes:02}:{secs:02},{millis:03}"


def format_srt(entries: Iterable[CaptionEntry]) -> str:
    blocks = [
        f"{number}\n{format_timestamp(entry.start_time)} --> {format_timestamp(entry.end_time)}\n{entry.text}\n"
        for number, entry in enumerate(entries, start=1)
    ]
    return "\n".join(blocks)


def format_caption_lines(
    text: str,
    max_chars: int = MAX_CHARS_PER_LINE,
    max_lines: int = MAX_LINES_PER_CAPTION,
) -> str:
    """Greedy wrap; words that do not fit in ``max_lines`` join the last line."""
    lines: list[str] = []
    for word in text.split():
        if lines and len(lines[-1]) + 1 + len(word) <= max_chars:
            lines[-1] = f"{lines[-1]} {word}"
        elif len(lines) < max_lines:
            lines.append(word)
        else:
            lines[-1] = f"{lines[-1]} {word}"
    return "\n".join(lines)


def generate_srt_from_text(
    text: str,
    duration: float,
    start: float = 0.0,
    max_words_per_caption: int = MAX_WORDS_PER_CAPTION,
) -> str:
    """SubRip captions for narration with evenly distributed word time."""
    words = (text or "").split()
    if not words or duration <= 0:
        return ""
    per_word = duration / len(words)
    step = max(1, max_words_per_caption)
    entries = []
    for offset in range(0, len(words), step):
        chunk = words[offset : offset + step]
        entries.append(
            CaptionEntry(
                start_time=start + offset * per_word,
                end_time=start + (offset + len(chunk)) * per_word,
                text=format_caption_lines(" ".join(chunk)),
            )
        )
    return format_srt(entries)
