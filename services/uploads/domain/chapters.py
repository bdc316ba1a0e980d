"""Chapter markers parsed from free-text ``"<timestamp> <title>"`` lines.

Parsing never aborts on the first problem: every line is checked on its own
and all errors are returned together, followed by the batch-level checks
(first chapter at zero, unique start times, minimum spacing, count bounds).
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass, field
from typing import List, Mapping

MAX_CHAPTERS = 20
MIN_CHAPTER_SPACING_SECONDS = 10
MAX_CHAPTER_TITLE_LENGTH = 80

_TIMESTAMP_RE = re.compile(r"^(\d{1,2}):(\d{1,2})(?::(\d{1,2}))?$")


@dataclass(frozen=True)
class Chapter:
    title: str
    timestamp: str
    start_seconds: int

    def to_dict(self) -> dict[str, object]:
        return {
            "title": self.title,
            "timestamp": self.timestamp,
            "start_seconds": self.start_seconds,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, object]) -> "Chapter":
        return cls(
            title=str(payload["title"]),
            timestamp=str(payload["timestamp"]),
            start_seconds=int(payload["start_seconds"]),
        )


@dataclass(frozen=True)
class ChapterError:
    line: int
    message: str
    raw_line: str = ""

    def __str__(self) -> str:
        return f"Line {self.line}: {self.message}"


@dataclass(frozen=True)
class ChapterParseResult:
    chapters: List[Chapter] = field(default_factory=list)
    errors: List[ChapterError] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class _ParsedLine:
    line: int
    raw_line: str
    chapter: Chapter


def parse_timestamp(timestamp: str) -> tuple[int, str]:
    """Return ``(start_seconds, canonical_timestamp)`` for ``MM:SS`` or ``H:MM:SS``."""
    match = _TIMESTAMP_RE.match(timestamp.strip())
    if match is None:
        raise ValueError(f"Invalid timestamp format: {timestamp}")

    first, second, third = match.groups()
    if third is not None:
        hours, minutes, seconds = int(first), int(second), int(third)
    else:
        hours, minutes, seconds = 0, int(first), int(second)

    if minutes >= 60 or seconds >= 60:
        raise ValueError(f"Invalid time values in timestamp: {timestamp}")
    if hours >= 24:
        raise ValueError(f"Hours cannot exceed 23 in timestamp: {timestamp}")

    if third is not None:
        canonical = f"{hours}:{minutes:02d}:{seconds:02d}"
    else:
        canonical = f"{minutes:02d}:{seconds:02d}"
    return hours * 3600 + minutes * 60 + seconds, canonical


def parse_chapters(
    text: str,
    *,
    min_spacing_seconds: int = MIN_CHAPTER_SPACING_SECONDS,
    max_chapters: int = MAX_CHAPTERS,
    max_title_length: int = MAX_CHAPTER_TITLE_LENGTH,
) -> ChapterParseResult:
    lines = [line.strip() for line in (text or "").split("\n")]
    lines = [line for line in lines if line]
    if not lines:
        return ChapterParseResult()

    errors: List[ChapterError] = []
    parsed: List[_ParsedLine] = []
    for line_no, line in enumerate(lines, start=1):
        timestamp, _, title = line.partition(" ")
        title = title.strip()
        if not title:
            errors.append(
                ChapterError(line_no, "Missing chapter title after timestamp", line)
            )
            continue
        try:
            start_seconds, canonical = parse_timestamp(timestamp)
        except ValueError as exc:
            errors.append(ChapterError(line_no, str(exc), line))
            continue
        if len(title) > max_title_length:
            errors.append(
                ChapterError(
                    line_no,
                    f"Chapter title must be at most {max_title_length} characters",
                    line,
                )
            )
            continue
        parsed.append(
            _ParsedLine(
                line=line_no,
                raw_line=line,
                chapter=Chapter(
                    title=html.escape(title, quote=True),
                    timestamp=canonical,
                    start_seconds=start_seconds,
                ),
            )
        )

    # sorted() is stable, so equal start times keep their input order
    parsed = sorted(parsed, key=lambda item: item.chapter.start_seconds)
    errors.extend(
        _validate_batch(
            parsed, min_spacing_seconds=min_spacing_seconds, max_chapters=max_chapters
        )
    )
    return ChapterParseResult(
        chapters=[item.chapter for item in parsed], errors=errors
    )


def _validate_batch(
    parsed: List[_ParsedLine], *, min_spacing_seconds: int, max_chapters: int
) -> List[ChapterError]:
    errors: List[ChapterError] = []
    if not parsed:
        return errors

    seen: set[int] = set()
    for index, item in enumerate(parsed):
        start = item.chapter.start_seconds
        if start in seen:
            errors.append(
                ChapterError(
                    item.line,
                    f"Duplicate timestamp: {item.chapter.timestamp}",
                    item.raw_line,
                )
            )
            continue
        seen.add(start)
        if index > 0:
            gap = start - parsed[index - 1].chapter.start_seconds
            if gap < min_spacing_seconds:
                errors.append(
                    ChapterError(
                        item.line,
                        f"Chapter must be at least {min_spacing_seconds} seconds "
                        "after previous chapter",
                        item.raw_line,
                    )
                )

    first = parsed[0]
    if first.chapter.start_seconds != 0:
        errors.append(
            ChapterError(first.line, "First chapter must start at 00:00", first.raw_line)
        )

    if len(parsed) == 1:
        errors.append(
            ChapterError(
                1,
                "At least 2 chapters required if using chapters. "
                "For a single chapter, consider not using chapters.",
            )
        )
    elif len(parsed) > max_chapters:
        errors.append(
            ChapterError(
                parsed[-1].line,
                f"Maximum {max_chapters} chapters allowed. "
                f"You have {len(parsed)} chapters.",
            )
        )
    return errors
