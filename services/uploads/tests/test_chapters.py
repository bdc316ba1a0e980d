import pytest

from services.uploads.domain.chapters import Chapter, parse_chapters, parse_timestamp


def test_chapters_closer_than_min_spacing_report_the_second_line():
    result = parse_chapters("00:00 A\n00:05 B", min_spacing_seconds=10)

    assert not result.is_valid
    assert len(result.errors) == 1
    assert result.errors[0].line == 2
    assert "at least 10 seconds" in result.errors[0].message


def test_first_chapter_must_start_at_zero():
    result = parse_chapters("01:00 A\n02:00 B")

    assert [error.message for error in result.errors] == [
        "First chapter must start at 00:00"
    ]


def test_single_chapter_is_rejected():
    result = parse_chapters("00:00 Only")

    assert len(result.errors) == 1
    assert "At least 2 chapters required" in result.errors[0].message


def test_duplicate_timestamps_are_rejected():
    result = parse_chapters("00:00 A\n00:00 B")

    assert len(result.errors) == 1
    assert result.errors[0].message == "Duplicate timestamp: 00:00"
    assert result.errors[0].line == 2


def test_valid_chapters_are_sorted_escaped_and_canonical():
    result = parse_chapters("0:00 Intro\n1:05:30 Deep dive\n00:30 <b>Tips & \"tricks\"</b>")

    assert result.is_valid
    assert result.chapters == [
        Chapter(title="Intro", timestamp="00:00", start_seconds=0),
        Chapter(
            title="&lt;b&gt;Tips &amp; &quot;tricks&quot;&lt;/b&gt;",
            timestamp="00:30",
            start_seconds=30,
        ),
        Chapter(title="Deep dive", timestamp="1:05:30", start_seconds=3930),
    ]


def test_every_bad_line_is_reported():
    result = parse_chapters("00:00 A\n99:00 B\nbad C\n00:20")

    lines = sorted(error.line for error in result.errors)
    assert lines == [1, 2, 3, 4]
    messages = " | ".join(str(error) for error in result.errors)
    assert "Line 2: Invalid time values" in messages
    assert "Line 3: Invalid timestamp format: bad" in messages
    assert "Line 4: Missing chapter title" in messages


def test_title_longer_than_limit_is_rejected():
    result = parse_chapters(f"00:00 Intro\n00:30 {'x' * 81}")

    assert [error.line for error in result.errors if "title" in error.message] == [2]


def test_too_many_chapters_are_rejected():
    text = "\n".join(
        f"{(i * 10) // 60:02d}:{(i * 10) % 60:02d} Part {i}" for i in range(21)
    )

    result = parse_chapters(text)

    assert len(result.errors) == 1
    assert result.errors[0].message.startswith("Maximum 20 chapters allowed")


def test_blank_text_means_no_chapters():
    result = parse_chapters("  \n\n ")

    assert result.is_valid
    assert result.chapters == []


def test_parse_timestamp_forms():
    assert parse_timestamp("5:07") == (307, "05:07")
    assert parse_timestamp("1:00:00") == (3600, "1:00:00")
    with pytest.raises(ValueError, match="Hours cannot exceed 23"):
        parse_timestamp("24:00:00")
    with pytest.raises(ValueError, match="Invalid time values"):
        parse_timestamp("10:60")


def test_only_newlines_separate_chapters():
    result = parse_chapters("00:00 Intro\u2028part one\n00:30 Next")

    assert result.is_valid
    assert [chapter.title for chapter in result.chapters] == ["Intro\u2028part one", "Next"]
