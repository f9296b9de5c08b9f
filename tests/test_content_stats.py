"""Tests for derived content statistics."""

from genius_writer.core.content_stats import ContentStats, content_stats, count_words


def test_empty_content_is_all_zeros():
    assert content_stats("") == ContentStats(words=0, characters=0, read_time_minutes=0)


def test_whitespace_only_is_all_zeros():
    assert content_stats("  <p> </p> ") == ContentStats(words=0, characters=0, read_time_minutes=0)


def test_tags_are_word_boundaries():
    assert count_words("<p>a</p><p>b</p>") == 2


def test_entities_are_decoded():
    stats = content_stats("<p>fish &amp; chips</p>")
    assert stats.words == 3
    assert stats.characters == len("fish & chips")


def test_read_time_rounds_up():
    assert content_stats("word").read_time_minutes == 1
    assert content_stats(" ".join(["w"] * 200)).read_time_minutes == 1
    assert content_stats(" ".join(["w"] * 201)).read_time_minutes == 2


def test_to_dict():
    assert content_stats("one two").to_dict() == {
        "words": 2,
        "characters": 7,
        "read_time_minutes": 1,
    }


def test_tags_add_no_characters():
    stats = content_stats("<p>hello</p><p>world</p>")
    assert stats.words == 2
    assert stats.characters == 10
