"""Unit tests for derived field calculation."""

from inky_notes.utils.text import (
    calculate_reading_time,
    calculate_word_count,
    compute_derived_fields,
    extract_plain_text,
)


class TestExtractPlainText:
    """Test cases for plain text extraction."""

    def test_strips_tags(self):
        """Test that markup tags are removed."""
        assert extract_plain_text("<p>Hello world</p>") == "Hello world"

    def test_nbsp_becomes_space(self):
        """Test that the non-breaking space entity becomes a literal space."""
        assert extract_plain_text("<p>a&nbsp;b</p>") == "a b"

    def test_other_entities_dropped(self):
        """Test that named and numeric entities are removed."""
        assert extract_plain_text("Tom &amp; Jerry&#39;s") == "Tom  Jerrys"

    def test_trims_whitespace(self):
        """Test leading and trailing whitespace is trimmed."""
        assert extract_plain_text("  <p> padded </p>\n") == "padded"

    def test_empty_content(self):
        """Test empty and None content."""
        assert extract_plain_text("") == ""
        assert extract_plain_text(None) == ""


class TestCounts:
    """Test cases for word count and reading time."""

    def test_word_count(self):
        """Test whitespace-delimited token counting."""
        assert calculate_word_count("one two\tthree\nfour") == 4

    def test_word_count_blank(self):
        """Test blank text has zero words."""
        assert calculate_word_count("") == 0
        assert calculate_word_count("   \n ") == 0

    def test_reading_time_minimum(self):
        """Test reading time never drops below one minute."""
        assert calculate_reading_time(0) == 1
        assert calculate_reading_time(200) == 1

    def test_reading_time_rounds_up(self):
        """Test partial minutes round up."""
        assert calculate_reading_time(201) == 2
        assert calculate_reading_time(1000) == 5


class TestComputeDerivedFields:
    """Test cases for compute_derived_fields."""

    def test_hello_world(self):
        """Test the basic paragraph case."""
        derived = compute_derived_fields("<p>Hello world</p>")

        assert derived.plain_text == "Hello world"
        assert derived.word_count == 2
        assert derived.reading_time == 1
        assert derived.character_count == len("<p>Hello world</p>")

    def test_mixed_markup(self):
        """Test adjacent block elements and entities."""
        derived = compute_derived_fields(
            "<h1>Budget</h1><p>Rent&nbsp;and food &amp; travel</p>"
        )

        assert derived.plain_text == "BudgetRent and food  travel"
        assert derived.word_count == 4
