import itertools
from datetime import datetime, timedelta, timezone

import pytest

from backend.models.schemas import RawArticle, RawSource
from backend.services.news_service import calculate_relevance_score, parse_published_at, sanitize_text

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_article(title="", description="", hours_ago=None, source="Local Paper"):
    published = (NOW - timedelta(hours=hours_ago)).isoformat() if hours_ago is not None else None
    return RawArticle(
        title=title,
        description=description,
        publishedAt=published,
        source=RawSource(name=source),
    )


class TestRelevanceScore:
    def test_recent_trusted_title_match(self):
        article = make_article(title="AI boom in tech", hours_ago=1, source="Bloomberg")

        assert calculate_relevance_score(article, "tech", now=NOW) == 7

    def test_keyword_match_is_case_insensitive(self):
        article = make_article(title="TECH stocks rally", description="Big Tech earnings")

        assert calculate_relevance_score(article, "Tech", now=NOW) == 5

    @pytest.mark.parametrize("hours_ago,expected", [
        (0.5, 2),
        (5.9, 2),
        (6, 1),
        (23.9, 1),
        (24, 0),
        (72, 0),
    ])
    def test_recency_points(self, hours_ago, expected):
        article = make_article(hours_ago=hours_ago)

        assert calculate_relevance_score(article, "nothing-matches", now=NOW) == expected

    def test_recency_is_relative_to_call_time(self):
        article = make_article(hours_ago=1)

        assert calculate_relevance_score(article, "x", now=NOW) == 2
        assert calculate_relevance_score(article, "x", now=NOW + timedelta(hours=10)) == 1

    def test_trusted_source_is_substring_match(self):
        assert calculate_relevance_score(make_article(source="Reuters UK"), "x", now=NOW) == 2
        assert calculate_relevance_score(make_article(source="reuters"), "x", now=NOW) == 0
        assert calculate_relevance_score(make_article(source="The Wall Street Journal"), "x", now=NOW) == 2

    def test_missing_fields(self):
        article = RawArticle()

        assert calculate_relevance_score(article, "business", now=NOW) == 0

    def test_unparseable_date_earns_no_recency(self):
        article = RawArticle(title="x", publishedAt="yesterday-ish")

        assert calculate_relevance_score(article, "nothing", now=NOW) == 0

    def test_score_always_within_bounds(self):
        titles = ["", "Market tech update"]
        descriptions = ["", "tech sector news"]
        ages = [None, 1, 12, 48, -3]
        sources = ["Unknown", "Financial Times", "Reuters via Bloomberg"]

        for title, description, age, source in itertools.product(titles, descriptions, ages, sources):
            score = calculate_relevance_score(make_article(title, description, age, source), "tech", now=NOW)
            assert isinstance(score, int)
            assert 0 <= score <= 10


class TestParsePublishedAt:
    def test_zulu_suffix(self):
        assert parse_published_at("2024-05-01T12:00:00Z") == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def test_naive_timestamp_is_utc(self):
        assert parse_published_at("2024-05-01T12:00:00").tzinfo == timezone.utc

    @pytest.mark.parametrize("value,microsecond", [
        ("2024-05-01T12:00:00.1234567Z", 123456),
        ("2024-05-01T12:00:00.12Z", 120000),
        ("2024-05-01T12:00:00.123+00:00", 123000),
    ])
    def test_fractional_seconds_of_any_precision(self, value, microsecond):
        published = parse_published_at(value)

        assert published == datetime(2024, 5, 1, 12, 0, 0, microsecond, tzinfo=timezone.utc)

    def test_invalid(self):
        assert parse_published_at("not a date") is None
        assert parse_published_at(None) is None


class TestSanitizeText:
    @pytest.mark.parametrize("raw,expected", [
        ("<p>Hello <b>world</b></p>", "Hello world"),
        ("Profits &amp; losses", "Profits  losses"),
        ("Caf&#233; chain expands", "Caf chain expands"),
        ("  padded  ", "padded"),
        ("5 < 6 and 7 > 3", "5  3"),
        ("unterminated <tag", "unterminated <tag"),
        ("a & b", "a & b"),
    ])
    def test_sanitize(self, raw, expected):
        assert sanitize_text(raw) == expected

    def test_empty_values(self):
        assert sanitize_text(None) == ""
        assert sanitize_text("") == ""

    @pytest.mark.parametrize("raw", [
        "<div><p>Nested</p></div>",
        "&&amp;amp;; doubled entity",
        "<<b>b>odd markup",
        "&a<i>mp; split entity",
        "plain text",
        " <br/> &nbsp; ",
    ])
    def test_idempotent(self, raw):
        once = sanitize_text(raw)

        assert sanitize_text(once) == once
        assert "<" not in once or ">" not in once[once.index("<"):]
