"""Tests for locating detected questions in a document."""
import pytest

from app.models.document import MatchStrategy
from app.services.flattener import flatten
from app.services.question_locator import (
    QuestionLocator,
    build_question_pattern,
    sanitize_candidates,
)
from app.utils.helpers import normalize_question, similarity
from tests.conftest import make_document


@pytest.fixture
def locator() -> QuestionLocator:
    return QuestionLocator(similarity_threshold=0.8)


def test_literal_match_resolves_to_paragraph_end(locator):
    flat = flatten(make_document(["Intro text", "What is 2+2?"]))
    [question] = locator.locate(flat, ["What is 2+2?"])
    # "Intro text\n" occupies [1, 12), the question paragraph [12, 25)
    assert question.insertion_offset == 25
    assert question.strategy == MatchStrategy.LITERAL
    assert question.similarity == 1.0


def test_literal_match_ignores_case_and_trailing_punctuation(locator):
    flat = flatten(make_document(["WHAT IS 2+2?!"]))
    for candidate in ("what is 2+2", "What is 2+2?", "what is 2+2??"):
        [question] = locator.locate(flat, [candidate])
        assert question.insertion_offset == 15
        assert question.strategy == MatchStrategy.LITERAL


def test_each_literal_occurrence_becomes_a_question(locator):
    flat = flatten(make_document(["Is it done?", "Notes", "Is it done?"]))
    questions = locator.locate(flat, ["Is it done?"])
    assert [q.insertion_offset for q in questions] == [13, 31]
    assert all(q.order == 0 for q in questions)


def test_fuzzy_match_accepted_at_or_above_threshold(locator):
    flat = flatten(make_document(["Where do birds sleep?"]))
    candidate = "Where to bards sleap?"
    assert similarity(
        normalize_question(candidate), normalize_question("Where do birds sleep?")
    ) == pytest.approx(0.85)

    [question] = locator.locate(flat, [candidate])
    assert question.strategy == MatchStrategy.FUZZY
    assert question.insertion_offset == 23
    assert question.similarity == pytest.approx(0.85)
    assert question.match_start is None


def test_fuzzy_match_below_threshold_is_dropped(locator):
    flat = flatten(make_document(["Where do birds sleep?"]))
    candidate = "Where do birds sleep during cold winters?"
    _, score = QuestionLocator.best_paragraph(flat, candidate)
    assert score == pytest.approx(0.5)

    assert locator.locate(flat, [candidate]) == []


def test_fuzzy_picks_most_similar_paragraph(locator):
    flat = flatten(make_document([
        "How many moons does Mars have?",
        "How many moons does Jupiter have?",
    ]))
    [question] = locator.locate(flat, ["How many moons does Jupyter has?"])
    assert question.strategy == MatchStrategy.FUZZY
    # second paragraph: [32, 66)
    assert question.insertion_offset == 66


def test_literal_match_wins_over_fuzzy(locator):
    flat = flatten(make_document(["What is 2+3?", "What is 2+2?"]))
    [question] = locator.locate(flat, ["What is 2+2?"])
    assert question.strategy == MatchStrategy.LITERAL
    assert question.insertion_offset == 27


def test_unmatched_question_is_dropped_not_guessed(locator):
    flat = flatten(make_document(["Completely unrelated paragraph."]))
    assert locator.locate(flat, ["Who painted the Mona Lisa?"]) == []


def test_duplicates_and_junk_candidates_are_removed(locator):
    flat = flatten(make_document(["What is 2+2?"]))
    questions = locator.locate(flat, ["What is 2+2?", "what is 2+2", "   ", 42, None])
    assert len(questions) == 1
    assert questions[0].text == "What is 2+2?"


def test_results_keep_detection_order(locator):
    flat = flatten(make_document(["First one?", "Second one?"]))
    questions = locator.locate(flat, ["Second one?", "First one?"])
    assert [q.text for q in questions] == ["Second one?", "First one?"]
    assert [q.order for q in questions] == [0, 1]


def test_empty_document_locates_nothing(locator):
    flat = flatten(make_document([]))
    assert locator.locate(flat, ["Anything?"]) == []


def test_sanitize_candidates_strips_and_filters():
    assert sanitize_candidates([" a? ", "", 3, "b?"]) == ["a?", "b?"]
    assert sanitize_candidates(None) == []


def test_build_question_pattern_escapes_regex_characters():
    pattern = build_question_pattern("Is (a+b)*c valid?")
    assert pattern.search("so: is (a+b)*c valid??")
    assert build_question_pattern("???") is None


def test_threshold_must_be_a_fraction():
    with pytest.raises(ValueError):
        QuestionLocator(similarity_threshold=1.5)
