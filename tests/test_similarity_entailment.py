import pytest

from app.services.extraction.canonicalizer import canonicalize
from app.services.verdict.entailment import classify_relationship, has_contradiction_keyword, score_evidence
from app.services.verdict.similarity import stem, tfidf_cosine, tokenize
from app.services.verdict.types import EvidenceItem, Relationship


def test_stemming_merges_inflections():
    assert stem("orbits") == stem("orbiting") == stem("orbited") == "orbit"


def test_tokenize_drops_stopwords():
    assert tokenize("The Eiffel Tower is in Paris") == ["eiffel", "tower", "pari"]


def test_identical_texts_are_fully_similar():
    assert tfidf_cosine("The Earth orbits the Sun", "the earth orbits the sun") == pytest.approx(1.0)


def test_disjoint_texts_have_zero_similarity():
    assert tfidf_cosine("apples oranges", "trains planes") == 0.0
    assert tfidf_cosine("", "anything") == 0.0


def test_similarity_is_symmetric_and_bounded():
    a = "The Eiffel Tower is in Paris"
    b = "The Eiffel Tower is a wrought-iron lattice tower in Paris, France."

    score = tfidf_cosine(a, b)
    assert 0.0 < score <= 1.0
    assert score == pytest.approx(tfidf_cosine(b, a))


def test_high_similarity_is_entailment():
    assert classify_relationship("claim", "anything", 0.8) == Relationship.ENTAILMENT


def test_negated_subject_mention_is_contradiction():
    relationship = classify_relationship(
        "The Eiffel Tower is in Berlin",
        "The Eiffel Tower is not in Berlin; it stands in Paris.",
        0.1,
    )

    assert relationship == Relationship.CONTRADICTION


def test_low_similarity_without_negation_is_neutral():
    assert classify_relationship("The Eiffel Tower is in Berlin", "The Eiffel Tower is in Paris", 0.1) == (
        Relationship.NEUTRAL
    )


def test_negation_about_another_subject_is_neutral():
    relationship = classify_relationship("The Eiffel Tower is in Berlin", "Bananas are not vegetables", 0.05)

    assert relationship == Relationship.NEUTRAL


def test_contradiction_keywords():
    assert has_contradiction_keyword("This is a myth")
    assert has_contradiction_keyword("It isn't true")
    assert not has_contradiction_keyword("Paris is the capital of France")


def test_score_evidence_skips_empty_snippets():
    items = [
        EvidenceItem(snippet="", provider="google"),
        EvidenceItem(snippet="The Eiffel Tower is in Paris, France.", provider="wikipedia"),
    ]
    claim = "The Eiffel Tower is in Paris"

    scored = score_evidence(claim, items, canonicalize(claim))

    assert len(scored) == 1
    assert scored[0].relationship == Relationship.ENTAILMENT
    assert scored[0].similarity > 0.6
