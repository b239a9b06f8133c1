from __future__ import annotations

import pytest

from realmsync.extraction.evidence_locator import (
    EvidenceLocator,
    RapidFuzzAlignmentStrategy,
    RegexAnchorStrategy,
    build_locator,
    map_evidence_to_document,
)
from realmsync.extraction.models import EvidencePosition
from realmsync.ingestion.chunker import Chunk, chunk_document

DOC = "The hero walked into the dark forest. Birds sang overhead."


def _chunk(document: str, start: int, end: int, index: int = 0) -> Chunk:
    return Chunk(text=document[start:end], start_offset=start, end_offset=end, index=index)


def test_exact_match_in_first_chunk() -> None:
    position = map_evidence_to_document("dark forest", _chunk(DOC, 0, 37), DOC)

    assert position is not None
    assert position.slice(DOC) == "dark forest"
    assert position.start == DOC.index("dark forest")
    assert position.end == position.start + len("dark forest")


def test_exact_match_is_shifted_by_chunk_offset() -> None:
    chunk = _chunk(DOC, 20, len(DOC), index=1)

    position = map_evidence_to_document("Birds sang", chunk, DOC)

    assert position == EvidencePosition(start=38, end=48)
    assert position.slice(DOC) == "Birds sang"


def test_round_trip_for_every_chunk_of_a_long_document() -> None:
    sentences = [f"Sentence number {i} mentions the tower of Vael." for i in range(600)]
    document = " ".join(sentences)
    chunks = chunk_document(document, 2000, 200, min_chunk_chars=500, lookback_chars=800)
    assert len(chunks) > 3

    for chunk in chunks:
        a = chunk.start_offset + 10
        b = a + 40
        evidence = document[a:b]
        position = map_evidence_to_document(evidence, chunk, document)
        assert position is not None
        # the first occurrence inside the chunk is what gets reported
        assert position.start == chunk.start_offset + chunk.text.index(evidence)
        assert position.slice(document) == evidence


def test_fuzzy_fallback_tolerates_swapped_short_words() -> None:
    document = "Long ago, Aldric carried the silver blade into the mountain keep."
    evidence = "Aldric carried a silver blade to mountain keep"

    position = map_evidence_to_document(evidence, _chunk(document, 0, 20), document)

    assert position is not None
    span = position.slice(document)
    assert span.startswith("Aldric")
    for word in ("Aldric", "carried", "silver", "blade"):
        assert word in span


def test_fuzzy_fallback_is_case_insensitive() -> None:
    document = "The Order of the Veil met beneath Greyharbor."
    position = map_evidence_to_document("order veil beneath greyharbor", _chunk(document, 0, 10), document)

    assert position is not None
    assert position.slice(document) == "Order of the Veil met beneath Greyharbor"


def test_fuzzy_fallback_escapes_regex_characters() -> None:
    document = "The ledger (volume 3) lists payments* to Mirel."
    position = map_evidence_to_document("ledger (volume lists payments*", _chunk(document, 0, 5), document)

    assert position is not None
    assert position.slice(document).startswith("ledger (volume")


@pytest.mark.parametrize("evidence", ["", "   ", "a an the of to", "was it so"])
def test_no_usable_anchor_returns_none(evidence: str) -> None:
    chunk = _chunk(DOC, 0, 10)

    assert map_evidence_to_document(evidence, chunk, DOC) is None


def test_no_match_anywhere_returns_none() -> None:
    assert map_evidence_to_document("dragons breathe emerald flame", _chunk(DOC, 0, 37), DOC) is None


def test_anchor_words_take_first_five_long_words() -> None:
    strategy = RegexAnchorStrategy()

    words = strategy.anchor_words("  the  quick brown\nfox jumps over lazy sleeping dogs  ")

    assert words == ["quick", "brown", "jumps", "over", "lazy"]


def test_rapidfuzz_strategy_finds_reworded_quote() -> None:
    document = (
        "Chapter one. The queen ordered the western gates sealed before nightfall. "
        "Nobody argued."
    )
    locator = EvidenceLocator(RapidFuzzAlignmentStrategy(min_score=80))
    evidence = "The queen ordered the western gate sealed before nightfall"

    position = locator.locate(evidence, _chunk(document, 0, 12), document)

    assert position is not None
    assert "western gates sealed" in position.slice(document)


def test_rapidfuzz_strategy_rejects_low_scores() -> None:
    strategy = RapidFuzzAlignmentStrategy(min_score=95)

    assert strategy.find(DOC, "completely unrelated words about ships") is None


def test_exact_path_wins_over_strategy() -> None:
    class _Exploding:
        def find(self, document: str, evidence: str) -> EvidencePosition:
            raise AssertionError("fallback should not run")

    locator = EvidenceLocator(_Exploding())

    assert locator.locate("Birds", _chunk(DOC, 0, len(DOC)), DOC) == EvidencePosition(start=38, end=43)


def test_build_locator() -> None:
    assert isinstance(build_locator("regex").strategy, RegexAnchorStrategy)
    fuzzy = build_locator("rapidfuzz", min_score=70)
    assert isinstance(fuzzy.strategy, RapidFuzzAlignmentStrategy)
    assert fuzzy.strategy.min_score == 70

    with pytest.raises(ValueError, match="Unknown evidence strategy"):
        build_locator("semantic")
