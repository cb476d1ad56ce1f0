"""Tests for index-addressed result merging."""

import pytest

from stt_session.client import ResultIndexGapError, ResultMerger
from stt_session.schemas import TranscriptionResult, TranscriptionResultWrapper


def _result(text, final=False):
    return TranscriptionResult.model_validate({"final": final, "alternatives": [{"transcript": text}]})


def _batch(index, *results):
    return TranscriptionResultWrapper(result_index=index, results=list(results))


class TestResultMerger:
    """Overwrite-or-append semantics of ResultMerger.merge."""

    def test_first_batch_appends(self):
        merger = ResultMerger()
        snapshot = merger.merge(_batch(0, _result("hello")))

        assert [r.text for r in snapshot] == ["hello"]
        assert len(merger) == 1

    def test_partial_replaced_by_final_at_same_index(self):
        merger = ResultMerger()
        merger.merge(_batch(0, _result("hel")))
        snapshot = merger.merge(_batch(0, _result("hello", final=True)))

        assert len(snapshot) == 1
        assert snapshot[0].final is True
        assert snapshot[0].text == "hello"

    def test_batch_overlapping_the_tail_overwrites_then_appends(self):
        merger = ResultMerger()
        merger.merge(_batch(0, _result("one", True), _result("tw")))
        snapshot = merger.merge(_batch(1, _result("two", True), _result("thr")))

        assert [r.text for r in snapshot] == ["one", "two", "thr"]

    def test_positions_before_index_untouched(self):
        merger = ResultMerger()
        first = _result("keep", True)
        merger.merge(_batch(0, first, _result("x")))
        merger.merge(_batch(1, _result("y")))

        assert merger.results[0] is first

    def test_empty_batch_at_end_is_a_no_op(self):
        merger = ResultMerger()
        merger.merge(_batch(0, _result("a")))
        snapshot = merger.merge(_batch(1))

        assert [r.text for r in snapshot] == ["a"]

    def test_gap_is_rejected_and_list_unchanged(self):
        merger = ResultMerger(error_domain="test")
        merger.merge(_batch(0, _result("a")))

        with pytest.raises(ResultIndexGapError) as exc_info:
            merger.merge(_batch(3, _result("d")))

        assert exc_info.value.result_index == 3
        assert exc_info.value.known_results == 1
        assert exc_info.value.domain == "test"
        assert [r.text for r in merger.results] == ["a"]

    def test_negative_index_rejected(self):
        with pytest.raises(ValueError):
            ResultMerger().apply(-1, [_result("a")])

    def test_snapshot_is_a_copy(self):
        merger = ResultMerger()
        merger.merge(_batch(0, _result("a")))
        snapshot = merger.results
        snapshot.clear()

        assert len(merger) == 1

    def test_transcript_and_final_results(self):
        merger = ResultMerger()
        merger.merge(_batch(0, _result(" hello ", True), _result("wor")))

        assert merger.transcript() == "hello wor"
        assert merger.transcript(final_only=True) == "hello"
        assert [r.text for r in merger.final_results] == [" hello "]

    def test_reset(self):
        merger = ResultMerger()
        merger.merge(_batch(0, _result("a")))
        merger.reset()

        assert len(merger) == 0
        merger.merge(_batch(0, _result("b")))
        assert merger.transcript() == "b"
