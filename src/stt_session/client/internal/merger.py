"""Index-addressed merge of server result batches into one ordered list.

Each batch carries ``result_index`` and a contiguous run of results. Entries
already known at those positions are overwritten in place (partial to final,
re-scoring); entries past the end are appended. Positions below
``result_index`` are never touched.
"""

from collections.abc import Sequence

from ...schemas.messages import TranscriptionResult, TranscriptionResultWrapper
from .exceptions import DEFAULT_ERROR_DOMAIN, ResultIndexGapError


class ResultMerger:
    """Owns the authoritative result list for one session."""

    def __init__(self, error_domain: str = DEFAULT_ERROR_DOMAIN) -> None:
        self._results: list[TranscriptionResult] = []
        self._error_domain = error_domain

    def __len__(self) -> int:
        return len(self._results)

    @property
    def results(self) -> list[TranscriptionResult]:
        """Snapshot of the merged results; mutating it has no effect here."""
        return list(self._results)

    def merge(self, wrapper: TranscriptionResultWrapper) -> list[TranscriptionResult]:
        """Apply one batch and return the full updated snapshot.

        Raises:
            ResultIndexGapError: ``result_index`` is past the current length.
                The list is left unchanged.

        """
        return self.apply(wrapper.result_index, wrapper.results)

    def apply(self, result_index: int, updates: Sequence[TranscriptionResult]) -> list[TranscriptionResult]:
        if result_index < 0:
            raise ValueError(f"result_index must be >= 0, got {result_index}")
        if result_index > len(self._results):
            raise ResultIndexGapError(result_index, len(self._results), domain=self._error_domain)

        index = result_index
        for update in updates:
            if index < len(self._results):
                self._results[index] = update
            else:
                self._results.append(update)
            index += 1

        return self.results

    @property
    def final_results(self) -> list[TranscriptionResult]:
        return [result for result in self._results if result.is_final]

    def transcript(self, final_only: bool = False) -> str:
        """Join the best hypothesis of every segment into one string."""
        source = self.final_results if final_only else self._results
        return " ".join(result.text.strip() for result in source if result.text.strip())

    def reset(self) -> None:
        self._results.clear()
