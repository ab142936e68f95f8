"""Extract test counts from E2E runner output.

Parsing is best effort: an unrecognised format simply yields no counts.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Protocol


@dataclass(frozen=True)
class TestCounts:
    """Passed/failed/skipped counts reported by a test runner."""

    __test__ = False

    passed: int | None = None
    failed: int | None = None
    skipped: int | None = None


class ResultSummarizer(Protocol):
    """Strategy that recognises one runner's summary line."""

    def summarize(self, output: str) -> TestCounts | None: ...


class PatternSummarizer:
    """Summarizer driven by a regex with ``passed``/``failed``/``skipped`` groups."""

    def __init__(self, pattern: str | re.Pattern[str]):
        self.pattern = re.compile(pattern, re.IGNORECASE) if isinstance(pattern, str) else pattern

    def summarize(self, output: str) -> TestCounts | None:
        match = self.pattern.search(output)
        if not match:
            return None

        groups = match.groupdict()

        def count(name: str) -> int | None:
            value = groups.get(name)
            return int(value) if value is not None else None

        return TestCounts(
            passed=count("passed"),
            failed=count("failed"),
            skipped=count("skipped"),
        )


# "12 passed, 3 failed, 1 skipped" and close variants on a single line
PLAYWRIGHT_SUMMARY = PatternSummarizer(
    r"(?P<passed>\d+) passed.*?(?P<failed>\d+) failed.*?(?P<skipped>\d+) skipped"
)


class SummarizerChain:
    """Tries each summarizer in order; the first match wins."""

    def __init__(self, summarizers: Iterable[ResultSummarizer]):
        self.summarizers = list(summarizers)

    def summarize(self, output: str) -> TestCounts | None:
        for summarizer in self.summarizers:
            counts = summarizer.summarize(output)
            if counts is not None:
                return counts
        return None


def default_summarizer() -> SummarizerChain:
    """The summarizers applied to E2E output unless configured otherwise."""
    return SummarizerChain([PLAYWRIGHT_SUMMARY])
