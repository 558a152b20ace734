"""Build outcomes and the quality criteria used to select an upstream build."""

from __future__ import annotations

import re
from enum import Enum, IntEnum


class Outcome(IntEnum):
    """Final result of a finished build, ordered worst to best.

    ``ABORTED`` and ``NOT_BUILT`` rank below ``FAILURE`` so that no criterion
    ever accepts them. A build that is still running has no outcome at all
    (``None``).
    """

    ABORTED = -2
    NOT_BUILT = -1
    FAILURE = 0
    UNSTABLE = 1
    SUCCESS = 2

    def is_better_or_equal(self, other: Outcome) -> bool:
        """Inclusive comparison: ``SUCCESS.is_better_or_equal(SUCCESS)`` is True."""
        return self >= other

    @classmethod
    def parse(cls, value: str | Outcome) -> Outcome:
        """Parse an outcome name such as ``"success"`` or ``"UNSTABLE"``.

        Raises:
            ValueError: If the name is not a known outcome.
        """
        if isinstance(value, Outcome):
            return value
        key = value.strip().upper().replace("-", "_").replace(" ", "_")
        try:
            return cls[key]
        except KeyError:
            raise ValueError(f"Unknown build outcome: {value!r}") from None


class Criterion(str, Enum):
    """Named minimum-quality bar for choosing a build.

    Values are the labels shown to users; ``Criterion.parse`` also accepts the
    enum names and the unspaced form (``NotFailed``), ignoring case.
    """

    ANY = "Any"
    NOT_FAILED = "Not Failed"
    SUCCESSFUL = "Successful"

    @property
    def minimum_outcome(self) -> Outcome:
        return _MINIMUM_OUTCOMES[self]

    @classmethod
    def parse(cls, value: str | Criterion | None) -> Criterion:
        """Parse a criterion label, defaulting to ``ANY`` when unrecognized."""
        if isinstance(value, Criterion):
            return value
        if not value:
            return cls.ANY
        key = _squash(value)
        for criterion in cls:
            if key in (_squash(criterion.value), _squash(criterion.name)):
                return criterion
        return cls.ANY


def _squash(label: str) -> str:
    """Lower-case ``label`` and drop separators: ``"Not Failed"`` and ``"NotFailed"`` agree."""
    return re.sub(r"[\s_-]+", "", label.lower())


_MINIMUM_OUTCOMES = {
    Criterion.ANY: Outcome.FAILURE,
    Criterion.NOT_FAILED: Outcome.UNSTABLE,
    Criterion.SUCCESSFUL: Outcome.SUCCESS,
}


def minimum_outcome(criterion: Criterion | str | None) -> Outcome:
    """Map a criterion (or its label) to the worst acceptable outcome.

    Total over every input: unknown labels fall back to ``Outcome.FAILURE``,
    which is what ``Any`` accepts.

    Example:
        >>> minimum_outcome("Not Failed")
        <Outcome.UNSTABLE: 1>
        >>> minimum_outcome("bogus")
        <Outcome.FAILURE: 0>
    """
    return Criterion.parse(criterion).minimum_outcome


def meets(outcome: Outcome | None, criterion: Criterion | str | None) -> bool:
    """Whether a finished build's outcome satisfies ``criterion``."""
    if outcome is None:
        return False
    return outcome.is_better_or_equal(minimum_outcome(criterion))
