"""
Result types passed between the pipeline stages.

Each stage returns one variant of a closed union instead of raising, so the
orchestrator can branch on the variant with ``isinstance``. ``Failed`` is
shared by the fetch, extraction and answer stages.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Union


class FailureKind(str, Enum):
    TIMEOUT = "timeout"
    NETWORK = "network"
    LAUNCH = "launch"
    EXIT = "exit"
    EMPTY = "empty"
    ABORTED = "aborted"


@dataclass(frozen=True)
class Failed:
    kind: FailureKind
    reason: str
    diagnostic: str = ""

    @classmethod
    def aborted(cls) -> "Failed":
        return cls(FailureKind.ABORTED, "Aborted")

    @property
    def is_aborted(self) -> bool:
        return self.kind is FailureKind.ABORTED


@dataclass(frozen=True)
class Rendered:
    markup: str
    final_url: str


@dataclass(frozen=True)
class Redirected:
    target_url: str


@dataclass(frozen=True)
class Extracted:
    text: str


@dataclass(frozen=True)
class Answered:
    text: str


FetchOutcome = Union[Rendered, Redirected, Failed]
ExtractionOutcome = Union[Extracted, Failed]
AnswerOutcome = Union[Answered, Failed]


# Output strategies

@dataclass(frozen=True)
class ReturnRaw:
    truncate: bool = False


@dataclass(frozen=True)
class Summarize:
    pass


@dataclass(frozen=True)
class AnswerPrompt:
    pass


@dataclass(frozen=True)
class FallbackRaw:
    note: str


Decision = Union[ReturnRaw, Summarize, AnswerPrompt, FallbackRaw]
