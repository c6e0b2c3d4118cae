"""Splitting of command line directives into clauses and keyword matching."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

QUOTES = "'\""


def strip_quotes(value: str) -> str:
    """Removes surrounding whitespace and quotes."""
    return value.strip().strip(QUOTES).strip()


@dataclass
class Clause:
    """One keyword[=value] directive."""

    text: str
    keyword: str
    value: str
    value_offset: int = 0
    option: Optional[str] = None

    @property
    def bare(self) -> bool:
        """Whether the directive has no value separator."""
        return self.value_offset == 0


def tokenize(directive: str) -> Clause:
    """Splits the directive into keyword, value and an optional flag character.

    "QosLevel+=normal" gives keyword "QosLevel", option "+" and value "normal".
    A directive without "=" is a bare value.
    """
    end = directive.find("=")
    if end <= 0:
        return Clause(text=directive, keyword=directive, value=strip_quotes(directive))

    keyword = directive[:end]
    option = None
    if keyword[-1] in "+-" and len(keyword) > 1:
        option = keyword[-1]
        keyword = keyword[:-1]
    return Clause(
        text=directive,
        keyword=keyword,
        value=strip_quotes(directive[end + 1 :]),
        value_offset=end + 1,
        option=option,
    )


def keyword_matches(word: str, keyword: str, min_length: int) -> bool:
    """Checks if the word is an abbreviation of the keyword."""
    word = word.strip().lower()
    return len(word) >= min_length and keyword.lower().startswith(word)


@dataclass(frozen=True)
class KeywordEntry:
    """Row of a keyword table."""

    keyword: str
    min_length: int
    target: str


class KeywordTable:
    """Declarative mapping of keyword abbreviations to handler names.

    The first entry in declaration order which the word abbreviates wins.
    """

    def __init__(self, entries: Iterable[tuple]) -> None:
        """Builds table from (keyword, min_length[, target]) tuples."""
        self.entries = [
            KeywordEntry(item[0], item[1], item[2] if len(item) > 2 else item[0].lower())
            for item in entries
        ]

    def match(self, word: str) -> Optional[str]:
        """Returns target of the first matching entry."""
        for entry in self.entries:
            if keyword_matches(word, entry.keyword, entry.min_length):
                return entry.target
        return None

    def __contains__(self, word: str) -> bool:
        return self.match(word) is not None


def split_names(value: str) -> list[str]:
    """Splits comma-separated names, dropping empty and duplicate ones."""
    result: list[str] = []
    seen = set()
    for item in value.split(","):
        name = strip_quotes(item)
        if not name or name.lower() in seen:
            continue
        seen.add(name.lower())
        result.append(name)
    return result


def add_names(target: list[str], value: str) -> int:
    """Appends new names from the comma-separated value, returns how many were added."""
    known = {name.lower() for name in target}
    added = 0
    for name in split_names(value):
        if name.lower() in known:
            continue
        known.add(name.lower())
        target.append(name)
        added += 1
    return added
