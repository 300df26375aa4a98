"""
Symbol list helpers
"""

from typing import Iterable, Iterator, List, Set, Tuple, TypeVar

from .retry import base_asset

T = TypeVar("T")


def parse_ignored_symbols(text: str) -> Set[str]:
    """Whitespace-separated coin list -> uppercase set"""
    return {token.upper() for token in (text or "").split() if token}


def filter_ignored(symbols: Iterable[str], ignored: Set[str]) -> Tuple[List[str], List[str]]:
    """Split symbols into (kept, ignored) by base coin"""
    kept, dropped = [], []
    for symbol in symbols:
        if base_asset(symbol) in ignored:
            dropped.append(symbol)
        else:
            kept.append(symbol)
    return kept, dropped


def chunked(items: List[T], size: int) -> Iterator[List[T]]:
    """Consecutive slices of at most `size` items"""
    if size <= 0:
        raise ValueError("size must be positive")
    for start in range(0, len(items), size):
        yield items[start:start + size]
