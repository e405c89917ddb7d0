"""Character trie over vocabulary surface forms."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator


@dataclass
class TrieNode:
    children: Dict[str, "TrieNode"] = field(default_factory=dict)
    is_leaf: bool = False


class PrefixTrie:
    """Finds every vocabulary piece that starts a given piece of text."""

    def __init__(self, pieces: Iterable[str] = ()) -> None:
        self.root = TrieNode()
        self._size = 0
        for piece in pieces:
            self.insert(piece)

    def insert(self, piece: str) -> None:
        node = self.root
        for ch in piece:
            node = node.children.setdefault(ch, TrieNode())
        if not node.is_leaf:
            node.is_leaf = True
            self._size += 1

    def matching_prefixes(self, text: str, start: int = 0) -> Iterator[str]:
        """Yield the inserted pieces that prefix ``text[start:]``, shortest first.

        The walk is lazy: it advances one character per ``next()`` at most and
        stops as soon as it falls off the trie.
        """
        node = self.root
        for end in range(start, len(text)):
            node = node.children.get(text[end])
            if node is None:
                return
            if node.is_leaf:
                yield text[start : end + 1]

    def __contains__(self, piece: object) -> bool:
        if not isinstance(piece, str):
            return False
        node = self.root
        for ch in piece:
            node = node.children.get(ch)
            if node is None:
                return False
        return node.is_leaf

    def __len__(self) -> int:
        return self._size


__all__ = ["PrefixTrie", "TrieNode"]
