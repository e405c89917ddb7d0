"""Segmentation lattice and Viterbi search for unigram tokenization."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional


@dataclass
class LatticeNode:
    token_id: int
    node_id: int
    pos: int
    length: int
    score: float
    prev: Optional[int] = None
    backtrace_score: float = 0.0


class SegmentationLattice:
    """Candidate token spans over one normalized string.

    Nodes live in ``self.nodes`` and refer to each other by index. Node 0 is
    the BOS sentinel (ends at offset 0) and node 1 the EOS sentinel (begins at
    the end of the string).
    """

    def __init__(self, sentence: str, bos_token_id: int, eos_token_id: int):
        self.sentence = sentence
        self.size = len(sentence)
        self.nodes: List[LatticeNode] = []
        self.begin_nodes: List[List[int]] = [[] for _ in range(self.size + 1)]
        self.end_nodes: List[List[int]] = [[] for _ in range(self.size + 1)]

        self.nodes.append(LatticeNode(bos_token_id, 0, 0, 0, 0.0))
        self.nodes.append(LatticeNode(eos_token_id, 1, self.size, 0, 0.0))
        self.end_nodes[0].append(0)
        self.begin_nodes[self.size].append(1)

    def insert(self, pos: int, length: int, score: float, token_id: int) -> LatticeNode:
        node_id = len(self.nodes)
        node = LatticeNode(token_id, node_id, pos, length, score)
        self.nodes.append(node)
        self.begin_nodes[pos].append(node_id)
        self.end_nodes[pos + length].append(node_id)
        return node

    def viterbi(self) -> List[LatticeNode]:
        """Return the best-scoring path without sentinels, or ``[]`` if none exists."""
        for pos in range(self.size + 1):
            if not self.begin_nodes[pos]:
                return []
            for right_id in self.begin_nodes[pos]:
                right = self.nodes[right_id]
                right.prev = None
                best_id: Optional[int] = None
                best_score = 0.0
                for left_id in self.end_nodes[pos]:
                    score = self.nodes[left_id].backtrace_score + right.score
                    # strict comparison: earlier candidates win exact ties
                    if best_id is None or score > best_score:
                        best_id = left_id
                        best_score = score
                if best_id is None:
                    return []
                right.prev = best_id
                right.backtrace_score = best_score

        eos = self.nodes[self.begin_nodes[self.size][0]]
        if eos.prev is None:
            return []
        results: List[LatticeNode] = []
        node = self.nodes[eos.prev]
        while node.prev is not None:
            results.append(node)
            node = self.nodes[node.prev]
        results.reverse()
        return results

    def piece(self, node: LatticeNode) -> str:
        return self.sentence[node.pos : node.pos + node.length]

    def tokens(self) -> List[str]:
        return [self.piece(node) for node in self.viterbi()]

    def token_ids(self) -> List[int]:
        return [node.token_id for node in self.viterbi()]


__all__ = ["LatticeNode", "SegmentationLattice"]
