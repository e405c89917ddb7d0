from s2s_service.lattice import SegmentationLattice


def test_viterbi_prefers_higher_score():
    lattice = SegmentationLattice("ab", bos_token_id=100, eos_token_id=101)
    lattice.insert(0, 1, -1.0, 10)
    lattice.insert(1, 1, -1.0, 11)
    lattice.insert(0, 2, -1.5, 12)
    assert lattice.token_ids() == [12]
    assert lattice.tokens() == ["ab"]


def test_viterbi_ties_go_to_first_inserted():
    lattice = SegmentationLattice("ab", 100, 101)
    lattice.insert(0, 1, -1.0, 10)
    lattice.insert(1, 1, -1.0, 11)
    lattice.insert(0, 2, -2.0, 12)
    assert lattice.token_ids() == [10, 11]

    lattice = SegmentationLattice("ab", 100, 101)
    lattice.insert(0, 2, -2.0, 12)
    lattice.insert(0, 1, -1.0, 10)
    lattice.insert(1, 1, -1.0, 11)
    assert lattice.token_ids() == [12]


def test_viterbi_returns_empty_when_an_offset_has_no_edge():
    lattice = SegmentationLattice("ab", 100, 101)
    lattice.insert(0, 1, -1.0, 10)
    assert lattice.viterbi() == []


def test_viterbi_on_empty_sentence():
    lattice = SegmentationLattice("", 100, 101)
    assert lattice.viterbi() == []


def test_back_pointers_are_arena_indices():
    lattice = SegmentationLattice("abc", 100, 101)
    a = lattice.insert(0, 1, -1.0, 1)
    bc = lattice.insert(1, 2, -1.0, 2)
    lattice.insert(1, 1, -3.0, 3)
    lattice.insert(2, 1, -3.0, 4)
    path = lattice.viterbi()
    assert [node.node_id for node in path] == [a.node_id, bc.node_id]
    assert bc.prev == a.node_id
    assert a.prev == 0
    assert bc.backtrace_score == -2.0
    assert lattice.piece(bc) == "bc"
    for node in lattice.nodes:
        assert node.pos + node.length <= lattice.size
