import json

import pytest

from s2s_service.errors import ConfigurationError
from s2s_service.tokenizer import UnigramTokenizer

# (text, expected ids, expected decode with special tokens kept)
CORPUS = [
    ("the cat sat", [4, 5, 6, 1], "the cat sat</s>"),
    ("the mat.", [4, 8, 17, 1], "the mat.</s>"),
    ("cat on the mat", [5, 7, 4, 8, 1], "cat on the mat</s>"),
    ("  the   cat  ", [4, 5, 1], "the cat</s>"),
    ("sat.", [6, 17, 1], "sat.</s>"),
    ("hat", [3, 10, 15, 1], "hat</s>"),
    ("", [1], "</s>"),
    ("the dog", [4, 3, 2, 18, 2, 1], "the <unk> o<unk> </s>"),
]


def test_special_ids_and_scores(tokenizer):
    assert tokenizer.eos_token_id == 1
    assert tokenizer.unk_token_id == 2
    assert tokenizer.unk_token == "<unk>"
    assert tokenizer.unk_score == pytest.approx(-15.0)
    assert tokenizer.vocab[2].score == pytest.approx(-15.0)
    assert tokenizer.special_token_ids == {0, 1, 2}
    assert tokenizer.bos_token_id == tokenizer.unk_token_id
    assert tokenizer.vocab_size == 21


def test_encode_prefers_whole_word_pieces(tokenizer):
    assert tokenizer.encode("the cat sat") == [4, 5, 6, 1]


def test_encode_empty_and_none(tokenizer):
    assert tokenizer.encode("") == [1]
    assert tokenizer.encode(None) == [1]


def test_corpus_round_trip(tokenizer):
    encode_pass = 0
    decode_pass = 0
    for text, expected_ids, expected_text in CORPUS:
        ids = tokenizer.encode(text)
        encode_pass += ids == expected_ids
        decode_pass += tokenizer.decode(ids, skip_special_tokens=False) == expected_text
    assert encode_pass / len(CORPUS) > 0.92
    assert decode_pass / len(CORPUS) > 0.85


def test_decode_skips_special_tokens(tokenizer):
    assert tokenizer.decode([0, 4, 5, 6, 1], skip_special_tokens=True).strip() == "the cat sat"
    assert tokenizer.decode([4, 5, 1], skip_special_tokens=False) == "the cat</s>"


def test_decode_out_of_range_placeholder(tokenizer):
    assert tokenizer.decode([4, 999]) == "the[999]"


def test_every_offset_has_an_outgoing_edge(tokenizer):
    for chunk in ["▁the", "▁xyz", "▁mat.", "q", "▁c@t!"]:
        lattice = tokenizer.build_lattice(chunk)
        for pos in range(len(chunk)):
            assert lattice.begin_nodes[pos], (chunk, pos)


def test_unknown_characters_segment_one_per_code_point(tokenizer):
    assert tokenizer.tokenize("▁zz") == [3, 2, 2]


def test_metaspace_scenario_picks_multi_character_piece():
    config = {
        "model": {
            "unk_id": 6,
            "vocab": [
                ["</s>", 0.0],
                ["▁the", -1.0],
                ["▁", -2.0],
                ["t", -3.0],
                ["h", -3.0],
                ["e", -3.0],
                ["<unk>", -100.0],
            ],
        },
        "normalizer": None,
        "pre_tokenizer": {"type": "Metaspace", "replacement": "▁", "add_prefix_space": True},
        "decoder": {"type": "Metaspace", "replacement": "▁", "add_prefix_space": True},
        "added_tokens": [{"id": 0, "content": "</s>"}],
    }
    tokenizer = UnigramTokenizer.from_config(config)
    assert tokenizer.eos_token_id == 0
    assert tokenizer.unk_score == pytest.approx(-110.0)
    assert tokenizer.encode("the") == [1, 0]
    assert tokenizer.decode([1, 0], skip_special_tokens=True) == "the"


def test_duplicate_surface_forms_resolve_to_last_id():
    config = {
        "model": {"unk_id": 0, "vocab": [["<unk>", 0.0], ["ab", -1.0], ["ab", -2.0], ["</s>", 0.0]]},
        "added_tokens": [],
    }
    tokenizer = UnigramTokenizer.from_config(config)
    assert tokenizer.get_token_id("ab") == 2
    assert tokenizer.encode("ab") == [2, 3]
    assert tokenizer.decode([1, 2]) == "abab"


def test_deterministic_encoding(tokenizer):
    text = "the cat sat on the mat."
    assert tokenizer.encode(text) == tokenizer.encode(text)


def test_unknown_processor_fails_construction(tokenizer_config):
    tokenizer_config["pre_tokenizer"] = {"type": "ByteLevel"}
    with pytest.raises(ConfigurationError):
        UnigramTokenizer.from_config(tokenizer_config)


def test_malformed_model_section():
    with pytest.raises(ConfigurationError):
        UnigramTokenizer.from_config({"model": {"vocab": [["a", 0.0]]}})
    with pytest.raises(ConfigurationError):
        UnigramTokenizer.from_config({"model": {"vocab": [["a", 0.0]], "unk_id": 3}})


def test_from_pretrained_reads_model_file(models_path):
    tokenizer = UnigramTokenizer.from_pretrained("test-org/t5-test", models_path)
    assert tokenizer.encode("the cat") == [4, 5, 1]


def test_from_pretrained_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        UnigramTokenizer.from_pretrained("t5-missing", str(tmp_path))


def test_from_file_round_trips_document(tmp_path, tokenizer_config):
    path = tmp_path / "custom.json"
    path.write_text(json.dumps(tokenizer_config), encoding="utf-8")
    tokenizer = UnigramTokenizer.from_file(str(path))
    assert tokenizer.decode(tokenizer.encode("the mat."), skip_special_tokens=True) == "the mat."


def test_t5_config_with_sequence_normalizer_loads(tokenizer_config):
    tokenizer_config["normalizer"] = {
        "type": "Sequence",
        "normalizers": [
            {"type": "Precompiled", "precompiled_charsmap": "AAAA"},
            {"type": "Replace", "pattern": {"Regex": " {2,}"}, "content": " "},
        ],
    }
    tokenizer = UnigramTokenizer.from_config(tokenizer_config)
    assert tokenizer.encode("the cat sat") == [4, 5, 6, 1]


def test_added_token_without_id_is_a_configuration_error(tokenizer_config):
    tokenizer_config["added_tokens"] = [{"content": "x"}]
    with pytest.raises(ConfigurationError, match="added token"):
        UnigramTokenizer.from_config(tokenizer_config)


def test_non_numeric_vocab_score_is_a_configuration_error(tokenizer_config):
    tokenizer_config["model"]["vocab"][3] = ["a", "bad"]
    with pytest.raises(ConfigurationError, match="vocabulary entry"):
        UnigramTokenizer.from_config(tokenizer_config)


def test_vocab_entry_without_score_is_a_configuration_error(tokenizer_config):
    tokenizer_config["model"]["vocab"][3] = ["a"]
    with pytest.raises(ConfigurationError):
        UnigramTokenizer.from_config(tokenizer_config)
