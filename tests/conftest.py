import json

import pytest

from s2s_service.config import ServiceSettings
from s2s_service.tokenizer import UnigramTokenizer

MODEL_ID = "test-org/t5-test"

VOCAB = [
    ["<pad>", 0.0],
    ["</s>", 0.0],
    ["<unk>", 0.0],
    ["▁", -2.0],
    ["▁the", -3.0],
    ["▁cat", -4.0],
    ["▁sat", -4.5],
    ["▁on", -4.0],
    ["▁mat", -5.0],
    ["t", -5.0],
    ["h", -5.0],
    ["e", -5.0],
    ["a", -5.0],
    ["c", -5.0],
    ["s", -5.0],
    ["at", -4.0],
    ["▁m", -4.5],
    [".", -3.5],
    ["o", -5.0],
    ["n", -5.0],
    ["m", -5.0],
]

METASPACE = {
    "type": "Metaspace",
    "replacement": "▁",
    "str_rep": "▁",
    "add_prefix_space": True,
}


def t5_style_config():
    return {
        "added_tokens": [
            {"id": 0, "content": "<pad>", "special": True},
            {"id": 1, "content": "</s>", "special": True},
            {"id": 2, "content": "<unk>", "special": True},
        ],
        "normalizer": {"type": "Precompiled", "precompiled_charsmap": "ALQCAACEAAAAAACAAQAAgMz8"},
        "pre_tokenizer": {
            "type": "Sequence",
            "pretokenizers": [{"type": "WhitespaceSplit"}, dict(METASPACE)],
        },
        "decoder": dict(METASPACE),
        "model": {"type": "Unigram", "unk_id": 2, "vocab": [list(entry) for entry in VOCAB]},
    }


@pytest.fixture
def tokenizer_config():
    return t5_style_config()


@pytest.fixture
def tokenizer(tokenizer_config):
    return UnigramTokenizer.from_config(tokenizer_config)


@pytest.fixture
def models_path(tmp_path, tokenizer_config):
    path = tmp_path / "t5-test-tokenizer.json"
    path.write_text(json.dumps(tokenizer_config), encoding="utf-8")
    return str(tmp_path)


@pytest.fixture
def mock_settings(models_path):
    return ServiceSettings(
        model_id=MODEL_ID,
        models_path=models_path,
        mock_model=True,
        device="cpu",
        max_length_default=8,
        max_length_limit=16,
        max_input_tokens=32,
    )
