import json

import numpy as np
import pytest

import cli
from local_embedder import EmbeddingModel
from local_embedder.pooling import create_pooling_strategy
from local_embedder.settings import EmbedderOptions

from conftest import FakeEngine


@pytest.fixture
def no_settings(tmp_path):
    return ["--settings", str(tmp_path / "none.yaml")]


@pytest.fixture
def fake_load(monkeypatch, tokenizer):
    """Route cli._load through a FakeEngine-backed model."""

    def load(args):
        options = EmbedderOptions(max_sequence_length=8)
        return EmbeddingModel(
            "fake", FakeEngine(), tokenizer, create_pooling_strategy("mean"), options
        )

    monkeypatch.setattr(cli, "_load", load)


def test_no_command_prints_help(capsys):
    with pytest.raises(SystemExit) as info:
        cli.main([])
    assert info.value.code == 0
    assert "usage" in capsys.readouterr().out.lower()


def test_models_lists_registry(capsys, no_settings):
    cli.main(no_settings + ["models"])
    out = capsys.readouterr().out
    assert "all-MiniLM-L6-v2" in out
    assert "bge-small-en-v1.5" in out
    assert "pooling=cls" in out


def test_tokenize_with_vocab(capsys, vocab_path, no_settings):
    cli.main(no_settings + ["tokenize", "Hello, testing.", "--vocab", str(vocab_path), "--max-length", "10"])
    out = capsys.readouterr().out
    assert "['hello', ',', 'test', '##ing', '.']" in out
    assert "[2, 5, 13, 7, 8, 12, 3]" in out
    assert "(+3 padding)" in out


def test_tokenize_cased(capsys, vocab_path, no_settings):
    cli.main(no_settings + ["tokenize", "Hello", "--vocab", str(vocab_path), "--cased", "--max-length", "4"])
    assert "['[UNK]']" in capsys.readouterr().out


def test_missing_vocab_exits_with_error(capsys, tmp_path, no_settings):
    with pytest.raises(SystemExit) as info:
        cli.main(no_settings + ["tokenize", "hi", "--vocab", str(tmp_path / "nope.txt")])
    assert info.value.code == 1
    assert "ERROR:" in capsys.readouterr().err


def test_unknown_model_download_exits_with_error(capsys, no_settings):
    with pytest.raises(SystemExit) as info:
        cli.main(no_settings + ["--model", "not-a-model", "download"])
    assert info.value.code == 1


def test_embed_json(capsys, fake_load, no_settings):
    cli.main(no_settings + ["embed", "hello", "world", "--json"])
    payload = json.loads(capsys.readouterr().out)
    assert [item["text"] for item in payload] == ["hello", "world"]
    assert len(payload[0]["embedding"]) == 4
    assert np.linalg.norm(payload[0]["embedding"]) == pytest.approx(1.0, abs=1e-4)


def test_embed_preview(capsys, fake_load, no_settings):
    cli.main(no_settings + ["embed", "hello", "--preview", "2"])
    assert "dim=4" in capsys.readouterr().out


def test_similarity(capsys, fake_load, no_settings):
    cli.main(no_settings + ["similarity", "hello", "hello"])
    out = capsys.readouterr().out
    assert "cosine    : 1.0000" in out


def test_benchmark(capsys, fake_load, no_settings):
    cli.main(no_settings + ["benchmark", "--n-texts", "3", "--runs", "2"])
    out = capsys.readouterr().out
    assert "n_texts" in out
    assert "texts_per_sec" in out


def test_model_name_falls_back_to_settings():
    args = cli.build_parser().parse_args(["models"])
    args.settings_data = {"embedder": {"model": "bge-base-en-v1.5"}}
    assert cli._model_name(args) == "bge-base-en-v1.5"
    args.settings_data = {}
    assert cli._model_name(args) == cli.DEFAULT_MODEL
