"""Shared fixtures: a tiny BERT vocabulary and a deterministic fake engine."""

import threading
from pathlib import Path
from typing import List

import numpy as np
import pytest

from local_embedder.tokenization import BertTokenizer

# line index == token id
VOCAB = [
    "[PAD]",   # 0
    "[UNK]",   # 1
    "[CLS]",   # 2
    "[SEP]",   # 3
    "[MASK]",  # 4
    "hello",   # 5
    "world",   # 6
    "test",    # 7
    "##ing",   # 8
    "##ed",    # 9
    "the",     # 10
    "a",       # 11
    ".",       # 12
    ",",       # 13
]

PAD, UNK, CLS, SEP = 0, 1, 2, 3
HELLO, WORLD, TEST, ING, ED, THE, A, DOT, COMMA = 5, 6, 7, 8, 9, 10, 11, 12, 13


def write_vocab(path: Path, tokens: List[str]) -> Path:
    path.write_text("\n".join(tokens) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def vocab_path(tmp_path) -> Path:
    return write_vocab(tmp_path / "vocab.txt", VOCAB)


@pytest.fixture
def tokenizer(vocab_path) -> BertTokenizer:
    return BertTokenizer.from_vocab(vocab_path, do_lower_case=True)


class FakeEngine:
    """
    Deterministic stand-in for the OpenVINO engine.

    Row p of the output for token id t is [t, p, 1.0, -t], so pooled
    results can be computed by hand.
    """

    def __init__(self, hidden_size: int = 4):
        self._hidden_size = hidden_size
        self.device = "FAKE"
        self.calls = 0
        self.closed = False
        self.thread_ids = set()
        self._lock = threading.Lock()

    @property
    def hidden_size(self) -> int:
        return self._hidden_size

    def infer(self, token_ids, attention_mask):
        with self._lock:
            self.calls += 1
            self.thread_ids.add(threading.get_ident())
        ids = np.asarray(token_ids, dtype=np.float32)
        out = np.zeros((ids.shape[0], self._hidden_size), dtype=np.float32)
        out[:, 0] = ids
        out[:, 1] = np.arange(ids.shape[0], dtype=np.float32)
        out[:, 2] = 1.0
        out[:, 3] = -ids
        return out

    def infer_batch(self, token_ids, attention_masks):
        return [self.infer(t, m) for t, m in zip(token_ids, attention_masks)]

    def close(self) -> None:
        self.closed = True


class FailingEngine(FakeEngine):
    def infer(self, token_ids, attention_mask):
        raise RuntimeError("device lost")


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()
