import threading

import numpy as np
import pytest

from local_embedder import EmbeddingModel
from local_embedder.exceptions import (
    EmbeddingCancelledError,
    InferenceFailedError,
    LocalEmbedderError,
)
from local_embedder.pooling import PoolingMode, create_pooling_strategy
from local_embedder.settings import EmbedderOptions

from conftest import FailingEngine, FakeEngine

TEXTS = [
    "hello world",
    "testing",
    "the test.",
    "",
    "a hello, a world",
    "tested",
    "xyz unknown words",
    "hello",
    "world world world",
    "HELLO",
]


def make_model(tokenizer, engine=None, **option_overrides):
    defaults = dict(max_sequence_length=6, normalize_embeddings=False)
    defaults.update(option_overrides)
    options = EmbedderOptions(**defaults)
    return EmbeddingModel(
        "fake-model",
        engine or FakeEngine(),
        tokenizer,
        create_pooling_strategy(options.pooling_mode),
        options,
    )


# ---------------------------------------------------------------------------
# Single text
# ---------------------------------------------------------------------------

def test_embed_mean_pools_attended_tokens(tokenizer):
    model = make_model(tokenizer)
    # ids [CLS, hello, SEP] = [2, 5, 3], positions 0..2
    vec = model.embed("hello")
    np.testing.assert_allclose(vec, [10 / 3, 1.0, 1.0, -10 / 3], rtol=1e-6)
    assert vec.dtype == np.float32
    assert vec.shape == (model.dimensions,)


def test_embed_cls_pooling(tokenizer):
    model = make_model(tokenizer, pooling_mode="cls")
    np.testing.assert_allclose(model.embed("hello"), [2.0, 0.0, 1.0, -2.0])


def test_embed_max_pooling(tokenizer):
    model = make_model(tokenizer, pooling_mode=PoolingMode.MAX)
    np.testing.assert_allclose(model.embed("hello"), [5.0, 2.0, 1.0, -2.0])


def test_embed_normalizes_by_default(tokenizer):
    model = make_model(tokenizer, normalize_embeddings=True)
    vec = model.embed("hello world")
    assert np.linalg.norm(vec) == pytest.approx(1.0, rel=1e-5)


def test_empty_text_still_embeds(tokenizer):
    model = make_model(tokenizer)
    vec = model.embed("")
    # [CLS, SEP] = [2, 3]
    np.testing.assert_allclose(vec, [2.5, 0.5, 1.0, -2.5])


def test_dimensions_come_from_engine(tokenizer):
    model = make_model(tokenizer, engine=FakeEngine(hidden_size=7))
    assert model.dimensions == 7
    assert model.embed("hello").shape == (7,)


def test_engine_errors_are_wrapped(tokenizer):
    model = make_model(tokenizer, engine=FailingEngine())
    with pytest.raises(InferenceFailedError) as info:
        model.embed("hello")
    assert isinstance(info.value.__cause__, RuntimeError)


# ---------------------------------------------------------------------------
# Batches
# ---------------------------------------------------------------------------

def test_empty_batch_returns_empty_list(tokenizer):
    engine = FakeEngine()
    model = make_model(tokenizer, engine=engine)
    assert model.embed_batch([]) == []
    assert engine.calls == 0


def test_embed_array_empty_has_hidden_width(tokenizer):
    model = make_model(tokenizer)
    assert model.embed_array([]).shape == (0, 4)


def test_small_batch_matches_single_embeds(tokenizer):
    model = make_model(tokenizer)
    batch = model.embed_batch(TEXTS[:3])
    for text, vec in zip(TEXTS[:3], batch):
        np.testing.assert_array_equal(vec, model.embed(text))


@pytest.mark.parametrize("max_workers", [1, 3, None])
def test_parallel_batch_preserves_input_order(tokenizer, max_workers):
    model = make_model(tokenizer, parallel_threshold=2, max_workers=max_workers)
    batch = model.embed_batch(TEXTS)
    assert len(batch) == len(TEXTS)
    for text, vec in zip(TEXTS, batch):
        np.testing.assert_array_equal(vec, model.embed(text))


def test_results_do_not_share_memory(tokenizer):
    model = make_model(tokenizer, parallel_threshold=1, max_workers=2)
    batch = model.embed_batch(TEXTS)
    for i, a in enumerate(batch):
        for b in batch[i + 1:]:
            assert not np.shares_memory(a, b)


def test_embed_array_stacks_rows(tokenizer):
    model = make_model(tokenizer, parallel_threshold=2)
    matrix = model.embed_array(TEXTS)
    assert matrix.shape == (len(TEXTS), 4)
    np.testing.assert_array_equal(matrix[4], model.embed(TEXTS[4]))


def test_parallel_failure_raises_inference_error(tokenizer):
    model = make_model(tokenizer, engine=FailingEngine(), parallel_threshold=2)
    with pytest.raises(InferenceFailedError):
        model.embed_batch(TEXTS)
    assert model._buffers.outstanding == 0


def test_concurrent_callers_get_consistent_results(tokenizer):
    model = make_model(tokenizer, normalize_embeddings=True)
    expected = [model.embed(t) for t in TEXTS]
    errors = []

    def worker():
        try:
            for _ in range(20):
                for text, vec in zip(TEXTS, model.embed_batch(TEXTS)):
                    np.testing.assert_array_equal(vec, expected[TEXTS.index(text)])
        except AssertionError as exc:
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert errors == []


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------

class CancellingEngine(FakeEngine):
    """Sets the event during its first inference."""

    def __init__(self, event):
        super().__init__()
        self.event = event

    def infer(self, token_ids, attention_mask):
        self.event.set()
        return super().infer(token_ids, attention_mask)


def test_cancelled_before_start_runs_nothing(tokenizer):
    engine = FakeEngine()
    model = make_model(tokenizer, engine=engine)
    event = threading.Event()
    event.set()
    with pytest.raises(EmbeddingCancelledError):
        model.embed_batch(TEXTS[:2], cancel_event=event)
    assert engine.calls == 0


def test_cancel_during_sequential_batch(tokenizer):
    event = threading.Event()
    engine = CancellingEngine(event)
    model = make_model(tokenizer, engine=engine, parallel_threshold=100)
    with pytest.raises(EmbeddingCancelledError):
        model.embed_batch(TEXTS, cancel_event=event)
    assert engine.calls == 1
    assert model._buffers.outstanding == 0


def test_cancel_during_parallel_batch(tokenizer):
    event = threading.Event()
    engine = CancellingEngine(event)
    model = make_model(tokenizer, engine=engine, parallel_threshold=2, max_workers=1)
    with pytest.raises(EmbeddingCancelledError):
        model.embed_batch(TEXTS, cancel_event=event)
    assert engine.calls < len(TEXTS)
    assert model._buffers.outstanding == 0


def test_unset_event_does_not_interfere(tokenizer):
    model = make_model(tokenizer, parallel_threshold=2)
    assert len(model.embed_batch(TEXTS, cancel_event=threading.Event())) == len(TEXTS)


# ---------------------------------------------------------------------------
# Lifecycle and helpers
# ---------------------------------------------------------------------------

def test_context_manager_closes_engine(tokenizer):
    engine = FakeEngine()
    with make_model(tokenizer, engine=engine) as model:
        model.embed("hello")
    assert engine.closed
    with pytest.raises(LocalEmbedderError):
        model.embed("hello")
    with pytest.raises(LocalEmbedderError):
        model.embed_batch(["hello"])


def test_close_is_idempotent(tokenizer):
    model = make_model(tokenizer)
    model.close()
    model.close()


def test_repr_mentions_pooling(tokenizer):
    model = make_model(tokenizer, pooling_mode="cls")
    assert "pooling=cls" in repr(model)
    assert "fake-model" in repr(model)


def test_benchmark_reports_stats(tokenizer):
    engine = FakeEngine()
    model = make_model(tokenizer, engine=engine)
    stats = model.benchmark(TEXTS[:3], n_runs=2)
    assert stats["n_texts"] == 3
    assert stats["n_runs"] == 2
    assert stats["min_ms"] <= stats["mean_ms"] <= stats["max_ms"]
    # one warmup run plus two timed runs
    assert engine.calls == 9


def test_warmup_runs_one_inference(tokenizer):
    engine = FakeEngine()
    make_model(tokenizer, engine=engine).warmup()
    assert engine.calls == 1
