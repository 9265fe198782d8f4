import threading

import numpy as np
import pytest

from local_embedder.utils.buffer_pool import BufferPool


def test_acquire_returns_buffer_of_requested_size():
    pool = BufferPool()
    with pool.acquire(8) as buf:
        assert buf.shape == (8,)
        assert buf.dtype == np.float32
        assert pool.outstanding == 1
    assert pool.outstanding == 0


def test_buffers_are_reused():
    pool = BufferPool()
    with pool.acquire(4) as first:
        pass
    with pool.acquire(4) as second:
        assert second is first


def test_concurrent_borrowers_get_distinct_buffers():
    pool = BufferPool()
    with pool.acquire(4) as a, pool.acquire(4) as b:
        assert a is not b
        assert pool.outstanding == 2


def test_buffer_returned_on_exception():
    pool = BufferPool()
    with pytest.raises(RuntimeError):
        with pool.acquire(4):
            raise RuntimeError("boom")
    assert pool.outstanding == 0


def test_free_list_is_capped():
    pool = BufferPool(max_per_size=1)
    a = pool.rent(2)
    b = pool.rent(2)
    pool.give_back(a)
    pool.give_back(b)
    assert pool.rent(2) is a
    assert pool.rent(2) is not b


def test_threads_balance_outstanding_count():
    pool = BufferPool()

    def work():
        for _ in range(200):
            with pool.acquire(16) as buf:
                buf.fill(1.0)

    threads = [threading.Thread(target=work) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert pool.outstanding == 0
