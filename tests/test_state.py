import threading

from nodeflow.state import KeyedStateStore


def test_get_put_and_default():
    store = KeyedStateStore()
    assert store.get("counter", "a") is None
    assert store.get("counter", "a", 5) == 5
    store.put("counter", "a", 1)
    assert store.get("counter", "a") == 1
    assert len(store) == 1


def test_update_returns_old_and_new():
    store = KeyedStateStore()
    assert store.update("counter", "a", lambda v: v + 1, initial=0) == (0, 1)
    assert store.update("counter", "a", lambda v: v + 1) == (1, 2)


def test_update_is_atomic_under_contention():
    store = KeyedStateStore()

    def bump():
        for _ in range(1000):
            store.update("counter", "n", lambda v: v + 1, initial=0)

    threads = [threading.Thread(target=bump) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert store.get("counter", "n") == 8000


def test_reset_filters():
    store = KeyedStateStore()
    store.put("counter", "a", 1)
    store.put("counter", "b", 1)
    store.put("round_robin", "a", 0)
    assert store.reset(kind="counter", node_id="a") == 1
    assert store.reset(node_id="a") == 1
    assert store.snapshot() == {("counter", "b"): 1}
    assert store.reset() == 1
    assert len(store) == 0
