from queuedesk.app.store import QueueStore


def test_missing_key_reads_default_with_version_zero(store):
    assert store.read("queue", []) == ([], 0)
    assert store.get("nothing") is None


def test_set_bumps_version(store):
    store.set("queue", [{"a": 1}])
    store.set("queue", [{"a": 2}])
    assert store.read("queue") == ([{"a": 2}], 2)


def test_compare_and_set_creates_and_updates(store):
    assert store.compare_and_set({"queue": ([1], 0), "serviced": ([], 0)})
    assert store.read("queue") == ([1], 1)
    assert store.compare_and_set({"queue": ([1, 2], 1), "serviced": ([3], 1)})
    assert store.read("queue") == ([1, 2], 2)
    assert store.read("serviced") == ([3], 2)


def test_stale_version_is_rejected_and_nothing_is_written(store):
    store.set("queue", ["first"])
    store.set("serviced", ["old"])
    # serviced moved on, so the whole write must be dropped
    assert not store.compare_and_set({"queue": (["second"], 1), "serviced": (["new"], 0)})
    assert not store.compare_and_set({"queue": (["second"], 1), "serviced": (["new"], 7)})
    assert store.get("queue") == ["first"]
    assert store.get("serviced") == ["old"]


def test_two_writers_from_the_same_version(session_factory):
    a = QueueStore(session_factory)
    b = QueueStore(session_factory)
    a.set("queue", [])
    _, version = a.read("queue")
    assert a.compare_and_set({"queue": (["a"], version)})
    assert not b.compare_and_set({"queue": (["b"], version)})
    assert b.get("queue") == ["a"]
