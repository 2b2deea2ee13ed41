from hotstuff.store import MemoryAuxStore, Store


def test_create_store_and_read_back():
    store = Store(MemoryAuxStore())
    store.set(b"key0", b"value0")
    assert store.get(b"key0") == b"value0"


def test_missing_key_is_none():
    store = Store(MemoryAuxStore())
    assert store.get(b"absent") is None


def test_overwrite_keeps_last_value():
    store = Store(MemoryAuxStore())
    store.set(b"k", b"first")
    store.set(b"k", b"second")
    assert store.get(b"k") == b"second"


def test_insert_and_delete_aux():
    backend = MemoryAuxStore()
    backend.insert_aux([(b"a", b"1"), (b"b", b"2")], [])
    backend.insert_aux([], [b"a", b"never-there"])
    assert backend.get_aux(b"a") is None
    assert backend.get_aux(b"b") == b"2"


def test_store_shares_backend():
    backend = MemoryAuxStore()
    Store(backend).set(b"shared", b"value")
    assert Store(backend).get(b"shared") == b"value"