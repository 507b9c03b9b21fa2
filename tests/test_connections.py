from connections import ConnectionRegistry


def test_admit_until_cap():
    registry = ConnectionRegistry(max_per_address=2)
    assert registry.admit("1.2.3.4", "a")
    assert registry.admit("1.2.3.4", "b")
    assert not registry.admit("1.2.3.4", "c")
    # Other addresses are unaffected
    assert registry.admit("5.6.7.8", "d")


def test_rejected_entry_must_be_released():
    registry = ConnectionRegistry(max_per_address=1)
    registry.admit("1.2.3.4", "a")
    assert not registry.admit("1.2.3.4", "b")
    assert registry.count("1.2.3.4") == 2
    registry.release("1.2.3.4", "b")
    assert registry.count("1.2.3.4") == 1


def test_release_discards_empty_sets():
    registry = ConnectionRegistry(max_per_address=2)
    registry.admit("1.2.3.4", "a")
    registry.release("1.2.3.4", "a")
    assert registry.count("1.2.3.4") == 0
    assert registry.total() == 0
    assert registry._by_address == {}


def test_release_is_idempotent():
    registry = ConnectionRegistry(max_per_address=2)
    registry.admit("1.2.3.4", "a")
    registry.release("1.2.3.4", "a")
    registry.release("1.2.3.4", "a")
    registry.release("9.9.9.9", "x")
    assert registry.total() == 0


def test_slot_is_freed_after_release():
    registry = ConnectionRegistry(max_per_address=1)
    assert registry.admit("1.2.3.4", "a")
    registry.release("1.2.3.4", "a")
    assert registry.admit("1.2.3.4", "b")
