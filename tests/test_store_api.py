import uuid

import pytest

import versioned_store.api as api
from versioned_store import (
    ConcurrencyConflict,
    RecordNotFound,
    VersionedStoreError,
    compare_and_update,
    create,
    delete,
    get,
)
from versioned_store.backends.memory import InMemoryBackend
from versioned_store.records import Record


@pytest.fixture
def store():
    return InMemoryBackend()


# Create / get

def test_create_then_get_returns_matching_record(store):
    created = create(10, "Widget", backend=store)

    fetched = get(created.id, backend=store)

    assert fetched == created
    assert fetched.name == "Widget"
    assert fetched.quantity == 10
    assert fetched.version is not None


def test_create_generates_distinct_ids(store):
    a = create(1, backend=store)
    b = create(1, backend=store)

    assert isinstance(a.id, uuid.UUID)
    assert a.id != b.id


def test_create_accepts_caller_supplied_id(store):
    item_id = uuid.uuid4()

    record = create(3, item_id=item_id, backend=store)

    assert record.id == item_id
    assert get(item_id, backend=store).quantity == 3


def test_create_rejects_duplicate_id(store):
    item_id = uuid.uuid4()
    create(3, item_id=item_id, backend=store)

    with pytest.raises(VersionedStoreError) as info:
        create(4, item_id=item_id, backend=store)

    assert info.value.code == "duplicate_id"
    assert get(item_id, backend=store).quantity == 3


def test_create_allows_negative_quantity_and_missing_name(store):
    record = create(-5, backend=store)

    assert record.quantity == -5
    assert record.name is None


@pytest.mark.parametrize("quantity", [2**31, -(2**31) - 1])
def test_create_rejects_quantity_outside_int32(store, quantity):
    with pytest.raises(ValueError):
        create(quantity, backend=store)
    assert len(store) == 0


def test_create_rejects_non_int_quantity(store):
    with pytest.raises(TypeError):
        create("10", backend=store)


def test_get_unknown_id_raises_not_found(store):
    missing = uuid.uuid4()

    with pytest.raises(RecordNotFound) as info:
        get(missing, backend=store)

    assert info.value.item_id == missing
    assert info.value.code == "not_found"


# Compare-and-update

def test_widget_scenario(store):
    r1 = create(10, "Widget", backend=store)
    v1 = r1.version

    r2 = compare_and_update(r1.id, v1, {"quantity": 9}, backend=store)
    assert r2.quantity == 9
    assert r2.version != v1

    with pytest.raises(ConcurrencyConflict):
        compare_and_update(r1.id, v1, {"quantity": 8}, backend=store)

    assert get(r1.id, backend=store).quantity == 9


def test_stale_version_leaves_record_unchanged(store):
    record = create(5, "Bolt", backend=store)
    current = compare_and_update(record.id, record.version, {"name": "Nut"}, backend=store)

    with pytest.raises(ConcurrencyConflict) as info:
        compare_and_update(record.id, record.version, {"quantity": 0}, backend=store)

    assert info.value.expected_version == record.version
    assert get(record.id, backend=store) == current


def test_update_keeps_unspecified_fields(store):
    record = create(5, "Bolt", backend=store)

    updated = compare_and_update(record.id, record.version, {"quantity": 4}, backend=store)

    assert updated.name == "Bolt"
    assert updated.id == record.id


def test_update_can_clear_name(store):
    record = create(5, "Bolt", backend=store)

    updated = compare_and_update(record.id, record.version, {"name": None}, backend=store)

    assert updated.name is None


def test_empty_change_set_still_advances_version(store):
    record = create(5, backend=store)

    updated = compare_and_update(record.id, record.version, {}, backend=store)

    assert updated.version != record.version
    assert updated.quantity == 5


def test_update_unknown_id_raises_not_found(store):
    with pytest.raises(RecordNotFound):
        compare_and_update(uuid.uuid4(), 1, {"quantity": 1}, backend=store)


def test_update_rejects_unknown_fields(store):
    record = create(5, backend=store)

    with pytest.raises(KeyError):
        compare_and_update(record.id, record.version, {"version": 99}, backend=store)

    assert get(record.id, backend=store) == record


def test_callable_mutation_receives_current_record(store):
    record = create(10, "Widget", backend=store)
    seen = []

    def take_one(current: Record):
        seen.append(current)
        return {"quantity": current.quantity - 1}

    updated = compare_and_update(record.id, record.version, take_one, backend=store)

    assert seen == [record]
    assert updated.quantity == 9


def test_callable_mutation_not_invoked_on_stale_version(store):
    record = create(10, backend=store)
    compare_and_update(record.id, record.version, {"quantity": 9}, backend=store)

    def boom(current):
        raise AssertionError("mutation should not be called")

    with pytest.raises(ConcurrencyConflict):
        compare_and_update(record.id, record.version, boom, backend=store)


@pytest.mark.parametrize("version", [True, 1.0])
def test_only_int_versions_match(store, version):
    record = create(1, backend=store)
    assert record.version == 1

    with pytest.raises(ConcurrencyConflict):
        compare_and_update(record.id, version, {"quantity": 2}, backend=store)
    with pytest.raises(ConcurrencyConflict):
        compare_and_update(record.id, version, lambda r: {"quantity": 2}, backend=store)
    with pytest.raises(ConcurrencyConflict):
        delete(record.id, version, backend=store)

    assert get(record.id, backend=store) == record


# Ids

def test_uuid_strings_name_the_same_record(store):
    record = create(1, backend=store)

    assert get(str(record.id), backend=store) == record

    updated = compare_and_update(str(record.id), record.version, {"quantity": 2}, backend=store)
    assert updated.id == record.id


@pytest.mark.parametrize("item_id", ["abc", 42, None])
def test_non_uuid_id_is_not_found(store, item_id):
    with pytest.raises(RecordNotFound):
        get(item_id, backend=store)
    with pytest.raises(RecordNotFound):
        compare_and_update(item_id, 1, {"quantity": 1}, backend=store)
    with pytest.raises(RecordNotFound):
        delete(item_id, 1, backend=store)


def test_create_rejects_non_uuid_id(store):
    with pytest.raises(ValueError):
        create(1, item_id="abc", backend=store)
    assert len(store) == 0


def test_create_accepts_uuid_string_id(store):
    item_id = uuid.uuid4()

    record = create(1, item_id=str(item_id), backend=store)

    assert record.id == item_id


# Delete

def test_delete_with_stale_version_conflicts(store):
    record = create(1, backend=store)
    compare_and_update(record.id, record.version, {"quantity": 2}, backend=store)

    with pytest.raises(ConcurrencyConflict):
        delete(record.id, record.version, backend=store)

    assert get(record.id, backend=store).quantity == 2


def test_delete_with_current_version_removes_record(store):
    record = create(1, backend=store)

    delete(record.id, record.version, backend=store)

    with pytest.raises(RecordNotFound):
        get(record.id, backend=store)


def test_delete_unknown_id_raises_not_found(store):
    with pytest.raises(RecordNotFound):
        delete(uuid.uuid4(), 1, backend=store)


# Default backend

class DummyBackend:
    def __init__(self):
        self.calls = []

    def insert(self, item_id, quantity, name):
        self.calls.append(("insert", quantity, name))
        return Record(id=item_id, quantity=quantity, name=name, version=1)

    def fetch(self, item_id):
        self.calls.append(("fetch", item_id))
        raise RecordNotFound(item_id)

    def update(self, item_id, expected_version, changes):
        self.calls.append(("update", item_id, expected_version, changes))
        return Record(id=item_id, quantity=0, name=None, version=expected_version + 1)

    def remove(self, item_id, expected_version):
        self.calls.append(("remove", item_id, expected_version))


def test_default_backend_is_used_when_none_given():
    be = DummyBackend()
    previous = api.set_default_backend(be)
    try:
        record = create(7, "Gear")
        compare_and_update(record.id, 1, {"quantity": 0})
        delete(record.id, 2)
    finally:
        api.set_default_backend(previous)

    assert be.calls == [
        ("insert", 7, "Gear"),
        ("update", record.id, 1, {"quantity": 0}),
        ("remove", record.id, 2),
    ]


def test_empty_memory_backend_is_not_replaced_by_default():
    be = InMemoryBackend()
    previous = api.set_default_backend(DummyBackend())
    try:
        record = create(1, backend=be)
    finally:
        api.set_default_backend(previous)

    assert get(record.id, backend=be) == record
