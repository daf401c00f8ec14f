"""Tests for the preferred APN resolver."""

import pytest

from apnstore.application.services.preferred_apn import PreferredApnResolver
from apnstore.domain.models.query import ApnFilter, order_by
from apnstore.settings.manager import StateStore


@pytest.fixture
def state():
    store = StateStore()
    store.load()
    return store


@pytest.fixture
def version():
    return {"value": 42}


@pytest.fixture
def resolver(repo, state, version):
    return PreferredApnResolver(repo, state, lambda: version["value"])


def _row(apn_name, **fields):
    values = {"numeric": "310260", "mcc": "310", "mnc": "260", "apn": apn_name}
    values.update(fields)
    return values


def test_unset_subscription_has_no_preference(resolver) -> None:
    assert resolver.get_preferred(1) == -1
    assert not resolver.explicit_set_called(1)


def test_set_stores_id_and_snapshot(repo, resolver) -> None:
    row_id = repo.insert(_row("fast.net", apn_set_id=3))
    resolver.set_preferred(5, row_id)

    assert resolver.get_preferred(5) == row_id
    assert resolver.explicit_set_called(5)
    snapshot = resolver.snapshot(5)
    assert snapshot["version"] == 42
    assert snapshot["fields"]["apn"] == "fast.net"
    assert resolver.preferred_apn_set_id(5) == 3


def test_snapshot_resolves_after_ids_are_forgotten(repo, resolver) -> None:
    repo.insert(_row("first.net"))
    row_id = repo.insert(_row("fast.net"))
    resolver.set_preferred(5, row_id)

    resolver.invalidate_ids()
    # Simulate a rebuild that renumbers rows.
    repo.delete(ApnFilter().where("apn", "first.net"))
    values = repo.get(row_id)
    repo.delete(ApnFilter.by_id(row_id))
    new_id = repo.insert({k: v for k, v in values.items() if k != "_id"})
    assert new_id != row_id

    assert resolver.get_preferred(5) == new_id
    # Cached again without rewriting the snapshot.
    assert resolver.get_preferred(5, check_snapshot=False) == new_id


def test_unresolvable_snapshot_gives_no_preference(repo, resolver) -> None:
    row_id = repo.insert(_row("fast.net"))
    resolver.set_preferred(5, row_id)
    resolver.clear_all_ids()
    repo.delete()
    assert resolver.get_preferred(5) == -1


def test_setting_none_drops_snapshot(repo, resolver) -> None:
    row_id = repo.insert(_row("fast.net"))
    resolver.set_preferred(5, row_id)
    resolver.set_preferred(5, None)

    assert resolver.snapshot(5) is None
    assert resolver.get_preferred(5) == -1
    assert resolver.explicit_set_called(5)


def test_clear_preferred(repo, resolver) -> None:
    row_id = repo.insert(_row("fast.net"))
    resolver.set_preferred(5, row_id)
    resolver.clear_preferred(5)

    assert resolver.get_preferred(5) == -1
    assert resolver.snapshot(5) is None
    assert resolver.preferred_apn_set_id(5) == 0


def test_clear_all_ids_keeps_snapshots(repo, resolver) -> None:
    row_id = repo.insert(_row("fast.net"))
    resolver.set_preferred(1, row_id)
    resolver.clear_all_ids()

    assert resolver.get_preferred(1, check_snapshot=False) == -1
    assert resolver.get_preferred(1) == row_id


def test_deleted_row_is_not_preferred(repo, resolver) -> None:
    row_id = repo.insert(_row("fast.net"))
    resolver.set_preferred(5, row_id)
    repo.delete(ApnFilter.by_id(row_id))

    assert resolver.get_preferred(5) == -1
    assert resolver.explicit_set_called(5)
    assert resolver.get_preferred(5, check_snapshot=False) == -1


def test_row_marked_deleted_is_not_preferred(repo, resolver) -> None:
    row_id = repo.insert(_row("fast.net"))
    resolver.set_preferred(5, row_id)
    repo.update_row(row_id, {"edited": 2})

    assert resolver.get_preferred(5) == -1


def test_missing_row_resolves_through_snapshot(repo, resolver) -> None:
    row_id = repo.insert(_row("fast.net"))
    repo.insert(_row("later.net"))
    resolver.set_preferred(5, row_id)
    values = repo.get(row_id)
    repo.delete(ApnFilter.by_id(row_id))
    new_id = repo.insert({k: v for k, v in values.items() if k != "_id"})

    assert resolver.get_preferred(5) == new_id


def test_version_change_rechecks_cached_id(repo, resolver, version) -> None:
    first = repo.insert(_row("a.net"))
    repo.insert(_row("b.net"))
    resolver.set_preferred(5, first)

    # Renumber the rows without telling the resolver.
    rows = repo.query(order=order_by("_id"))
    repo.delete()
    for row in reversed(rows):
        repo.insert({k: v for k, v in row.items() if k != "_id"})
    assert repo.get(first)["apn"] == "b.net"
    assert resolver.get_preferred(5) == first

    version["value"] = 43
    renumbered = resolver.get_preferred(5)

    assert repo.get(renumbered)["apn"] == "a.net"
    assert resolver.snapshot(5)["version"] == 43
    assert resolver.get_preferred(5, check_snapshot=False) == renumbered
