"""Tests for the conflict merge between colliding rows."""

import pytest

from apnstore.core.merge import ConflictMerger, merge_bitmask, merge_types
from apnstore.domain.models.apn import EditProvenance
from apnstore.domain.models.query import ApnFilter
from apnstore.errors import ConflictError, WriteFailedError


def _row(**fields):
    values = {"numeric": "310260", "mcc": "310", "mnc": "260", "apn": "fast.net"}
    values.update(fields)
    return values


def _insert_colliding(repo, merger, first, second, **options):
    repo.insert(first)
    with pytest.raises(ConflictError) as info:
        repo.insert(second)
    return merger.merge(repo, info.value.existing, second, **options)


def test_merge_types_unions_old_first() -> None:
    assert merge_types("default,mms", "dun") == "default,mms,dun"
    assert merge_types("Default,MMS", "mms,supl") == "default,mms,supl"


def test_merge_types_empty_or_wildcard_wins() -> None:
    assert merge_types("", "dun") == ""
    assert merge_types("default", None) == ""
    assert merge_types("default", "*") == "*"


def test_merge_bitmask() -> None:
    assert merge_bitmask(4, 4) == 4
    assert merge_bitmask(3, 4) == 7
    assert merge_bitmask(0, 4) == 0
    assert merge_bitmask(8, None) == 0


def test_colliding_purposes_are_unioned(repo) -> None:
    merger = ConflictMerger()
    outcome = _insert_colliding(repo, merger, _row(type="default,mms"), _row(type="dun"))

    rows = repo.query()
    assert len(rows) == 1
    assert rows[0]["type"] == "default,mms,dun"
    assert outcome.inserted_id is None
    assert not outcome.split


def test_tether_candidate_is_kept_apart_for_listed_operator(repo) -> None:
    merger = ConflictMerger(["310260"])
    outcome = _insert_colliding(repo, merger, _row(type="default,mms"), _row(type="dun"))

    assert outcome.split
    rows = {row["type"]: row for row in repo.query()}
    assert set(rows) == {"default,mms", "dun"}
    assert rows["default,mms"]["profile_id"] == 0
    assert rows["dun"]["profile_id"] == 1


def test_tether_only_row_moves_to_tether_profile(repo) -> None:
    merger = ConflictMerger(["310260"])
    _insert_colliding(repo, merger, _row(type="dun"), _row(type="default,mms"))

    rows = {row["type"]: row["profile_id"] for row in repo.query()}
    assert rows == {"dun": 1, "default,mms": 0}


def test_tether_purpose_is_stripped_when_row_covers_candidate(repo) -> None:
    merger = ConflictMerger(["310260"])
    _insert_colliding(repo, merger, _row(type="default,mms,dun"), _row(type="mms,default"))

    rows = repo.query()
    assert len(rows) == 1
    assert rows[0]["type"] == "default,mms"


def test_unlisted_operator_does_not_split(repo) -> None:
    merger = ConflictMerger(["310410"])
    _insert_colliding(repo, merger, _row(type="default,mms"), _row(type="dun"))
    assert [row["type"] for row in repo.query()] == ["default,mms,dun"]


def test_seed_candidate_keeps_user_fields(repo) -> None:
    merger = ConflictMerger()
    existing = _row(type="default", name="Mine", user="me", edited=int(EditProvenance.USER_EDITED))
    candidate = _row(type="mms", name="Seeded", user="seed")
    _insert_colliding(repo, merger, existing, candidate)

    row = repo.query()[0]
    assert row["name"] == "Mine"
    assert row["user"] == "me"
    assert row["type"] == "default,mms"
    assert row["edited"] == EditProvenance.USER_EDITED


def test_carrier_candidate_overwrites_fields(repo) -> None:
    merger = ConflictMerger()
    existing = _row(type="default", name="Mine", edited=int(EditProvenance.USER_EDITED))
    candidate = _row(type="default", name="Carrier", edited=int(EditProvenance.CARRIER_EDITED))
    _insert_colliding(repo, merger, existing, candidate)

    row = repo.query()[0]
    assert row["name"] == "Carrier"
    assert row["edited"] == EditProvenance.CARRIER_EDITED


def test_bitmasks_merge_and_stay_in_step(repo) -> None:
    merger = ConflictMerger()
    _insert_colliding(
        repo,
        merger,
        _row(bearer_bitmask=1, network_type_bitmask=1),
        _row(bearer_bitmask=2, network_type_bitmask=2),
    )
    row = repo.query()[0]
    assert row["network_type_bitmask"] == 3
    assert row["bearer_bitmask"] == 3


def test_upgrade_merge_only_writes_purposes_and_bitmasks(repo) -> None:
    merger = ConflictMerger()
    existing = _row(type="default", name="Old", edited=int(EditProvenance.USER_EDITED))
    candidate = _row(type="ims", name="New", edited=int(EditProvenance.UNEDITED))
    _insert_colliding(repo, merger, existing, candidate, on_upgrade=True)

    row = repo.query()[0]
    assert row["type"] == "default,ims"
    assert row["name"] == "Old"
    assert row["edited"] == EditProvenance.USER_EDITED


def test_provenance_override_is_written(repo) -> None:
    merger = ConflictMerger()
    existing = _row(type="default", edited=int(EditProvenance.CARRIER_DELETED))
    candidate = _row(type="default", name="Seeded")
    _insert_colliding(
        repo,
        merger,
        existing,
        candidate,
        provenance_override=EditProvenance.CARRIER_DELETED_BUT_PRESENT_IN_XML,
    )
    row = repo.query(ApnFilter().where("numeric", "310260"))[0]
    assert row["edited"] == EditProvenance.CARRIER_DELETED_BUT_PRESENT_IN_XML
    assert row["name"] == ""


def test_split_never_replaces_a_third_row(repo) -> None:
    merger = ConflictMerger(["310260"])
    repo.insert(_row(type="dun"))
    kept = repo.insert(_row(type="dun", profile_id=1, name="Mine", edited=int(EditProvenance.USER_EDITED)))
    with pytest.raises(ConflictError) as info:
        repo.insert(_row(type="default"))

    with pytest.raises(WriteFailedError):
        merger.merge(repo, info.value.existing, _row(type="default"))

    assert repo.count() == 2
    assert repo.get(kept)["name"] == "Mine"
    assert repo.get(kept)["edited"] == EditProvenance.USER_EDITED
