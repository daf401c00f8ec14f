"""Tests for seed parsing, normalisation and loading."""

import json

import pytest

from apnstore.core.merge import ConflictMerger
from apnstore.domain.models.apn import EditProvenance
from apnstore.domain.models.query import ApnFilter
from apnstore.errors import MalformedSeedRecordError, SeedSourceError
from apnstore.seed.loader import SeedLoader, SeedReport, normalize_candidate
from apnstore.seed.source import SeedDocument, SeedSource, parse_json_seed

from conftest import apn, write_seed


def _doc(*candidates, version=7):
    return SeedDocument(version=version, candidates=list(candidates))


def test_normalize_candidate_fills_numeric_and_aliases() -> None:
    values = normalize_candidate(apn("310260", carrier="T-Mobile", type="default, mms"), default_sub_id=2)
    assert values["numeric"] == "310260"
    assert values["name"] == "T-Mobile"
    assert values["type"] == "default,mms"
    assert values["sub_id"] == 2


def test_normalize_candidate_parses_bitmask_lists() -> None:
    values = normalize_candidate(apn(bearer_bitmask="1|2", network_type_bitmask="13"))
    assert values["network_type_bitmask"] == 1 << 12
    assert values["bearer_bitmask"] == 1 << 13

    values = normalize_candidate(apn(bearer_bitmask="1|2"))
    assert values["bearer_bitmask"] == 0b11
    assert values["network_type_bitmask"] == 0b11


def test_normalize_candidate_drops_half_mvno_rule() -> None:
    values = normalize_candidate(apn(mvno_type="spn"))
    assert "mvno_type" not in values


def test_normalize_candidate_requires_operator() -> None:
    with pytest.raises(MalformedSeedRecordError):
        normalize_candidate({"apn": "x", "mcc": "310"})


def test_load_inserts_and_skips_malformed(repo) -> None:
    loader = SeedLoader(repo, ConflictMerger())
    report = loader.load(_doc(apn("310260"), {"apn": "broken"}, apn("311480", "vzw.net")))

    assert report.inserted == 2
    assert report.skipped == 1
    assert report.version == 7
    assert repo.count() == 2


def test_reload_is_idempotent(repo) -> None:
    loader = SeedLoader(repo, ConflictMerger())
    document = _doc(apn("310260", type="default"), apn("311480", "vzw.net"))
    loader.load(document)
    before = repo.query()

    report = loader.load(document)

    assert report.merged == 2
    assert repo.query() == before


def test_override_with_other_version_is_rejected(repo) -> None:
    loader = SeedLoader(repo, ConflictMerger())
    report = loader.load(_doc(apn("310260")), _doc(apn("311480"), version=8))

    assert report.override_rejected
    assert [row["numeric"] for row in repo.query()] == ["310260"]


def test_override_is_applied_after_fallback(repo) -> None:
    loader = SeedLoader(repo, ConflictMerger())
    report = loader.load(_doc(apn("310260", type="default")), _doc(apn("310260", type="mms")))

    assert report.inserted == 1
    assert report.merged == 1
    assert repo.query()[0]["type"] == "default,mms"


def test_carrier_deleted_row_cycle(repo) -> None:
    loader = SeedLoader(repo, ConflictMerger())
    candidate = apn("310260", type="default")
    row_id = repo.insert({**normalize_candidate(candidate), "edited": int(EditProvenance.CARRIER_DELETED)})

    # Still seeded: the marker survives, the row is not resurrected.
    report = loader.load(_doc(candidate))
    assert report.purged == 0
    assert repo.get(row_id)["edited"] == EditProvenance.CARRIER_DELETED

    # No longer seeded: the row goes away.
    report = loader.load(_doc(apn("311480")))
    assert report.purged == 1
    assert repo.get(row_id) is None


def test_seed_escalation_marks_row_present_during_pass(repo) -> None:
    loader = SeedLoader(repo, ConflictMerger())
    candidate = normalize_candidate(apn("310260"))
    repo.insert({**candidate, "edited": int(EditProvenance.USER_DELETED)})

    report = SeedReport()
    loader._insert_candidate(dict(candidate), report)
    assert repo.query(ApnFilter().where("numeric", "310260"))[0]["edited"] == (
        EditProvenance.USER_DELETED_BUT_PRESENT_IN_XML
    )
    assert report.merged == 1


def test_parse_json_seed(tmp_path) -> None:
    path = write_seed(tmp_path / "apns.json", [apn()], version=3)
    document = parse_json_seed(path)
    assert document.version == 3
    assert len(document) == 1

    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"apns": []}), encoding="utf-8")
    with pytest.raises(SeedSourceError):
        parse_json_seed(bad)


def test_override_location_precedence(tmp_path) -> None:
    source = SeedSource(tmp_path / "system", tmp_path / "oem", tmp_path / "data")
    assert source.override_path() == tmp_path / "system" / "etc" / "apns-conf.json"

    write_seed(tmp_path / "oem" / "telephony" / "apns-conf.json", [])
    assert source.override_path() == tmp_path / "oem" / "telephony" / "apns-conf.json"

    write_seed(tmp_path / "data" / "misc" / "apns" / "apns-conf.json", [])
    assert source.override_path() == tmp_path / "data" / "misc" / "apns" / "apns-conf.json"


def test_public_version(tmp_path) -> None:
    source = SeedSource(tmp_path, tmp_path, tmp_path, fallback_path=tmp_path / "missing.json")
    assert source.public_version() == -1
    source.fallback_path = write_seed(tmp_path / "seed.json", [], version=9)
    assert source.public_version() == 9


def test_unwritable_candidate_is_skipped(repo) -> None:
    loader = SeedLoader(repo, ConflictMerger())
    report = loader.load(_doc(apn(apn_name="a.net"), apn(apn_name="b.net", mtu={"x": 1}), apn(apn_name="c.net")))

    assert report.inserted == 2
    assert report.skipped == 1
    assert sorted(row["apn"] for row in repo.query()) == ["a.net", "c.net"]
