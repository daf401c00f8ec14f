"""Tests for SIM-matched APN lists."""

from apnstore.application.services.sim_matching import (
    SimApnMatcher,
    SimIdentity,
    imsi_matches,
    mvno_matches,
)
from apnstore.domain.models.apn import EditProvenance


def _row(apn_name, numeric="310260", **fields):
    values = {"numeric": numeric, "mcc": numeric[:3], "mnc": numeric[3:], "apn": apn_name}
    values.update(fields)
    return values


def test_imsi_wildcards() -> None:
    assert imsi_matches("310260xx1", "310260551234")
    assert not imsi_matches("310260xx2", "310260551234")
    assert not imsi_matches("3102605512345678", "310260")
    assert not imsi_matches("", "310260")


def test_mvno_rules() -> None:
    sim = SimIdentity("310260", spn="Mint", imsi="310260123", gid1="A1B2", iccid="8901260123")
    assert mvno_matches(sim, "spn", "mint")
    assert not mvno_matches(sim, "spn", "Metro")
    assert mvno_matches(sim, "imsi", "310260x2")
    assert mvno_matches(sim, "gid", "a1")
    assert not mvno_matches(sim, "gid", "A1B2C3")
    assert mvno_matches(sim, "iccid", "8944,890126")
    assert not mvno_matches(sim, "iccid", "8944")
    assert not mvno_matches(sim, "unknown", "x")
    assert not mvno_matches(SimIdentity("310260"), "spn", "")


def test_mvno_rows_win_over_parent_rows(repo) -> None:
    repo.insert(_row("parent.net"))
    repo.insert(_row("mint.net", mvno_type="spn", mvno_match_data="Mint"))
    repo.insert(_row("other.net", mvno_type="spn", mvno_match_data="Other"))
    matcher = SimApnMatcher(repo)

    mint = matcher.apn_list(SimIdentity("310260", spn="Mint"))
    assert [row["apn"] for row in mint] == ["mint.net"]

    plain = matcher.apn_list(SimIdentity("310260", spn="Nobody"))
    assert {row["apn"] for row in plain} == {"parent.net", "other.net"}


def test_carrier_id_rows_are_current_set(repo) -> None:
    repo.insert(_row("parent.net"))
    repo.insert(_row("by-id.net", numeric="310999", carrier_id=1894))
    matcher = SimApnMatcher(repo)

    rows = matcher.apn_list(SimIdentity("310260", carrier_id=1894))
    assert [row["apn"] for row in rows] == ["by-id.net"]


def test_mno_carrier_id_rows_join_parent_set(repo) -> None:
    repo.insert(_row("parent.net"))
    repo.insert(_row("mno.net", numeric="311999", carrier_id=1))
    matcher = SimApnMatcher(repo)

    rows = matcher.apn_list(SimIdentity("310260", carrier_id=2000, mno_carrier_id=1))
    assert {row["apn"] for row in rows} == {"parent.net", "mno.net"}


def test_deleted_rows_and_unknown_ids_are_ignored(repo) -> None:
    repo.insert(_row("gone.net", edited=int(EditProvenance.USER_DELETED)))
    repo.insert(_row("unrelated.net", numeric="311480"))
    matcher = SimApnMatcher(repo)

    assert matcher.apn_list(SimIdentity("310260")) == []
