"""Tests for edit provenance transitions."""

from apnstore.core import provenance
from apnstore.domain.models.apn import EditProvenance as P


def test_seed_escalates_deleted_states_only() -> None:
    assert provenance.escalate_for_seed(P.USER_DELETED) is P.USER_DELETED_BUT_PRESENT_IN_XML
    assert provenance.escalate_for_seed(P.CARRIER_DELETED) is P.CARRIER_DELETED_BUT_PRESENT_IN_XML
    assert provenance.escalate_for_seed(P.USER_EDITED) is P.USER_EDITED
    assert provenance.escalate_for_seed(P.UNEDITED) is P.UNEDITED


def test_unedited_candidate_never_overwrites_protected_row() -> None:
    for state in P:
        allowed = provenance.may_overwrite(state, P.UNEDITED)
        assert allowed == (state is P.UNEDITED)
        assert provenance.may_overwrite(state, None) == allowed


def test_edited_candidate_overwrites() -> None:
    assert provenance.may_overwrite(P.USER_EDITED, P.CARRIER_EDITED)
    assert provenance.may_overwrite(P.UNEDITED, P.USER_EDITED)


def test_merged_provenance_never_downgrades_by_default() -> None:
    assert provenance.merged_provenance(P.USER_EDITED, P.UNEDITED) is None
    assert provenance.merged_provenance(P.USER_EDITED, None) is None
    assert provenance.merged_provenance(P.UNEDITED, P.CARRIER_EDITED) is P.CARRIER_EDITED


def test_upgrade_merge_keeps_provenance_unless_asked() -> None:
    assert provenance.merged_provenance(P.USER_EDITED, P.CARRIER_EDITED, on_upgrade=True) is None
    assert (
        provenance.merged_provenance(P.USER_EDITED, P.UNEDITED, on_upgrade=True, allow_downgrade=True)
        is P.UNEDITED
    )


def test_coerce() -> None:
    assert provenance.coerce(None) is None
    assert provenance.coerce("") is None
    assert provenance.coerce("4") is P.CARRIER_EDITED
    assert provenance.coerce(5) is P.CARRIER_DELETED
