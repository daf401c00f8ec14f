"""End-to-end tests for the engine facade."""

import sqlite3

import pytest

from conftest import apn, write_seed

from apnstore import ApnEngine, ApnFilter, EditProvenance, QueryScope
from apnstore.errors import EngineClosedError
from apnstore.events import ApnTableChanged, EventBus, PreferredApnChanged, SchemaMigrated, SeedLoaded

SEED = [
    apn("310260", "fast.net", type="default"),
    apn("310260", "mms.net", type="mms"),
]


@pytest.fixture
def events():
    bus = EventBus()
    seen = []
    bus.subscribe(SeedLoaded, seen.append)
    bus.subscribe(ApnTableChanged, seen.append)
    bus.subscribe(PreferredApnChanged, seen.append)
    bus.subscribe(SchemaMigrated, seen.append)
    return bus, seen


def _apns(engine):
    return sorted(row["apn"] for row in engine.query())


def test_open_seeds_fresh_database(make_config, events) -> None:
    bus, seen = events
    with ApnEngine(make_config(SEED), bus) as engine:
        assert _apns(engine) == ["fast.net", "mms.net"]
        assert engine.query(ApnFilter().where("apn", "fast.net"), ["name"]) == [{"name": "Carrier 310260"}]
        assert engine.state.checksum == engine.checksum_gate.compute()
        assert engine.database_version() & 0xFFFF == 7

    loaded = [event for event in seen if isinstance(event, SeedLoaded)]
    assert len(loaded) == 1
    assert loaded[0].inserted == 2
    assert not any(isinstance(event, ApnTableChanged) for event in seen)


def test_reopen_with_same_seed_is_quiet(make_config, events) -> None:
    config = make_config(SEED)
    with ApnEngine(config):
        pass

    bus, seen = events
    with ApnEngine(config, bus) as engine:
        assert _apns(engine) == ["fast.net", "mms.net"]
    assert seen == []


def test_changed_seed_triggers_reseed(make_config, seed_path, events) -> None:
    config = make_config(SEED)
    with ApnEngine(config):
        pass

    write_seed(seed_path, SEED + [apn("310260", "ims.net", type="ims")])
    bus, seen = events
    with ApnEngine(config, bus) as engine:
        assert _apns(engine) == ["fast.net", "ims.net", "mms.net"]

    assert [type(event) for event in seen] == [SeedLoaded, ApnTableChanged]
    assert seen[1].reason == "update_db"


def test_build_id_change_reseeds_and_forgets_ids(make_config) -> None:
    config = make_config(SEED, build_id="build-1")
    with ApnEngine(config) as engine:
        row_id = engine.query(ApnFilter().where("apn", "fast.net"))[0]["_id"]
        engine.set_preferred(1, row_id)
        assert engine.state.build_id == "build-1"

    upgraded = make_config(build_id="build-2")
    with ApnEngine(upgraded) as engine:
        assert engine.state.build_id == "build-2"
        assert engine.state.preferred_entries() == {}
        assert engine.get_preferred_row(1)["apn"] == "fast.net"


def test_edited_rows_survive_reseed(make_config) -> None:
    with ApnEngine(make_config(SEED)) as engine:
        row_id = engine.query(ApnFilter().where("apn", "fast.net"))[0]["_id"]
        engine.update_by_id(row_id, {"name": "Mine", "edited": int(EditProvenance.USER_EDITED)})

        report = engine.update_apn_db()

        assert report.merged == 1
        assert report.inserted == 1
        row = engine.get(row_id)
        assert row["name"] == "Mine"
        assert row["edited"] == EditProvenance.USER_EDITED
        assert engine.repository.count() == 2


def test_deleted_seed_row_stays_hidden_until_dropped_from_seed(make_config, seed_path) -> None:
    with ApnEngine(make_config(SEED)) as engine:
        row_id = engine.query(ApnFilter().where("apn", "mms.net"))[0]["_id"]
        assert engine.delete_by_id(row_id) == 1

        engine.update_apn_db()
        assert _apns(engine) == ["fast.net"]
        assert engine.get(row_id)["edited"] == EditProvenance.USER_DELETED

        write_seed(seed_path, SEED[:1])
        report = engine.update_apn_db()
        assert report.purged == 1
        assert engine.get(row_id) is None


def test_preferred_apn_survives_rebuild(make_config, events) -> None:
    config = make_config(SEED)
    with ApnEngine(config) as engine:
        gap = engine.insert({"numeric": "311480", "mcc": "311", "mnc": "480", "apn": "gap.net"})
        preferred = engine.insert({"numeric": "311480", "mcc": "311", "mnc": "480", "apn": "vzw.net"})
        engine.set_preferred(3, preferred)
        assert engine.delete_by_id(gap) == 1
        old_version = engine.database_version()

    conn = sqlite3.connect(str(config.db_path))
    conn.execute(f"PRAGMA user_version = {(28 << 16) | 6}")
    conn.commit()
    conn.close()

    bus, seen = events
    with ApnEngine(config, bus) as engine:
        assert engine.database_version() == old_version
        new_id = engine.get_preferred(3)
        assert new_id != preferred
        assert engine.get(new_id)["apn"] == "vzw.net"

    migrated = [event for event in seen if isinstance(event, SchemaMigrated)]
    assert len(migrated) == 1
    assert migrated[0].rebuilt


def test_restore_factory_defaults(make_config, events) -> None:
    bus, seen = events
    with ApnEngine(make_config(SEED), bus) as engine:
        engine.insert({"numeric": "310260", "mcc": "310", "mnc": "260", "apn": "mine.net"})
        row_id = engine.query(ApnFilter().where("apn", "fast.net"))[0]["_id"]
        engine.set_preferred(1, row_id)
        seen.clear()

        report = engine.restore_factory_defaults(1)

        assert report.inserted == 2
        assert _apns(engine) == ["fast.net", "mms.net"]
        assert engine.get_preferred(1) == -1
        changed = [event for event in seen if isinstance(event, ApnTableChanged)]
        assert changed[-1].reason == "restore"
        assert changed[-1].sub_id == 1


def test_managed_flag_is_persisted(make_config) -> None:
    config = make_config(SEED)
    with ApnEngine(config) as engine:
        dpc_id = engine.insert_dpc({"numeric": "310260", "mcc": "310", "mnc": "260", "apn": "corp.net"})
        assert engine.query(scope=QueryScope.FILTERED)[0]["_id"] != dpc_id
        engine.set_managed_enforced(True)

    with ApnEngine(config) as engine:
        assert engine.is_managed_enforced()
        assert [row["_id"] for row in engine.query(scope=QueryScope.FILTERED)] == [dpc_id]


def test_closed_engine_rejects_calls(make_config) -> None:
    engine = ApnEngine(make_config(SEED)).open()
    engine.close()

    assert not engine.is_open
    with pytest.raises(EngineClosedError):
        engine.query()


def test_unreadable_database_is_recreated(make_config) -> None:
    config = make_config(SEED)
    config.db_path.parent.mkdir(parents=True, exist_ok=True)
    config.db_path.write_bytes(b"this is not a database" * 64)

    with ApnEngine(config) as engine:
        assert _apns(engine) == ["fast.net", "mms.net"]


def test_deleted_preferred_row_is_dropped(make_config) -> None:
    with ApnEngine(make_config(SEED)) as engine:
        own = engine.insert({"numeric": "310260", "mcc": "310", "mnc": "260", "apn": "own.net"})
        engine.set_preferred(5, own)
        engine.delete_by_id(own)

        assert engine.get(own) is None
        assert engine.get_preferred(5) == -1

        seeded = engine.query(ApnFilter().where("apn", "fast.net"))[0]["_id"]
        engine.set_preferred(5, seeded)
        engine.delete_by_id(seeded)

        assert engine.get(seeded)["edited"] == EditProvenance.USER_DELETED
        assert engine.get_preferred_row(5) is None


def test_unreadable_fallback_opens_empty(make_config, seed_path) -> None:
    config = make_config(SEED)
    seed_path.write_text("{not json", encoding="utf-8")

    with ApnEngine(config) as engine:
        assert engine.query() == []
        assert engine.state.checksum == engine.checksum_gate.compute()


def test_unreadable_override_is_ignored(make_config) -> None:
    config = make_config(SEED)
    with ApnEngine(config):
        pass

    override = config.system_root / "etc" / "apns-conf.json"
    override.parent.mkdir(parents=True)
    override.write_text("[]", encoding="utf-8")

    with ApnEngine(config) as engine:
        assert _apns(engine) == ["fast.net", "mms.net"]
    with ApnEngine(config) as engine:
        assert engine.state.checksum == engine.checksum_gate.compute()
