"""Unit tests for the snapshot importer / reconciler."""

import pytest

from heartsync.core.exceptions import (
    MalformedSnapshotError,
    UnsupportedSnapshotVersionError,
    ValidationError,
)
from heartsync.core.models import META_KEY, Snapshot, SnapshotMeta
from heartsync.core.registry import KEYS
from heartsync.core.store import StoreAdapter
from heartsync.database.backends import MemoryKeyValueBackend
from heartsync.security import codec
from heartsync.sync.importer import (
    GENERIC_DECRYPT_FAILURE,
    LEGACY_SYNC_VERSION,
    SnapshotImporter,
    parse_payload,
    upgrade_legacy,
)

PASS = "correct-horse"
META = {"appVersion": "1.4.0", "exportedAt": "2024-05-01T10:00:00+00:00", "syncVersion": 1}


@pytest.fixture
def store():
    return StoreAdapter(MemoryKeyValueBackend())


@pytest.fixture
def importer(store):
    return SnapshotImporter(store)


def _package(data, meta=META):
    payload = dict(data)
    if meta is not None:
        payload[META_KEY] = meta
    return codec.encrypt(payload, PASS)


# --- parse_payload / legacy ---


def test_parse_payload_current_version():
    snap = parse_payload({KEYS.PARTNER_1: "Alex", META_KEY: META})
    assert snap.meta.sync_version == 1
    assert snap.data == {KEYS.PARTNER_1: "Alex"}


def test_parse_payload_legacy_shape():
    snap = parse_payload({"goals": [{"id": "g1"}], "settings": {"music": "true"}})
    assert snap.meta.sync_version == LEGACY_SYNC_VERSION


@pytest.mark.parametrize("payload", [{}, {"random": 1}, "text", [1]])
def test_parse_payload_rejects_unknown_shapes(payload):
    with pytest.raises(MalformedSnapshotError):
        parse_payload(payload)


def test_upgrade_legacy_maps_fields_and_flags():
    upgraded = upgrade_legacy({
        "capsules": [{"id": "c1"}],
        "voice": [{"id": "v1"}],
        "settings": {"music": "true", "notifications": "false"},
    })
    assert upgraded == {
        KEYS.CAPSULES: [{"id": "c1"}],
        KEYS.VOICE_ENTRIES: [{"id": "v1"}],
        KEYS.BG_MUSIC: True,
        KEYS.NOTIFICATIONS: False,
    }


def test_registry_data_refuses_unknown_version(importer):
    snap = Snapshot({KEYS.PARTNER_1: "Alex"}, SnapshotMeta("9.0.0", "", 7))
    with pytest.raises(UnsupportedSnapshotVersionError):
        importer.registry_data(snap)
    assert importer.registry_data(snap, allow_unknown_version=True) == {KEYS.PARTNER_1: "Alex"}


# --- decrypt_and_preview ---


def test_preview_summarises_without_writing(importer, store):
    package = _package({
        KEYS.PARTNER_1: "Alex",
        KEYS.PARTNER_2: "Sam",
        KEYS.START_DATE: "2020-02-14",
        KEYS.GOALS: [{"id": "g1"}, {"id": "g2"}, {"id": "g3"}],
        KEYS.EVENTS: [{"id": "e1"}, {"id": "e2"}],
    })
    preview = importer.decrypt_and_preview(package, PASS)
    assert preview.success
    assert preview.counts == {"goals": 3, "events": 2}
    assert (preview.partner1, preview.partner2) == ("Alex", "Sam")
    assert preview.start_date == "2020-02-14"
    assert preview.exported_at == META["exportedAt"]
    assert preview.sync_version == 1
    # nothing written yet
    assert store.get(KEYS.PARTNER_1) == ""
    assert store.get(KEYS.LAST_SYNC) == ""


def test_preview_wrong_passphrase_is_generic(importer):
    preview = importer.decrypt_and_preview(_package({KEYS.PARTNER_1: "Alex"}), "wrong-password")
    assert preview.success is False
    assert preview.message == GENERIC_DECRYPT_FAILURE
    assert preview.snapshot is None


def test_preview_corrupt_package_is_generic(importer):
    preview = importer.decrypt_and_preview('{"salt": "AAAA"}', PASS)
    assert preview.message == GENERIC_DECRYPT_FAILURE


def test_preview_missing_input_raises_validation(importer):
    with pytest.raises(ValidationError):
        importer.decrypt_and_preview("", PASS)
    with pytest.raises(ValidationError):
        importer.decrypt_and_preview(_package({}), "")


def test_preview_unrecognised_shape(importer):
    package = codec.encrypt({"whatever": True}, PASS)
    preview = importer.decrypt_and_preview(package, PASS)
    assert preview.success is False
    assert preview.message == "Unrecognised data format"


def test_preview_flags_unknown_version(importer):
    package = _package({KEYS.PARTNER_1: "Alex"}, meta=dict(META, syncVersion=2))
    preview = importer.decrypt_and_preview(package, PASS)
    assert preview.success is True
    assert "unknown app version" in preview.message
    assert preview.sync_version == 2


def test_preview_legacy_counts(importer):
    package = codec.encrypt({"goals": [{"id": "g1"}], "journey": [{"id": "j1"}, {"id": "j2"}]}, PASS)
    preview = importer.decrypt_and_preview(package, PASS)
    assert preview.success
    assert preview.counts == {"goals": 1, "journey": 2}
    assert preview.sync_version == LEGACY_SYNC_VERSION


@pytest.mark.asyncio
async def test_preview_async(importer):
    preview = await importer.decrypt_and_preview_async(_package({KEYS.PARTNER_1: "Alex"}), PASS)
    assert preview.partner1 == "Alex"


# --- commit ---


def test_commit_replace(importer, store):
    store.set(KEYS.PARTNER_1, "Local")
    preview = importer.decrypt_and_preview(_package({KEYS.PARTNER_1: "Alex"}), PASS)
    result = importer.commit(preview.snapshot, merge_mode=False)
    assert result.success
    assert result.message == "Sync complete"
    assert store.get(KEYS.PARTNER_1) == "Alex"
    assert store.get(KEYS.LAST_SYNC)


def test_commit_merge(importer, store):
    store.set(KEYS.GOALS, [{"id": "g1", "title": "local"}])
    package = _package({KEYS.GOALS: [{"id": "g1", "title": "remote"}, {"id": "g2"}]})
    result = importer.import_package(package, PASS, merge_mode=True)
    assert result.success
    assert store.get(KEYS.GOALS) == [{"id": "g1", "title": "local"}, {"id": "g2"}]


def test_commit_reports_malformed_key(importer, store):
    package = _package({KEYS.GOALS: "oops", KEYS.PARTNER_1: "Alex"})
    result = importer.import_package(package, PASS, merge_mode=False)
    assert result.success is False
    assert list(result.failed_keys) == [KEYS.GOALS]
    assert store.get(KEYS.PARTNER_1) == "Alex"


def test_commit_unknown_version_fails_closed(importer, store):
    package = _package({KEYS.PARTNER_1: "Alex"}, meta=dict(META, syncVersion=2))
    result = importer.import_package(package, PASS, merge_mode=False)
    assert result.success is False
    assert META_KEY in result.failed_keys
    assert store.get(KEYS.PARTNER_1) == ""

    forced = importer.import_package(package, PASS, merge_mode=False, allow_unknown_version=True)
    assert forced.success
    assert store.get(KEYS.PARTNER_1) == "Alex"


def test_commit_never_touches_device_local_keys(importer, store):
    store.set(KEYS.APP_PIN, "local-hash")
    package = _package({KEYS.APP_PIN: "remote-hash", KEYS.AI_KEY: "sk-remote"})
    result = importer.import_package(package, PASS, merge_mode=False)
    assert sorted(result.skipped_keys) == sorted([KEYS.APP_PIN, KEYS.AI_KEY])
    assert store.get(KEYS.APP_PIN) == "local-hash"
    assert store.get(KEYS.AI_KEY) == ""


def test_commit_legacy_payload(importer, store):
    package = codec.encrypt({"goals": [{"id": "g1"}], "settings": {"music": "true"}}, PASS)
    result = importer.import_package(package, PASS, merge_mode=False)
    assert result.success
    assert store.get(KEYS.GOALS) == [{"id": "g1"}]
    assert store.get(KEYS.BG_MUSIC) is True


def test_import_package_wrong_passphrase_writes_nothing(importer, store):
    store.set(KEYS.PARTNER_1, "Local")
    result = importer.import_package(_package({KEYS.PARTNER_1: "Alex"}), "wrong-password", merge_mode=False)
    assert result.success is False
    assert result.message == GENERIC_DECRYPT_FAILURE
    assert store.get(KEYS.PARTNER_1) == "Local"
    assert store.get(KEYS.LAST_SYNC) == ""
