"""
Logical key registry.

The registry is the single list of named slots the app persists. Export
covers exactly the synced slots; nothing outside the registry is ever
read, written or synced by the store adapter.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional


class SlotKind(Enum):
    # How a slot's value is shaped, which decides validation and merge rules
    SCALAR = "scalar"
    COLLECTION = "collection"
    CONFIG = "config"


@dataclass(frozen=True)
class Slot:
    key: str
    default: Any
    kind: SlotKind = SlotKind.SCALAR
    synced: bool = True

    def fresh_default(self) -> Any:
        """Return a copy of the default that callers may mutate."""
        return copy.deepcopy(self.default)


class KEYS:
    """Stable identifiers of every registry slot."""

    PARTNER_1 = "rc_partner1"
    PARTNER_2 = "rc_partner2"
    NICKNAME = "rc_nickname"
    START_DATE = "rc_start_date"
    ANNIVERSARY_TYPE = "rc_anniversary_type"
    EVENTS = "rc_events"
    GOALS = "rc_goals"
    CAPSULES = "rc_capsules"
    JOURNEY = "rc_journey"
    VOICE_ENTRIES = "rc_voice_entries"
    LEGACY_MESSAGES = "rc_legacy"
    DAILY_ANSWERS = "rc_daily_answers"
    LOVE_NOTE = "rc_love_note"
    MOOD = "rc_my_mood"
    NOTIFICATIONS = "rc_notifications"
    BG_MUSIC = "rc_bg_music_enabled"
    AI_ENABLED = "rc_ai_enabled"
    SETUP_COMPLETE = "rc_setup_complete"
    PHOTOS_SET = "rc_photos_set"
    LD_ENABLED = "rc_ld_enabled"
    LD_OFFSET = "rc_ld_offset"
    LD_MEET = "rc_ld_meet"
    LD_MY_LOC = "rc_ld_my_loc"
    LD_PARTNER_LOC = "rc_ld_partner_loc"
    LAST_SYNC = "rc_last_sync"
    # device-local
    AI_KEY = "rc_ai_key"
    LOCK_ENABLED = "rc_lock_enabled"
    APP_PIN = "rc_app_pin"


_SLOTS: List[Slot] = [
    Slot(KEYS.PARTNER_1, ""),
    Slot(KEYS.PARTNER_2, ""),
    Slot(KEYS.NICKNAME, ""),
    Slot(KEYS.START_DATE, ""),
    Slot(KEYS.ANNIVERSARY_TYPE, ""),
    Slot(KEYS.EVENTS, [], SlotKind.COLLECTION),
    Slot(KEYS.GOALS, [], SlotKind.COLLECTION),
    Slot(KEYS.CAPSULES, [], SlotKind.COLLECTION),
    Slot(KEYS.JOURNEY, [], SlotKind.COLLECTION),
    Slot(KEYS.VOICE_ENTRIES, [], SlotKind.COLLECTION),
    Slot(KEYS.LEGACY_MESSAGES, [], SlotKind.COLLECTION),
    Slot(KEYS.DAILY_ANSWERS, {}, SlotKind.CONFIG),
    Slot(KEYS.LOVE_NOTE, ""),
    Slot(KEYS.MOOD, ""),
    Slot(KEYS.NOTIFICATIONS, False),
    Slot(KEYS.BG_MUSIC, False),
    Slot(KEYS.AI_ENABLED, False),
    Slot(KEYS.SETUP_COMPLETE, False),
    Slot(KEYS.PHOTOS_SET, False),
    Slot(KEYS.LD_ENABLED, False),
    Slot(KEYS.LD_OFFSET, ""),
    Slot(KEYS.LD_MEET, ""),
    Slot(KEYS.LD_MY_LOC, ""),
    Slot(KEYS.LD_PARTNER_LOC, ""),
    Slot(KEYS.LAST_SYNC, ""),
    Slot(KEYS.AI_KEY, "", synced=False),
    Slot(KEYS.LOCK_ENABLED, False, synced=False),
    Slot(KEYS.APP_PIN, "", synced=False),
]

REGISTRY: Dict[str, Slot] = {slot.key: slot for slot in _SLOTS}

# Short labels used when summarising collections for a preview
COLLECTION_LABELS: Dict[str, str] = {
    KEYS.EVENTS: "events",
    KEYS.GOALS: "goals",
    KEYS.CAPSULES: "capsules",
    KEYS.JOURNEY: "journey",
    KEYS.VOICE_ENTRIES: "voice",
    KEYS.LEGACY_MESSAGES: "legacy",
}


def get_slot(key: str) -> Optional[Slot]:
    return REGISTRY.get(key)


def is_registered(key: str) -> bool:
    return key in REGISTRY


def iter_slots(synced_only: bool = False) -> Iterator[Slot]:
    for slot in _SLOTS:
        if synced_only and not slot.synced:
            continue
        yield slot


def all_keys() -> List[str]:
    return [slot.key for slot in _SLOTS]


def synced_keys() -> List[str]:
    return [slot.key for slot in _SLOTS if slot.synced]
