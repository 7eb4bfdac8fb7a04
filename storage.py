"""
Chromatic Valley — Player Progress Storage
High scores, lifetime score, tutorial flags and discovered colors on top
of a small key-value interface. Backed by Firestore in production and by
a dict in tests / local play.
"""

import logging
import os
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

import firebase_admin
from firebase_admin import credentials, firestore

logger = logging.getLogger(__name__)

STORAGE_KEYS = {
    'HIGH_SCORES': 'high_scores',
    'HAS_SEEN_TUTORIAL': 'has_seen_tutorial',
    'MECHANICS_SEEN': 'mechanics_seen',
    'LIFETIME_SCORE': 'lifetime_score',
    'DISCOVERED_COLORS': 'discovered_colors',
}

MAX_HIGH_SCORES = 10
MAX_COLORS_PER_HARMONY = 12


# ── Key-value backends ────────────────────────────────────────

class KeyValueStore:
    """Minimal persistence interface: JSON-compatible values by key."""

    def get(self, key: str, default: Any = None) -> Any:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial or {})

    def get(self, key, default=None):
        return self._data.get(key, default)

    def set(self, key, value):
        self._data[key] = value

    def delete(self, key):
        self._data.pop(key, None)


class FirestoreStore(KeyValueStore):
    """One Firestore document per player; each key is a document field."""

    def __init__(self, db, player_id: str, collection: str = 'chromatic_players'):
        self._ref = db.collection(collection).document(str(player_id))

    def _read(self) -> dict:
        doc = self._ref.get()
        if not doc.exists:
            return {}
        return doc.to_dict() or {}

    def get(self, key, default=None):
        return self._read().get(key, default)

    def set(self, key, value):
        self._ref.set({key: value}, merge=True)

    def delete(self, key):
        if self._ref.get().exists:
            self._ref.update({key: firestore.DELETE_FIELD})


def create_firestore_client(credentials_path: str = "serviceAccountKey.json"):
    """Initialize firebase-admin once and return a Firestore client, or None."""
    try:
        try:
            firebase_admin.get_app()
        except ValueError:
            if os.path.exists(credentials_path):
                firebase_admin.initialize_app(credentials.Certificate(credentials_path))
            else:
                firebase_admin.initialize_app()
        client = firestore.client()
        logger.info("Firebase initialized successfully.")
        return client
    except Exception as e:
        logger.error("Error initializing Firebase: %s", e)
        logger.error("Make sure %s is present or environment variables are set.", credentials_path)
        return None


# ── Progress ──────────────────────────────────────────────────

@dataclass
class HighScore:
    score: int
    level: int
    streak: int
    accuracy: int
    date: str
    mode: str

    @classmethod
    def from_dict(cls, data: dict) -> 'HighScore':
        return cls(
            score=int(data.get('score', 0)),
            level=int(data.get('level', 1)),
            streak=int(data.get('streak', 0)),
            accuracy=int(data.get('accuracy', 0)),
            date=str(data.get('date', '')),
            mode=str(data.get('mode', 'unified')),
        )

    @classmethod
    def from_report(cls, report: dict) -> 'HighScore':
        """Build an entry from GameEngine.final_report()."""
        return cls(
            score=report['score'],
            level=report['level'],
            streak=report['max_streak'],
            accuracy=report['accuracy'],
            date=report['date'],
            mode=report['mode'],
        )

    def to_dict(self) -> dict:
        return asdict(self)


class ProgressStore:
    """
    Player progress over a KeyValueStore.

    Backend failures are logged and the previous value is returned,
    so a flaky store never interrupts play.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    def _get(self, key: str, default):
        try:
            value = self.store.get(STORAGE_KEYS[key], default)
        except Exception as e:
            logger.warning("Failed to load %s: %s", key, e)
            return default
        return default if value is None else value

    def _set(self, key: str, value) -> bool:
        try:
            self.store.set(STORAGE_KEYS[key], value)
            return True
        except Exception as e:
            logger.warning("Failed to save %s: %s", key, e)
            return False

    # ── High scores ───────────────────────────────────────────

    @property
    def high_scores(self) -> List[HighScore]:
        return [HighScore.from_dict(entry) for entry in self._get('HIGH_SCORES', [])]

    def save_high_score(self, entry: HighScore) -> bool:
        """Insert an entry, keeping the top MAX_HIGH_SCORES by score."""
        scores = sorted(self.high_scores + [entry], key=lambda s: s.score, reverse=True)
        return self._set('HIGH_SCORES', [s.to_dict() for s in scores[:MAX_HIGH_SCORES]])

    def get_high_score(self, mode: Optional[str] = None) -> int:
        scores = [s for s in self.high_scores if mode is None or s.mode == mode]
        return max((s.score for s in scores), default=0)

    def is_new_high_score(self, score: int, mode: str) -> bool:
        return score > self.get_high_score(mode)

    # ── Lifetime score ────────────────────────────────────────

    @property
    def lifetime_score(self) -> int:
        return int(self._get('LIFETIME_SCORE', 0))

    def add_to_lifetime_score(self, points: int) -> int:
        """Add points (unified mode only); returns the stored total."""
        current = self.lifetime_score
        updated = current + points
        if self._set('LIFETIME_SCORE', updated):
            return updated
        return current

    def set_lifetime_score(self, score: int) -> None:
        self._set('LIFETIME_SCORE', int(score))

    # ── Tutorials ─────────────────────────────────────────────

    @property
    def has_seen_tutorial(self) -> bool:
        return bool(self._get('HAS_SEEN_TUTORIAL', False))

    def mark_tutorial_seen(self) -> None:
        self._set('HAS_SEEN_TUTORIAL', True)

    @property
    def mechanics_seen(self) -> List[str]:
        return list(self._get('MECHANICS_SEEN', []))

    def has_seen_mechanic(self, mechanic: str) -> bool:
        return mechanic in self.mechanics_seen

    def mark_mechanic_seen(self, mechanic: str) -> None:
        seen = self.mechanics_seen
        if mechanic in seen:
            return
        self._set('MECHANICS_SEEN', seen + [mechanic])

    def reset_tutorials(self) -> None:
        self._set('HAS_SEEN_TUTORIAL', False)
        self._set('MECHANICS_SEEN', [])

    # ── Discovered colors ─────────────────────────────────────

    @property
    def discovered_colors(self) -> Dict[str, List[str]]:
        return dict(self._get('DISCOVERED_COLORS', {}))

    def add_discovered_colors(self, harmony_type: str, colors: List[str]) -> None:
        """Append unique colors, keeping the most recent MAX_COLORS_PER_HARMONY."""
        discovered = self.discovered_colors
        merged = list(dict.fromkeys(discovered.get(harmony_type, []) + list(colors)))
        discovered[harmony_type] = merged[-MAX_COLORS_PER_HARMONY:]
        self._set('DISCOVERED_COLORS', discovered)

    def clear_all_data(self) -> None:
        for key in STORAGE_KEYS.values():
            try:
                self.store.delete(key)
            except Exception as e:
                logger.warning("Failed to clear %s: %s", key, e)
