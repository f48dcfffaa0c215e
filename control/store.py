"""
Persisted State Store adapter.

DocumentStore is the opaque key -> JSON blob layer (SQLAlchemy).
StateStore loads and saves the current AppState document, migrating from
older schema keys on a miss and seeding a default state when nothing is
found.

Schema history:
- v2ray_bot_db_v3 / v4: one global server config on the root document,
  users carry `code`, plain-text `adminPassword`
- v2ray_bot_db_v5_multiserver: `servers` list with totalDataGB/dataUsedGB,
  users carry `code`, plain-text `adminPassword`, no lastDaySettlement
- ghostlayer_state_v6 (current): capacity fields, `accessCode`,
  bcrypt `adminPasswordHash`, `lastDaySettlement`, join `requests`
"""

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from shared.token_utils import new_id, new_access_code
from control import codec, config
from control.auth import hash_password
from control.database import StateDocument
from control.errors import PersistenceError
from control.models import AppState, ServerNode, ServerStatus, utcnow

logger = logging.getLogger(__name__)

LEGACY_KEYS = ["v2ray_bot_db_v3", "v2ray_bot_db_v4", "v2ray_bot_db_v5_multiserver"]


class DocumentStore:
    """Key -> JSON document persistence"""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def load(self, key: str) -> Optional[Dict[str, Any]]:
        db = self.session_factory()
        try:
            doc = db.scalars(select(StateDocument).where(StateDocument.key == key)).first()
            return copy.deepcopy(doc.payload) if doc else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load document '{key}': {e}") from e
        finally:
            db.close()

    def save(self, key: str, payload: Dict[str, Any]) -> None:
        db = self.session_factory()
        try:
            doc = db.get(StateDocument, key)
            if doc is None:
                db.add(StateDocument(key=key, payload=payload, updated_at=datetime.now(timezone.utc)))
            else:
                doc.payload = payload
                doc.updated_at = datetime.now(timezone.utc)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to save document '{key}': {e}")
            raise PersistenceError(f"Failed to save document '{key}': {e}") from e
        finally:
            db.close()


# ============================================================================
# DEFAULT STATE
# ============================================================================

def default_state(now: datetime, admin_password: str = None) -> AppState:
    """Seed state: one pre-provisioned node, no users"""
    return AppState(
        admin_password_hash=hash_password(admin_password or config.DEFAULT_ADMIN_PASSWORD),
        last_sync_time=now,
        last_day_settlement=now,
        users=(),
        servers=(
            ServerNode(
                id="srv-default-1",
                name="Titanium Node (DE)",
                sync_url="",
                config_link="vless://uuid@cdn.example.com:443?encryption=none&security=tls&type=ws#Titanium-Node",
                message="⚡ Optimized for Streaming | Low Latency",
                total_capacity_gb=500.0,
                used_capacity_gb=124.5,
                total_days=30,
                days_remaining=15,
                status=ServerStatus.ACTIVE,
            ),
        ),
        requests=(),
    )


# ============================================================================
# MIGRATIONS
# ============================================================================

def _now_ms(now: datetime) -> int:
    return codec.to_millis(now)


def _migrate_user(raw: Dict[str, Any], now: datetime, server_id: Optional[str] = None) -> Dict[str, Any]:
    user = dict(raw)
    if "accessCode" not in user:
        user["accessCode"] = user.pop("code", None) or new_access_code()
    user.setdefault("id", new_id())
    user.setdefault("status", "active")
    user.setdefault("plan", {})
    user.setdefault("messages", [])
    user.setdefault("joinedAt", _now_ms(now))
    if server_id is not None:
        user["serverId"] = server_id
    else:
        user.setdefault("serverId", None)
    return user


def _dedupe_access_codes(users):
    """Legacy documents never checked uniqueness; reissue duplicates"""
    seen = set()
    for user in users:
        if user["accessCode"] in seen:
            old = user["accessCode"]
            while user["accessCode"] in seen:
                user["accessCode"] = new_access_code()
            logger.warning(f"Duplicate access code {old[:4]}… reissued for user {user['id']}")
        seen.add(user["accessCode"])
    return users


def migrate_single_server_document(old: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    """v3/v4: build one server from the global config and bind every user to it"""
    server_id = new_id()
    server = {
        "id": server_id,
        "name": "Primary Server (Migrated)",
        "subscriptionUrl": old.get("subscriptionUrl") or "",
        "configLink": old.get("baseVpnConfig") or "vless://example",
        "message": old.get("serverMessage") or "System Operational",
        "totalCapacityGB": 1000.0,
        "usedCapacityGB": 0.0,
        "totalDays": 30,
        "daysRemaining": 30,
        "status": "active",
    }
    users = [_migrate_user(u, now, server_id=server_id) for u in old.get("users") or []]
    return {
        "users": _dedupe_access_codes(users),
        "servers": [server],
        "requests": [],
        "adminPasswordHash": hash_password(old.get("adminPassword") or config.DEFAULT_ADMIN_PASSWORD),
        "lastSyncTime": _now_ms(now),
        "lastDaySettlement": _now_ms(now),
    }


def migrate_multiserver_document(old: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    """v5: rename capacity/code fields, hash the password, seed lastDaySettlement"""
    servers = []
    for raw in old.get("servers") or []:
        server = dict(raw)
        if "totalCapacityGB" not in server:
            server["totalCapacityGB"] = server.pop("totalDataGB", 1000.0)
        if "usedCapacityGB" not in server:
            server["usedCapacityGB"] = server.pop("dataUsedGB", 0.0)
        servers.append(server)

    users = [_migrate_user(u, now) for u in old.get("users") or []]
    return {
        "users": _dedupe_access_codes(users),
        "servers": servers,
        # v5 readers already discarded sign-up requests
        "requests": [],
        "adminPasswordHash": hash_password(old.get("adminPassword") or config.DEFAULT_ADMIN_PASSWORD),
        "lastSyncTime": old.get("lastSyncTime") or _now_ms(now),
        "lastDaySettlement": old.get("lastDaySettlement") or _now_ms(now),
    }


MIGRATIONS: Dict[str, Callable[[Dict[str, Any], datetime], Dict[str, Any]]] = {
    "v2ray_bot_db_v3": migrate_single_server_document,
    "v2ray_bot_db_v4": migrate_single_server_document,
    "v2ray_bot_db_v5_multiserver": migrate_multiserver_document,
}


# ============================================================================
# STATE STORE
# ============================================================================

# Raised by the codec and migrations on documents that do not match the schema
DECODE_ERRORS = (KeyError, ValueError, TypeError, AttributeError)


class StateStore:
    """Loads/saves the current AppState document"""

    def __init__(self, documents: DocumentStore, key: str = None, clock: Callable[[], datetime] = utcnow):
        self.documents = documents
        self.key = key or config.STATE_KEY
        self.clock = clock

    def load_state(self) -> AppState:
        """
        Load the current snapshot, migrating or seeding it when missing.

        Raises:
            PersistenceError: Backend unavailable, or the current document is unreadable
        """
        now = self.clock()
        doc = self.documents.load(self.key)
        if doc is not None:
            try:
                return codec.state_from_dict(doc, now)
            except DECODE_ERRORS as e:
                logger.error(f"State document '{self.key}' is malformed: {e!r}")
                raise PersistenceError(f"State document '{self.key}' is malformed: {e!r}") from e

        for legacy_key in LEGACY_KEYS:
            old = self.documents.load(legacy_key)
            if old is None:
                continue
            logger.info(f"Migrating state document from '{legacy_key}' to '{self.key}'")
            try:
                state = codec.state_from_dict(MIGRATIONS[legacy_key](old, now), now)
            except DECODE_ERRORS as e:
                logger.error(f"Migration from '{legacy_key}' failed, skipping: {e!r}")
                continue
            state = self.save_state(state)
            logger.info(f"Migration complete: {len(state.users)} users, {len(state.servers)} servers")
            return state

        logger.info("No state document found; seeding default state")
        return self.save_state(default_state(now))

    def save_state(self, state: AppState) -> AppState:
        """
        Persist the whole snapshot and return it as stored (timestamps at
        millisecond precision), so callers hold exactly what a reload yields.

        Raises:
            PersistenceError: The document could not be written
        """
        doc = codec.state_to_dict(state)
        self.documents.save(self.key, doc)
        return codec.state_from_dict(doc, self.clock())
