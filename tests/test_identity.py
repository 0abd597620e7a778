from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from app.core import connections
from app.core.errors import IdentityNotFound, StorageUnavailable
from app.core.identity import resolve_internal_user
from app.models import Connection, LegacyUserConnection, User


def test_numeric_id_matches_whitelist_without_connection(db):
    db.add(User(id=42, user_fid=1042))
    db.commit()

    assert resolve_internal_user(db, "42") == 1042


def test_numeric_id_falls_through_to_connection(db):
    db.add(Connection(user_fid=9, rook_user_id="77"))
    db.commit()

    assert resolve_internal_user(db, "77") == 9


def test_generated_id_uses_connection(db):
    db.add(Connection(user_fid=9, rook_user_id="a1b2-c3"))
    db.commit()

    assert resolve_internal_user(db, " a1b2-c3 ") == 9


def test_legacy_table_is_consulted_last(db):
    db.add(LegacyUserConnection(user_fid=11, provider="rook", rook_user_id="old-id"))
    db.commit()

    assert resolve_internal_user(db, "old-id") == 11
    assert connections.find_rook_user_id(db, 11) == "old-id"


def test_unknown_id_raises(db):
    with pytest.raises(IdentityNotFound) as exc:
        resolve_internal_user(db, "nobody")
    assert exc.value.external_id == "nobody"


def test_superscript_digit_is_not_a_whitelist_id(db):
    with pytest.raises(IdentityNotFound):
        resolve_internal_user(db, "\u00b2")


def test_lookup_failure_raises_storage_unavailable(db, engine):
    Connection.__table__.drop(engine)

    with pytest.raises(StorageUnavailable):
        connections.find_user_fid(db, "rook-abc")
    with pytest.raises(StorageUnavailable):
        connections.find_rook_user_id(db, 5)


def test_attach_overwrites_previous_aggregator_id(db):
    db.add(User(id=1, user_fid=100))
    db.commit()

    connections.attach(db, 100, "first")
    connections.attach(db, 100, "second", data_sources=["fitbit"])

    rows = db.scalars(select(Connection)).all()
    assert len(rows) == 1
    assert rows[0].rook_user_id == "second"
    assert rows[0].data_sources == ["fitbit"]
    assert db.scalars(select(User)).one().connected_provider == "rook"


def test_attach_moves_aggregator_id_between_users(db):
    connections.attach(db, 100, "shared")
    connections.attach(db, 200, "shared")

    assert connections.find_user_fid(db, "shared") == 200
    assert connections.find_rook_user_id(db, 100) is None


def test_active_connections_filters_status(db):
    db.add(Connection(user_fid=1, rook_user_id="a"))
    db.add(Connection(user_fid=2, rook_user_id="b", connection_status="revoked"))
    db.commit()

    assert [c.user_fid for c in connections.active_connections(db)] == [1]
    assert connections.active_connections(db, user_fid=2) == []


def test_migrate_legacy_connections(db):
    now = datetime.now(timezone.utc)
    db.add_all(
        [
            LegacyUserConnection(user_fid=1, provider="rook", rook_user_id="x", updated_at=now),
            LegacyUserConnection(user_fid=2, provider="rook", rook_user_id="y", updated_at=now),
            LegacyUserConnection(user_fid=3, provider="garmin", rook_user_id=None, updated_at=now),
        ]
    )
    db.add(Connection(user_fid=2, rook_user_id="y"))
    db.commit()

    assert connections.migrate_legacy_connections(db) == 1
    assert connections.find_user_fid(db, "x") == 1
    assert connections.migrate_legacy_connections(db) == 0
