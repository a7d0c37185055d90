import threading
from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.core.database import Base
from app.core.exceptions import AuthenticationError, TokenExpiredError
from app.core.security import create_refresh_token, decode_refresh_token
from app.models.security import RefreshToken
from app.models.user import User
from app.services.token_service import token_service


def _rows(db, user_id):
    db.expire_all()
    return db.query(RefreshToken).filter(RefreshToken.user_id == user_id).all()


def test_issue_token_pair_persists_refresh_row(db, make_user):
    alice = make_user("alice")
    access, refresh = token_service.issue_token_pair(db, alice.id)

    assert token_service.verify_access(access).user_id == alice.id
    rows = _rows(db, alice.id)
    assert [r.token_jti for r in rows] == [decode_refresh_token(refresh).jti]


def test_rotate_is_single_use(db, make_user):
    alice = make_user("alice")
    _, refresh = token_service.issue_token_pair(db, alice.id)

    user_id, access, new_refresh = token_service.rotate(db, refresh)
    assert user_id == alice.id
    assert token_service.verify_access(access).user_id == alice.id
    assert new_refresh != refresh
    assert [r.token_jti for r in _rows(db, alice.id)] == [decode_refresh_token(new_refresh).jti]

    with pytest.raises(AuthenticationError):
        token_service.rotate(db, refresh)

    # The replacement is still good after the replay attempt
    assert token_service.rotate(db, new_refresh)[0] == alice.id



def test_rotate_drops_consumed_row_from_session(db, make_user):
    alice = make_user("alice")
    _, refresh = token_service.issue_token_pair(db, alice.id)
    consumed = db.query(RefreshToken).filter(RefreshToken.token_jti == decode_refresh_token(refresh).jti).one()

    token_service.rotate(db, refresh)

    assert consumed not in db
    assert [r.token_jti for r in _rows(db, alice.id)] != [consumed.token_jti]


def test_concurrent_rotations_have_one_winner(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'rotate.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    make_session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    try:
        setup = make_session()
        try:
            user = User(username="alice", password_hash="unused")
            setup.add(user)
            setup.commit()
            user_id = user.id
            _, refresh = token_service.issue_token_pair(setup, user_id)
        finally:
            setup.close()

        barrier = threading.Barrier(2)
        outcomes = []

        def attempt():
            session = make_session()
            try:
                barrier.wait()
                token_service.rotate(session, refresh)
                outcomes.append("rotated")
            except (AuthenticationError, SQLAlchemyError):
                session.rollback()
                outcomes.append("refused")
            finally:
                session.close()

        workers = [threading.Thread(target=attempt) for _ in range(2)]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join(timeout=30)

        assert sorted(outcomes) == ["refused", "rotated"]
        check = make_session()
        try:
            live = check.query(RefreshToken).filter(RefreshToken.user_id == user_id).all()
            assert len(live) == 1
            assert live[0].token_jti != decode_refresh_token(refresh).jti
        finally:
            check.close()
    finally:
        engine.dispose()


def test_rotate_rejects_unknown_token(db, make_user):
    alice = make_user("alice")
    with pytest.raises(AuthenticationError, match="not recognized"):
        token_service.rotate(db, create_refresh_token(alice.id))


def test_rotate_rejects_owner_mismatch(db, make_user):
    alice = make_user("alice")
    bob = make_user("bob")
    refresh = create_refresh_token(alice.id)
    claims = decode_refresh_token(refresh)
    db.add(RefreshToken(user_id=bob.id, token_jti=claims.jti, expires_at=datetime.utcfromtimestamp(claims.expires_at)))
    db.commit()

    with pytest.raises(AuthenticationError, match="owner"):
        token_service.rotate(db, refresh)
    assert len(_rows(db, bob.id)) == 1


def test_rotate_rejects_expired_token(db, make_user):
    alice = make_user("alice")
    with pytest.raises(TokenExpiredError):
        token_service.rotate(db, create_refresh_token(alice.id, expires_delta=timedelta(seconds=-1)))


def test_revoke_is_idempotent(db, make_user):
    alice = make_user("alice")
    _, refresh = token_service.issue_token_pair(db, alice.id)

    assert token_service.revoke(db, refresh) is True
    assert token_service.revoke(db, refresh) is False
    assert token_service.revoke(db, "garbage") is False
    assert _rows(db, alice.id) == []


def test_revoke_all_only_touches_one_user(db, make_user):
    alice = make_user("alice")
    bob = make_user("bob")
    token_service.issue_token_pair(db, alice.id)
    token_service.issue_token_pair(db, alice.id)
    _, bob_refresh = token_service.issue_token_pair(db, bob.id)

    assert token_service.revoke_all(db, alice.id) == 2
    assert _rows(db, alice.id) == []
    assert token_service.rotate(db, bob_refresh)[0] == bob.id
