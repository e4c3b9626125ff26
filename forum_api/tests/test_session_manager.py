import os
import tempfile
import unittest
from datetime import datetime, timedelta, timezone

from forum_api.models import AuditLog, RefreshToken
from forum_api.repositories.session_store import SessionStore
from forum_api.schemas.auth import LoginRequest, SignupRequest
from forum_api.services.auth_service import auth_service
from forum_api.services.session_errors import (
    MissingCredential, InvalidCredential, Expired,
    InactiveOrMissingUser, TransientFailure,
)
from forum_api.services.session_manager import SessionManager
from forum_api.tests.helpers import (
    make_database, make_manager, make_settings, make_user, fixed_clock,
)
from forum_api.utils.exceptions import InvalidCredentialsException


class SessionManagerTestCase(unittest.TestCase):
    def setUp(self):
        self.database = make_database()
        self.db = self.database.session()
        self.settings = make_settings()
        self.user = make_user(self.db)
        self.manager = make_manager(self.db, self.settings)

    def tearDown(self):
        self.db.close()
        self.database.dispose()

    def records(self) -> list[RefreshToken]:
        return self.db.query(RefreshToken).populate_existing().order_by(RefreshToken.id).all()


class TestIssueAndAuthenticate(SessionManagerTestCase):

    def test_issue_then_authenticate_returns_same_user(self):
        tokens = self.manager.issue_session(self.user.id)
        user = self.manager.authenticate(tokens.access_token)
        self.assertEqual(user.id, self.user.id)
        self.assertEqual(user.userName, "alice")

    def test_issue_persists_unrevoked_record(self):
        tokens = self.manager.issue_session(self.user.id)
        records = self.records()
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].token, tokens.refresh_token)
        self.assertEqual(records[0].userId, self.user.id)
        self.assertIsNone(records[0].revokedAt)

    def test_sessions_issued_in_same_tick_get_distinct_tokens(self):
        manager = make_manager(self.db, self.settings, clock=fixed_clock())
        first = manager.issue_session(self.user.id)
        second = manager.issue_session(self.user.id)
        self.assertNotEqual(first.refresh_token, second.refresh_token)
        self.assertEqual(len(self.records()), 2)

    def test_missing_credentials(self):
        for value in (None, "", "loggedout"):
            with self.subTest(value=value):
                with self.assertRaises(MissingCredential):
                    self.manager.authenticate(value)

    def test_garbage_token_is_invalid(self):
        with self.assertRaises(InvalidCredential):
            self.manager.authenticate("not-a-jwt")

    def test_token_signed_with_other_secret_is_invalid(self):
        other = make_manager(self.db, make_settings(SECRET_KEY="someone-else"))
        tokens = other.issue_session(self.user.id)
        with self.assertRaises(InvalidCredential):
            self.manager.authenticate(tokens.access_token)

    def test_refresh_token_is_not_an_access_token(self):
        tokens = self.manager.issue_session(self.user.id)
        with self.assertRaises(InvalidCredential):
            self.manager.authenticate(tokens.refresh_token)

    def test_expired_access_token_is_expired_not_invalid(self):
        an_hour_ago = datetime.now(timezone.utc) - timedelta(hours=1)
        past = make_manager(self.db, self.settings, clock=fixed_clock(an_hour_ago))
        tokens = past.issue_session(self.user.id)
        with self.assertRaises(Expired):
            self.manager.authenticate(tokens.access_token)

    def test_deactivated_user_cannot_authenticate(self):
        tokens = self.manager.issue_session(self.user.id)
        self.user.isActive = False
        self.db.commit()
        with self.assertRaises(InactiveOrMissingUser):
            self.manager.authenticate(tokens.access_token)

    def test_deleted_user_cannot_authenticate(self):
        tokens = self.manager.issue_session(self.user.id)
        self.db.delete(self.user)
        self.db.commit()
        with self.assertRaises(InactiveOrMissingUser):
            self.manager.authenticate(tokens.access_token)


class TestRotateSession(SessionManagerTestCase):

    def test_rotation_revokes_old_and_creates_new(self):
        tokens = self.manager.issue_session(self.user.id)
        rotated = self.manager.rotate_session(tokens.refresh_token)

        self.assertNotEqual(rotated.tokens.refresh_token, tokens.refresh_token)
        self.assertEqual(rotated.user.id, self.user.id)
        self.assertEqual(self.manager.authenticate(rotated.tokens.access_token).id, self.user.id)

        old, new = self.records()
        self.assertIsNotNone(old.revokedAt)
        self.assertIsNone(new.revokedAt)
        self.assertEqual(new.token, rotated.tokens.refresh_token)

    def test_old_refresh_token_cannot_be_reused(self):
        tokens = self.manager.issue_session(self.user.id)
        self.manager.rotate_session(tokens.refresh_token)
        with self.assertRaises(InvalidCredential):
            self.manager.rotate_session(tokens.refresh_token)

    def test_rotated_token_can_rotate_again(self):
        tokens = self.manager.issue_session(self.user.id)
        second = self.manager.rotate_session(tokens.refresh_token)
        third = self.manager.rotate_session(second.tokens.refresh_token)
        self.assertEqual(len(self.records()), 3)
        self.assertIsNone(self.records()[-1].revokedAt)
        self.assertEqual(third.user.id, self.user.id)

    def test_missing_refresh_token(self):
        with self.assertRaises(MissingCredential):
            self.manager.rotate_session(None)

    def test_forged_refresh_token(self):
        other = make_manager(self.db, make_settings(SECRET_KEY="someone-else"))
        tokens = other.issue_session(self.user.id)
        with self.assertRaises(InvalidCredential):
            self.manager.rotate_session(tokens.refresh_token)

    def test_access_token_cannot_rotate(self):
        tokens = self.manager.issue_session(self.user.id)
        with self.assertRaises(InvalidCredential):
            self.manager.rotate_session(tokens.access_token)

    def test_expired_record_is_invalid(self):
        tokens = self.manager.issue_session(self.user.id)
        record = self.records()[0]
        record.expiresAt = datetime.now(timezone.utc) - timedelta(minutes=1)
        self.db.commit()
        with self.assertRaises(InvalidCredential):
            self.manager.rotate_session(tokens.refresh_token)

    def test_expired_refresh_jwt_is_invalid(self):
        eight_days_ago = datetime.now(timezone.utc) - timedelta(days=8)
        past = make_manager(self.db, self.settings, clock=fixed_clock(eight_days_ago))
        tokens = past.issue_session(self.user.id)
        with self.assertRaises(InvalidCredential):
            self.manager.rotate_session(tokens.refresh_token)

    def test_valid_token_without_record_is_invalid(self):
        tokens = self.manager.issue_session(self.user.id)
        self.db.query(RefreshToken).delete()
        self.db.commit()
        with self.assertRaises(InvalidCredential):
            self.manager.rotate_session(tokens.refresh_token)

    def test_deactivated_user_cannot_rotate(self):
        tokens = self.manager.issue_session(self.user.id)
        self.user.isActive = False
        self.db.commit()
        with self.assertRaises(InactiveOrMissingUser):
            self.manager.rotate_session(tokens.refresh_token)
        self.assertIsNone(self.records()[0].revokedAt)

    def test_rotation_is_audited(self):
        tokens = self.manager.issue_session(self.user.id)
        self.manager.rotate_session(tokens.refresh_token)
        actions = [a.action for a in self.db.query(AuditLog).all()]
        self.assertEqual(actions, ["REFRESH"])


class TestRotationCollisions(SessionManagerTestCase):

    def test_exhausted_retries_fail_and_leave_old_record_untouched(self):
        manager = make_manager(
            self.db, self.settings,
            clock=fixed_clock(),
            nonce_factory=lambda: "collide",
        )
        tokens = manager.issue_session(self.user.id)

        with self.assertLogs("forum_api.services.session_manager", level="WARNING") as logs:
            with self.assertRaises(TransientFailure):
                manager.rotate_session(tokens.refresh_token)

        retries = [line for line in logs.output if "Token collision detected" in line]
        self.assertEqual(len(retries), 3)
        for line in logs.output:
            self.assertNotIn(tokens.refresh_token, line)

        records = self.records()
        self.assertEqual(len(records), 1)
        self.assertIsNone(records[0].revokedAt)
        self.assertEqual(self.db.query(AuditLog).count(), 0)

        # Still usable once nonces stop colliding
        recovered = make_manager(self.db, self.settings).rotate_session(tokens.refresh_token)
        self.assertEqual(recovered.user.id, self.user.id)

    def test_collision_then_success_within_budget(self):
        nonces = iter(["dup", "dup", "dup", "fresh"])
        manager = make_manager(
            self.db, self.settings,
            clock=fixed_clock(),
            nonce_factory=lambda: next(nonces),
        )
        tokens = manager.issue_session(self.user.id)
        rotated = manager.rotate_session(tokens.refresh_token)

        old, new = self.records()
        self.assertIsNotNone(old.revokedAt)
        self.assertEqual(new.token, rotated.tokens.refresh_token)
        self.assertEqual(self.db.query(AuditLog).count(), 1)


class TestConcurrentRotation(unittest.TestCase):
    """Two requests presenting the same refresh token; only one may win."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.database = make_database(f"sqlite:///{os.path.join(self.tmpdir.name, 'race.db')}")
        self.settings = make_settings()
        self.winner_db = self.database.session()
        self.loser_db = self.database.session()
        self.user = make_user(self.winner_db)

    def tearDown(self):
        self.winner_db.close()
        self.loser_db.close()
        self.database.dispose()
        self.tmpdir.cleanup()

    def test_loser_of_race_gets_invalid_credential(self):
        winner = make_manager(self.winner_db, self.settings)
        tokens = winner.issue_session(self.user.id)

        loser_store = SessionStore(self.loser_db)
        loser = SessionManager(loser_store, self.settings)
        original_find = loser_store.find_active_session_record

        def find_then_lose_race(*args):
            record = original_find(*args)
            # The other request completes its rotation between our read and write
            winner.rotate_session(tokens.refresh_token)
            return record

        loser_store.find_active_session_record = find_then_lose_race

        with self.assertRaises(InvalidCredential):
            loser.rotate_session(tokens.refresh_token)

        records = self.winner_db.query(RefreshToken).populate_existing().all()
        self.assertEqual(len(records), 2)
        self.assertEqual(sum(1 for r in records if r.revokedAt is None), 1)

    def test_logout_racing_rotation_keeps_rotation_revocation(self):
        rotated_at = datetime.now(timezone.utc).replace(microsecond=0)
        logout_at = rotated_at + timedelta(hours=1)
        winner = make_manager(self.winner_db, self.settings, clock=fixed_clock(rotated_at))
        tokens = winner.issue_session(self.user.id)

        logout_store = SessionStore(self.loser_db)
        logout = SessionManager(logout_store, self.settings, clock=fixed_clock(logout_at))
        original_select = logout_store._unrevoked_by_token

        def select_then_lose_race(token):
            rows = original_select(token)
            # The rotation commits between the logout's read and its write
            winner.rotate_session(tokens.refresh_token)
            return rows

        logout_store._unrevoked_by_token = select_then_lose_race
        logout.revoke_session(tokens.refresh_token)

        old = self.winner_db.query(RefreshToken).populate_existing().filter(
            RefreshToken.token == tokens.refresh_token,
        ).one()
        self.assertEqual(old.revokedAt.replace(tzinfo=None), rotated_at.replace(tzinfo=None))
        actions = [a for (a,) in self.winner_db.query(AuditLog.action).order_by(AuditLog.id)]
        self.assertEqual(actions, ["REFRESH"])


class TestRevokeSession(SessionManagerTestCase):

    def test_revoke_is_idempotent(self):
        tokens = self.manager.issue_session(self.user.id)
        self.manager.revoke_session(tokens.refresh_token)
        self.manager.revoke_session(tokens.refresh_token)

        records = self.records()
        self.assertEqual(len(records), 1)
        self.assertIsNotNone(records[0].revokedAt)
        logouts = self.db.query(AuditLog).filter(AuditLog.action == "LOGOUT").count()
        self.assertEqual(logouts, 1)

    def test_revoked_token_cannot_rotate(self):
        tokens = self.manager.issue_session(self.user.id)
        self.manager.revoke_session(tokens.refresh_token)
        with self.assertRaises(InvalidCredential):
            self.manager.rotate_session(tokens.refresh_token)

    def test_revoke_never_fails_on_bad_input(self):
        for value in (None, "", "garbage", "a.b.c"):
            with self.subTest(value=value):
                self.manager.revoke_session(value)
        self.assertEqual(self.records(), [])


class TestLoginFlow(SessionManagerTestCase):

    def setUp(self):
        super().setUp()
        auth_service.signup(
            self.manager,
            SignupRequest(userName="bob", email="bob@example.com", password="secret123"),
        )

    def test_login_issues_session_for_the_account(self):
        result, tokens = auth_service.login(self.manager, LoginRequest(userName="bob", password="secret123"))

        user = self.manager.authenticate(tokens.access_token)
        self.assertEqual(user.userName, "bob")
        self.assertEqual(result["user"]["id"], user.id)
        self.assertIsNotNone(user.lastLogin)

        record = self.db.query(RefreshToken).filter(RefreshToken.token == tokens.refresh_token).one()
        self.assertIsNone(record.revokedAt)

    def test_bad_logins_are_indistinguishable(self):
        self.user.isActive = False
        self.db.commit()
        attempts = [
            LoginRequest(userName="bob", password="wrong"),
            LoginRequest(userName="nobody", password="secret123"),
            LoginRequest(userName="alice", password="secret123"),  # inactive
        ]
        messages = set()
        for data in attempts:
            with self.assertRaises(InvalidCredentialsException) as ctx:
                auth_service.login(self.manager, data)
            messages.add((ctx.exception.status_code, ctx.exception.detail["message"]))
        self.assertEqual(messages, {(401, "Invalid credentials")})


if __name__ == "__main__":
    unittest.main()
