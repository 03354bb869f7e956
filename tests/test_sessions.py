import os
import unittest
from datetime import datetime, timedelta, timezone

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "0")

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from database import Base
from models.session import UserSession
from services import account_service
from services.errors import AuthenticationError
from services.session_service import issue_session, refresh_session, resolve_user_id, revoke_session
from utils.common_helpers import token_digest

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
TTL = timedelta(hours=24)


class SessionLifecycleTests(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(bind=self.engine)
        self.db = sessionmaker(bind=self.engine, autoflush=False)()
        self.user, self.token = account_service.register(
            self.db,
            first_name="Grace",
            last_name="Hopper",
            email="grace@example.com",
            password="cobol-1959",
            confirm_password="cobol-1959",
            now=T0,
        )

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    def test_token_is_64_hex_chars_and_stored_hashed(self):
        self.assertEqual(len(self.token), 64)
        int(self.token, 16)
        row = self.db.query(UserSession).one()
        self.assertNotEqual(row.token_hash, self.token)
        self.assertEqual(row.token_hash, token_digest(self.token))

    def test_valid_until_expiry(self):
        self.assertEqual(resolve_user_id(self.db, self.token, now=T0), self.user.id)
        just_before = T0 + TTL - timedelta(microseconds=1)
        self.assertEqual(resolve_user_id(self.db, self.token, now=just_before), self.user.id)

    def test_rejected_at_and_after_expiry(self):
        self.assertIsNone(resolve_user_id(self.db, self.token, now=T0 + TTL))
        self.assertIsNone(resolve_user_id(self.db, self.token, now=T0 + TTL + timedelta(microseconds=1)))

    def test_unknown_or_empty_token(self):
        self.assertIsNone(resolve_user_id(self.db, "0" * 64, now=T0))
        self.assertIsNone(resolve_user_id(self.db, "", now=T0))

    def test_refresh_replaces_token(self):
        later = T0 + timedelta(hours=23)
        new_token = refresh_session(self.db, self.token, now=later)
        self.db.commit()
        self.assertNotEqual(new_token, self.token)
        self.assertIsNone(resolve_user_id(self.db, self.token, now=later))
        # the new token gets a full lifetime from the refresh moment
        self.assertEqual(resolve_user_id(self.db, new_token, now=later + timedelta(hours=23)), self.user.id)

    def test_refresh_of_expired_token_fails(self):
        with self.assertRaises(AuthenticationError):
            refresh_session(self.db, self.token, now=T0 + TTL)

    def test_logout_revokes_only_that_token(self):
        other = issue_session(self.db, self.user.id, now=T0)
        self.db.commit()
        self.assertTrue(account_service.logout(self.db, self.token, user_id=self.user.id))
        self.assertIsNone(resolve_user_id(self.db, self.token, now=T0))
        self.assertEqual(resolve_user_id(self.db, other, now=T0), self.user.id)
        self.assertFalse(revoke_session(self.db, self.token))


if __name__ == "__main__":
    unittest.main()
