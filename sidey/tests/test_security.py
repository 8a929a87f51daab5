import time
import unittest

import jwt

from sidey.security import (
    hash_password,
    issue_token,
    password_needs_rehash,
    verify_password,
    verify_token,
)

SECRET = "unit-test-secret-that-is-long-enough-32"


class PasswordHashTests(unittest.TestCase):
    def test_hash_verifies_and_is_salted(self):
        first = hash_password("hunter22")
        second = hash_password("hunter22")
        self.assertNotEqual(first, second)
        self.assertTrue(verify_password("hunter22", first))
        self.assertTrue(verify_password("hunter22", second))
        self.assertFalse(verify_password("hunter23", first))

    def test_missing_or_garbage_hash_never_verifies(self):
        self.assertFalse(verify_password("anything", None))
        self.assertFalse(verify_password("anything", ""))
        self.assertFalse(verify_password("anything", "not-a-real-hash"))

    def test_fresh_hash_does_not_need_rehash(self):
        self.assertFalse(password_needs_rehash(hash_password("hunter22")))


class TokenTests(unittest.TestCase):
    def test_round_trip_claims(self):
        token = issue_token({"userId": "u1", "siteName": "alice"}, SECRET)
        claims = verify_token(token, SECRET)
        self.assertEqual(claims["userId"], "u1")
        self.assertEqual(claims["siteName"], "alice")
        self.assertEqual(claims["exp"] - claims["iat"], 7 * 24 * 60 * 60)

    def test_expired_token_is_rejected(self):
        issued = int(time.time()) - 3600
        token = issue_token({"userId": "u1"}, SECRET, ttl_seconds=60, now=issued)
        self.assertIsNone(verify_token(token, SECRET))

    def test_wrong_secret_is_rejected(self):
        token = issue_token({"userId": "u1"}, SECRET)
        self.assertIsNone(verify_token(token, SECRET + "-other"))

    def test_tampered_payload_is_rejected(self):
        token = issue_token({"userId": "u1"}, SECRET)
        header, _, signature = token.split(".")
        forged_payload = jwt.encode(
            {"userId": "admin", "iat": 0, "exp": 2**31}, "x" * 32, algorithm="HS256"
        ).split(".")[1]
        self.assertIsNone(
            verify_token(f"{header}.{forged_payload}.{signature}", SECRET)
        )

    def test_token_without_expiry_is_rejected(self):
        token = jwt.encode({"userId": "u1"}, SECRET, algorithm="HS256")
        self.assertIsNone(verify_token(token, SECRET))

    def test_malformed_tokens_are_rejected(self):
        for token in (None, "", "abc", "a.b", "a.b.c"):
            self.assertIsNone(verify_token(token, SECRET))


if __name__ == "__main__":
    unittest.main()
