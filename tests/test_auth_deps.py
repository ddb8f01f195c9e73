import asyncio
import base64
import json
import unittest
from types import SimpleNamespace

import jwt
from fastapi import HTTPException

from creator_ledger.auth import deps
from creator_ledger.core.settings import S


def run_async(coro):
    return asyncio.run(coro)


class TestDevFallback(unittest.TestCase):
    def test_requires_header(self):
        req = SimpleNamespace(headers={})
        with self.assertRaises(HTTPException) as ctx:
            run_async(deps.get_authenticated_user_id(req))
        self.assertEqual(ctx.exception.status_code, 401)

    def test_rejects_invalid_scheme(self):
        req = SimpleNamespace(headers={"authorization": "Token abc"})
        with self.assertRaises(HTTPException) as ctx:
            run_async(deps.get_authenticated_user_id(req))
        self.assertEqual(ctx.exception.status_code, 401)

    def test_accepts_raw_bearer(self):
        req = SimpleNamespace(headers={"authorization": "Bearer user-1"})
        self.assertEqual(run_async(deps.get_authenticated_user_id(req)), "user-1")

    def test_prefers_jwt_sub(self):
        header = base64.urlsafe_b64encode(json.dumps({"alg": "none"}).encode()).decode().rstrip("=")
        payload = base64.urlsafe_b64encode(json.dumps({"sub": "jwt-user"}).encode()).decode().rstrip("=")
        req = SimpleNamespace(headers={"authorization": f"Bearer {header}.{payload}."})
        self.assertEqual(run_async(deps.get_authenticated_user_id(req)), "jwt-user")

    def test_user_sub_header(self):
        req = SimpleNamespace(headers={"x-user-sub": "header-user"})
        self.assertEqual(run_async(deps.get_authenticated_user_id(req)), "header-user")
        self.assertIsNone(run_async(deps.get_user_email(req)))


class TestVerifiedTokens(unittest.TestCase):
    def setUp(self):
        self._old = S.jwt_secret
        object.__setattr__(S, "jwt_secret", "test-secret")

    def tearDown(self):
        object.__setattr__(S, "jwt_secret", self._old)

    def _req(self, token):
        return SimpleNamespace(headers={"authorization": f"Bearer {token}"})

    def test_valid_token(self):
        token = jwt.encode({"sub": "viewer_1", "email": "v@example.com"}, "test-secret", algorithm="HS256")
        self.assertEqual(run_async(deps.get_authenticated_user_id(self._req(token))), "viewer_1")
        self.assertEqual(run_async(deps.get_user_email(self._req(token))), "v@example.com")

    def test_wrong_secret(self):
        token = jwt.encode({"sub": "viewer_1"}, "other-secret", algorithm="HS256")
        with self.assertRaises(HTTPException) as ctx:
            run_async(deps.get_authenticated_user_id(self._req(token)))
        self.assertEqual(ctx.exception.status_code, 401)

    def test_expired_token(self):
        token = jwt.encode({"sub": "viewer_1", "exp": 1}, "test-secret", algorithm="HS256")
        with self.assertRaises(HTTPException) as ctx:
            run_async(deps.get_authenticated_user_id(self._req(token)))
        self.assertEqual(ctx.exception.detail, "Token expired")

    def test_header_fallback_disabled(self):
        req = SimpleNamespace(headers={"x-user-sub": "spoofed"})
        with self.assertRaises(HTTPException):
            run_async(deps.get_authenticated_user_id(req))
