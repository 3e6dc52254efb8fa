import os
import sys
import unittest
from unittest.mock import MagicMock

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

import requests

from errors import UpstreamError
from freeagent_client import ApiResponse, FreeAgentClient, raise_for_upstream
from token_manager import FreeAgentTokenManager


BASE = "https://api.sandbox.freeagent.com/v2"


def fake_response(status_code, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    return response


class TestFreeAgentClient(unittest.TestCase):

    def setUp(self):
        self.session = MagicMock()
        self.tokens = MagicMock(spec=FreeAgentTokenManager)
        self.tokens.get_access_token.return_value = "old_token"
        self.tokens.refresh.return_value = "new_token"
        self.client = FreeAgentClient(BASE, self.tokens, user_agent="Test UA (t@example.com)",
                                      timeout=7, session=self.session)

    def test_401_then_200_refreshes_exactly_once(self):
        self.session.request.side_effect = [fake_response(401, "expired"), fake_response(200, '{"ok": true}')]

        result = self.client.get("contacts")

        self.assertEqual(result.status_code, 200)
        self.assertEqual(result.token, "new_token")
        self.assertEqual(result.json(), {"ok": True})
        self.tokens.refresh.assert_called_once_with(stale_token="old_token")
        self.assertEqual(self.session.request.call_count, 2)
        second_headers = self.session.request.call_args_list[1].kwargs["headers"]
        self.assertEqual(second_headers["Authorization"], "Bearer new_token")

    def test_second_401_is_returned_without_another_refresh(self):
        self.session.request.side_effect = [fake_response(401), fake_response(401, "still no")]

        result = self.client.get("contacts")

        self.assertEqual(result.status_code, 401)
        self.assertEqual(result.text, "still no")
        self.tokens.refresh.assert_called_once()
        self.assertEqual(self.session.request.call_count, 2)

    def test_success_needs_no_refresh(self):
        self.session.request.return_value = fake_response(201, '{"contact": {}}')

        result = self.client.post_json("contacts", {"contact": {"first_name": "A"}})

        self.assertTrue(result.ok)
        self.tokens.refresh.assert_not_called()

    def test_request_carries_headers_timeout_and_joined_url(self):
        self.session.request.return_value = fake_response(200, "{}")

        self.client.get("/users/me", params={"x": "1"})

        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ("GET", f"{BASE}/users/me"))
        self.assertEqual(kwargs["headers"], {
            "Authorization": "Bearer old_token",
            "Accept": "application/json",
            "User-Agent": "Test UA (t@example.com)",
        })
        self.assertEqual(kwargs["timeout"], 7)
        self.assertEqual(kwargs["params"], {"x": "1"})

    def test_absolute_url_is_used_as_is(self):
        self.session.request.return_value = fake_response(200, "{}")

        self.client.put_json(f"{BASE}/bills/12", {"bill": {}})

        self.assertEqual(self.session.request.call_args.args, ("PUT", f"{BASE}/bills/12"))

    def test_timeout_becomes_upstream_error(self):
        self.session.request.side_effect = requests.exceptions.Timeout("read timed out")

        with self.assertRaises(UpstreamError) as context:
            self.client.get("contacts")

        self.assertIsNone(context.exception.status)
        self.assertIn("timed out", context.exception.message)

    def test_api_response_json_tolerates_bad_bodies(self):
        self.assertEqual(ApiResponse(200, "", "t").json(), {})
        self.assertEqual(ApiResponse(200, "<html>", "t").json(), {})
        self.assertEqual(ApiResponse(200, "[1, 2]", "t").json(), {})
        self.assertFalse(ApiResponse(302, "", "t").ok)

    def test_raise_for_upstream_truncates_details(self):
        with self.assertRaises(UpstreamError) as context:
            raise_for_upstream(ApiResponse(500, "x" * 5000, "t"), "Create bill failed")

        self.assertEqual(context.exception.status, 500)
        self.assertEqual(len(context.exception.details), 2000)


if __name__ == '__main__':
    unittest.main()
