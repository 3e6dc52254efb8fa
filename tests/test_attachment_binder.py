import os
import sys
import unittest
from unittest.mock import MagicMock

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from attachment_binder import AttachmentBinder, STRATEGIES, standalone_strategies, strategies_for
from errors import AttachmentError, AuthError
from freeagent_client import FreeAgentClient
from ocr_models import Attachment, AttachmentTarget
from token_manager import FreeAgentTokenManager


BASE = "https://api.freeagent.com/v2"
BILL_URL = f"{BASE}/bills/42"
ALL_STRATEGIES = ["multipart_file", "multipart_nested", "json_attachment", "record_update", "inline"]


def fake_response(status_code, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    return response


class TestAttachmentBinder(unittest.TestCase):

    def setUp(self):
        self.session = MagicMock()
        self.tokens = MagicMock(spec=FreeAgentTokenManager)
        self.tokens.get_access_token.return_value = "tok"
        self.tokens.refresh.return_value = "tok2"
        self.client = FreeAgentClient(BASE, self.tokens, user_agent="UA", session=self.session)
        self.binder = AttachmentBinder(self.client)
        self.attachment = Attachment(data=b"\xff\xd8jpeg", content_type="image/jpeg", file_name="r.jpg")
        self.target = AttachmentTarget(
            kind="bill",
            record_url=BILL_URL,
            payload={"bill": {"contact": "c", "dated_on": "2025-11-09", "bill_items": []}},
        )

    def test_first_success_wins(self):
        self.session.request.return_value = fake_response(201, '{"attachment": {"url": "a/1"}}')

        result = self.binder.bind(self.target, self.attachment, strategies_for(ALL_STRATEGIES))

        self.assertEqual(result.strategy, "multipart_file")
        self.assertEqual(result.body, {"attachment": {"url": "a/1"}})
        self.assertEqual(self.session.request.call_count, 1)
        kwargs = self.session.request.call_args.kwargs
        self.assertEqual(kwargs["files"], {"file": ("r.jpg", b"\xff\xd8jpeg", "image/jpeg")})
        self.assertEqual(kwargs["data"], {"attachable": BILL_URL})

    def test_inline_succeeds_after_four_failures_without_a_sixth_call(self):
        self.session.request.side_effect = [
            fake_response(404, "no attachments endpoint"),
            fake_response(422, "bad field"),
            fake_response(400, "bad json"),
            fake_response(422, "attachment not allowed"),
            fake_response(200, '{"bill": {"url": "%s", "attachment": {"url": "a/9"}}}' % BILL_URL),
        ]

        result = self.binder.bind(self.target, self.attachment, strategies_for(ALL_STRATEGIES))

        self.assertEqual(result.strategy, "inline")
        self.assertEqual(result.body["bill"]["attachment"]["url"], "a/9")
        self.assertEqual(self.session.request.call_count, 5)

        calls = self.session.request.call_args_list
        self.assertEqual([c.args for c in calls], [
            ("POST", f"{BASE}/attachments"),
            ("POST", f"{BASE}/attachments"),
            ("POST", f"{BASE}/attachments"),
            ("PUT", BILL_URL),
            ("PUT", BILL_URL),
        ])
        self.assertIn("attachment[file]", calls[1].kwargs["files"])
        self.assertEqual(calls[1].kwargs["data"], {"attachment[attachable]": BILL_URL})
        self.assertEqual(calls[2].kwargs["json"]["attachment"]["attachable"], BILL_URL)
        self.assertEqual(calls[3].kwargs["json"], {"bill": {"attachment": self.attachment.to_json()}})
        inline_body = calls[4].kwargs["json"]["bill"]
        self.assertEqual(inline_body["contact"], "c")
        self.assertEqual(inline_body["attachment"]["data"], self.attachment.data_b64)

    def test_all_failures_raise_attachment_error_with_last_failure(self):
        self.session.request.side_effect = [fake_response(500, "nope")] * 4 + [fake_response(422, "y" * 5000)]

        with self.assertRaises(AttachmentError) as context:
            self.binder.bind(self.target, self.attachment, strategies_for(ALL_STRATEGIES))

        self.assertEqual(context.exception.status, 422)
        self.assertTrue(context.exception.details.startswith("Tried inline → 422: yyy"))
        self.assertEqual(len(context.exception.details), 2000)

    def test_each_attempt_gets_its_own_refresh(self):
        self.session.request.side_effect = [
            fake_response(401), fake_response(500, "nope"),
            fake_response(401), fake_response(201, "{}"),
        ]

        result = self.binder.bind(self.target, self.attachment, strategies_for(ALL_STRATEGIES[:2]))

        self.assertEqual(result.strategy, "multipart_nested")
        self.assertEqual(self.tokens.refresh.call_count, 2)

    def test_auth_error_stops_the_run(self):
        self.session.request.return_value = fake_response(401)
        self.tokens.refresh.side_effect = AuthError("Failed to refresh FreeAgent token: 400", status=400)

        with self.assertRaises(AuthError):
            self.binder.bind(self.target, self.attachment, strategies_for(ALL_STRATEGIES))

        self.assertEqual(self.session.request.call_count, 1)

    def test_unknown_strategy_name(self):
        with self.assertRaises(ValueError):
            strategies_for(["carrier_pigeon"])
        self.assertEqual(sorted(STRATEGIES), sorted(ALL_STRATEGIES))

    def test_empty_strategy_list(self):
        with self.assertRaises(AttachmentError):
            self.binder.bind(self.target, self.attachment, [])

    def test_standalone_upload_tries_paths_then_field_names(self):
        self.session.request.side_effect = [
            fake_response(404), fake_response(404), fake_response(422),
            fake_response(201, '{"attachment": {"url": "a/5"}}'),
        ]

        result = self.binder.upload_standalone(self.attachment, ["attachments", "attachments.json"])

        self.assertEqual(result.strategy, "multipart_nested@attachments.json")
        calls = self.session.request.call_args_list
        self.assertEqual([c.args[1] for c in calls], [
            f"{BASE}/attachments", f"{BASE}/attachments",
            f"{BASE}/attachments.json", f"{BASE}/attachments.json",
        ])
        self.assertIsNone(calls[0].kwargs["data"])
        self.assertEqual(len(standalone_strategies(["a"])), 2)


if __name__ == '__main__':
    unittest.main()
