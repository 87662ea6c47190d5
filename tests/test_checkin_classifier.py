import unittest

from src.core.models import Admitted, BulkAdmitted, Denied, DenialKind
from src.services.gate_api import ApiReply, GateApiError, GateNetworkError, GateUnauthorizedError
from src.services.checkin.classifier import classify_bulk, classify_checkin, classify_exception


class TestClassifyCheckin(unittest.TestCase):
    def test_success_builds_ticket(self):
        reply = ApiReply(200, {
            "message": "Check-in successful!",
            "data": {"id": 42, "category": "VIP", "event_id": 7, "event": {"name": "Harbour Nights"}, "price": 80},
        })
        outcome = classify_checkin(reply, "42")
        self.assertIsInstance(outcome, Admitted)
        self.assertEqual(outcome.ticket.id, "42")
        self.assertEqual(outcome.ticket.category, "VIP")
        self.assertEqual(outcome.ticket.event_name, "Harbour Nights")

    def test_success_without_body(self):
        outcome = classify_checkin(ApiReply(200, {"message": "ok"}), "abc-123")
        self.assertIsInstance(outcome, Admitted)
        self.assertEqual(outcome.ticket.id, "abc-123")

    def test_wrong_event(self):
        reply = ApiReply(409, {"error": "WRONG EVENT: This ticket is for 'Neptune Live'"})
        outcome = classify_checkin(reply, "xyz-999", active_event_name="Harbour Nights")
        self.assertEqual(outcome.kind, DenialKind.WRONG_EVENT)
        self.assertEqual(outcome.ticket_event_name, "Neptune Live")
        self.assertEqual(outcome.active_event_name, "Harbour Nights")
        self.assertFalse(outcome.retryable)

    def test_already_used_keeps_detail(self):
        reply = ApiReply(409, {"error": "ALREADY USED: Scanned 5m0s ago at 7:04 PM"})
        outcome = classify_checkin(reply)
        self.assertEqual(outcome.kind, DenialKind.ALREADY_CHECKED_IN)
        self.assertEqual(outcome.detail, "Scanned 5m0s ago at 7:04 PM")

    def test_not_found(self):
        self.assertEqual(classify_checkin(ApiReply(409, {"error": "ticket not found"})).kind, DenialKind.NOT_FOUND)
        self.assertEqual(classify_checkin(ApiReply(404, {})).kind, DenialKind.NOT_FOUND)

    def test_unpaid_is_invalid(self):
        reply = ApiReply(409, {"error": "INVALID: This ticket has not been paid for."})
        self.assertEqual(classify_checkin(reply).kind, DenialKind.INVALID_IDENTIFIER)

    def test_bad_request_is_invalid(self):
        reply = ApiReply(400, {"error": "Invalid Event ID format"})
        self.assertEqual(classify_checkin(reply).kind, DenialKind.INVALID_IDENTIFIER)

    def test_unauthorized_and_forbidden(self):
        for status in (401, 403):
            outcome = classify_checkin(ApiReply(status, {"error": "Invalid or expired token"}))
            self.assertEqual(outcome.kind, DenialKind.UNAUTHORIZED)
            self.assertFalse(outcome.retryable)

    def test_server_error_is_retryable(self):
        outcome = classify_checkin(ApiReply(502, "Bad Gateway"))
        self.assertEqual(outcome.kind, DenialKind.SERVER_ERROR)
        self.assertTrue(outcome.retryable)


class TestClassifyBulk(unittest.TestCase):
    def test_success_counts_selection(self):
        outcome = classify_bulk(ApiReply(200, {"message": "Checked in 2 guests!"}), ["1", "2"])
        self.assertIsInstance(outcome, BulkAdmitted)
        self.assertEqual(outcome.count, 2)
        self.assertEqual(outcome.message, "Checked in 2 guests!")

    def test_failure_applies_to_batch(self):
        outcome = classify_bulk(ApiReply(500, {"error": "Failed to update tickets"}), ["1", "2"])
        self.assertIsInstance(outcome, Denied)
        self.assertEqual(outcome.kind, DenialKind.SERVER_ERROR)
        self.assertEqual(outcome.message, "Failed to update tickets")


class TestClassifyException(unittest.TestCase):
    def test_network_error(self):
        outcome = classify_exception(GateNetworkError("timed out"))
        self.assertEqual(outcome.kind, DenialKind.NETWORK_ERROR)
        self.assertTrue(outcome.retryable)
        self.assertEqual(outcome.detail, "timed out")

    def test_unauthorized_error(self):
        self.assertEqual(classify_exception(GateUnauthorizedError(401, "nope")).kind, DenialKind.UNAUTHORIZED)

    def test_generic_api_error(self):
        self.assertEqual(classify_exception(GateApiError(503, "down")).kind, DenialKind.SERVER_ERROR)


if __name__ == '__main__':
    unittest.main()
