import unittest
from unittest.mock import MagicMock, patch

import requests

from src.services.gate_api import GateApiError, GateApiService, GateNetworkError, GateUnauthorizedError


def make_response(status_code, payload):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload
    resp.text = str(payload)
    return resp


class TestGateApiService(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.service = GateApiService(lambda: "tok-123", base_url="http://gate.test/", timeout=5)

    @patch('src.services.gate_api.run.io_bound')
    async def test_fetch_stats(self, mock_io):
        mock_io.return_value = make_response(200, {
            "total_revenue": 1200.5, "total_sold": 10, "total_scanned": 4,
            "events": [{"event_id": 7, "event_name": "Harbour Nights", "revenue": 1200.5, "sold": 10, "scanned": 4}],
        })

        stats = await self.service.fetch_stats()

        self.assertEqual(stats.total_sold, 10)
        self.assertEqual(stats.get_event(7).scanned, 4)
        self.assertIsNone(stats.get_event(8))

        args, kwargs = mock_io.call_args
        self.assertEqual(args[1:], ("GET", "http://gate.test/admin/stats"))
        self.assertEqual(kwargs['headers']['Authorization'], "Bearer tok-123")
        self.assertEqual(kwargs['timeout'], 5)

    @patch('src.services.gate_api.run.io_bound')
    async def test_check_in_is_scoped_to_event(self, mock_io):
        mock_io.return_value = make_response(409, {"error": "ticket not found"})

        reply = await self.service.check_in("abc-123", 7)

        self.assertEqual(reply.status_code, 409)
        self.assertEqual(reply.error, "ticket not found")
        args, kwargs = mock_io.call_args
        self.assertEqual(args[1:], ("PATCH", "http://gate.test/tickets/abc-123/checkin"))
        self.assertEqual(kwargs['params'], {"event_id": 7})

    @patch('src.services.gate_api.run.io_bound')
    async def test_lookup_parses_tickets(self, mock_io):
        mock_io.return_value = make_response(200, [
            {"id": 11, "category": "GA", "event_id": 7, "event": {"name": "Harbour Nights"}},
        ])

        tickets = await self.service.lookup_tickets("guest@example.com")

        self.assertEqual(len(tickets), 1)
        self.assertEqual(tickets[0].id, "11")
        self.assertEqual(mock_io.call_args.kwargs['params'], {"email": "guest@example.com"})

    @patch('src.services.gate_api.run.io_bound')
    async def test_bulk_posts_ids(self, mock_io):
        mock_io.return_value = make_response(200, {"message": "Checked in 2 guests!"})

        reply = await self.service.bulk_check_in(["1", "2"])

        self.assertTrue(reply.ok)
        self.assertEqual(mock_io.call_args.kwargs['json'], {"ticket_ids": ["1", "2"]})

    @patch('src.services.gate_api.run.io_bound')
    async def test_unauthorized_raises(self, mock_io):
        mock_io.return_value = make_response(401, {"error": "Invalid or expired token"})
        with self.assertRaises(GateUnauthorizedError):
            await self.service.fetch_stats()

    @patch('src.services.gate_api.run.io_bound')
    async def test_server_error_raises(self, mock_io):
        mock_io.return_value = make_response(500, {"error": "Failed to fetch dashboard data"})
        with self.assertRaises(GateApiError) as cm:
            await self.service.fetch_stats()
        self.assertEqual(cm.exception.status_code, 500)
        self.assertEqual(cm.exception.message, "Failed to fetch dashboard data")

    @patch('src.services.gate_api.run.io_bound')
    async def test_transport_failure_wrapped(self, mock_io):
        mock_io.side_effect = requests.ConnectionError("Connection refused")
        with self.assertRaises(GateNetworkError):
            await self.service.check_in("abc-123", 7)

    @patch('src.services.gate_api.asyncio.to_thread')
    @patch('src.services.gate_api.run.io_bound')
    async def test_falls_back_without_app(self, mock_io, mock_thread):
        mock_io.side_effect = RuntimeError("no event loop integration")
        mock_thread.return_value = make_response(200, {"events": []})

        stats = await self.service.fetch_stats()

        self.assertEqual(stats.events, [])
        mock_thread.assert_called_once()

    def test_no_token_no_header(self):
        service = GateApiService(lambda: None, base_url="http://gate.test", timeout=5)
        self.assertNotIn("Authorization", service._headers())


if __name__ == '__main__':
    unittest.main()
