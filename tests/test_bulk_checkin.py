import asyncio
import unittest
from unittest.mock import MagicMock

from fake_backend import FakeGateApi
from src.core.models import BulkAdmitted, Denied, DenialKind, EventStat
from src.services.checkin.bulk import BulkCheckin, validate_email
from src.services.checkin.context import EventContext
from src.services.checkin.engine import VerificationEngine
from src.services.checkin.guard import ScanGuard
from src.services.checkin.stats import CapacityStats


class TestValidateEmail(unittest.TestCase):
    def test_rejects_blank_and_malformed(self):
        for bad in ("", "   ", None, "guest", "@example.com", "guest@"):
            with self.assertRaises(ValueError):
                validate_email(bad)

    def test_trims(self):
        self.assertEqual(validate_email("  guest@example.com "), "guest@example.com")


class TestBulkCheckin(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.api = FakeGateApi()
        for tid in ("g1", "g2", "g3"):
            self.api.add_ticket(tid, 7, email="guest@example.com")
        self.api.add_ticket("g4", 9, email="guest@example.com")
        self.api.add_ticket("g5", 7, email="guest@example.com", checked_in=True)
        self.api.add_ticket("other", 7, email="someone@example.com")

        self.guard = ScanGuard()
        self.stats = CapacityStats(self.api, refresh_interval=30)
        self.engine = VerificationEngine(self.api, self.guard, self.stats, MagicMock(), min_identifier_length=1)
        self.context = EventContext(self.guard)
        self.context.set_events([EventStat(event_id=7, event_name="Harbour Nights"),
                                 EventStat(event_id=9, event_name="Neptune Live")])
        self.context.select(7)
        self.bulk = BulkCheckin(self.api, self.engine, self.context)

    async def test_lookup_scoped_to_active_event(self):
        tickets = await self.bulk.lookup("guest@example.com")
        self.assertEqual([t.id for t in tickets], ["g1", "g2", "g3"])

    async def test_empty_lookup_is_not_an_error(self):
        tickets = await self.bulk.lookup("nobody@example.com")
        self.assertEqual(tickets, [])
        self.assertFalse(self.bulk.can_submit)

    async def test_lookup_requires_event(self):
        self.context.clear()
        with self.assertRaises(ValueError):
            await self.bulk.lookup("guest@example.com")
        self.assertEqual(self.api.calls, [])

    async def test_select_two_of_three_and_submit(self):
        """Scenario 5."""
        await self.stats.load()
        self.assertEqual(self.stats.get_event(7).scanned, 1)

        await self.bulk.lookup("guest@example.com")
        self.assertTrue(self.bulk.toggle("g1"))
        self.assertTrue(self.bulk.toggle("g3"))
        calls_before = len(self.api.calls)

        outcome = await self.bulk.submit()

        self.assertIsInstance(outcome, BulkAdmitted)
        self.assertEqual(outcome.count, 2)
        self.assertEqual(self.api.calls[calls_before], ("bulk_check_in", ["g1", "g3"]))
        self.assertIsNotNone(self.api.tickets["g1"]["checked_in_at"])
        self.assertIsNone(self.api.tickets["g2"]["checked_in_at"])
        self.assertEqual(self.stats.get_event(7).scanned, 3)
        self.assertEqual(self.bulk.selection, set())
        self.assertEqual(self.bulk.results, [])

    async def test_toggle_is_local(self):
        await self.bulk.lookup("guest@example.com")
        calls = len(self.api.calls)

        self.assertTrue(self.bulk.toggle("g2"))
        self.assertFalse(self.bulk.toggle("g2"))
        self.assertFalse(self.bulk.toggle("g4")) # other event, not in results
        self.assertEqual(len(self.api.calls), calls)
        self.assertEqual(self.bulk.selection, set())

    async def test_relookup_clears_selection(self):
        await self.bulk.lookup("guest@example.com")
        self.bulk.select_all()
        await self.bulk.lookup("guest@example.com")
        self.assertEqual(self.bulk.selection, set())

    async def test_failure_clears_selection(self):
        self.api.bulk_status = 500
        await self.bulk.lookup("guest@example.com")
        self.bulk.select_all()

        outcome = await self.bulk.submit()

        self.assertIsInstance(outcome, Denied)
        self.assertEqual(outcome.kind, DenialKind.SERVER_ERROR)
        self.assertEqual(self.bulk.selection, set())
        self.assertEqual(self.bulk.results, [])
        # All-or-nothing: nothing was marked
        self.assertTrue(all(self.api.tickets[t]["checked_in_at"] is None for t in ("g1", "g2", "g3")))

    async def test_submit_without_selection(self):
        await self.bulk.lookup("guest@example.com")
        outcome = await self.bulk.submit()
        self.assertEqual(outcome.kind, DenialKind.VALIDATION)
        self.assertEqual(self.api.count("bulk_check_in"), 0)

    async def test_submit_dropped_while_guard_held(self):
        await self.bulk.lookup("guest@example.com")
        self.bulk.toggle("g1")
        self.guard.try_acquire()

        self.assertIsNone(await self.bulk.submit())
        self.assertEqual(self.bulk.selection, {"g1"})
        self.assertEqual(self.api.count("bulk_check_in"), 0)

    async def test_bulk_holds_guard_against_camera(self):
        await self.bulk.lookup("guest@example.com")
        self.bulk.select_all()
        self.api.hold()

        task = asyncio.create_task(self.bulk.submit())
        await asyncio.sleep(0)
        self.assertTrue(self.guard.held)
        self.assertIsNone(self.guard.try_acquire())

        self.api.release_hold()
        outcome = await task
        self.assertEqual(outcome.count, 3)

    async def test_context_change_during_lookup_discards_results(self):
        original = self.api.lookup_tickets

        async def switch_then_lookup(email):
            self.context.select(9)
            return await original(email)

        self.api.lookup_tickets = switch_then_lookup
        tickets = await self.bulk.lookup("guest@example.com")
        self.assertEqual(tickets, [])
        self.assertFalse(self.bulk.can_submit)


if __name__ == '__main__':
    unittest.main()
