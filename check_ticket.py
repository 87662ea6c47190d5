import asyncio
import argparse
import logging
import os
import sys

sys.path.append(os.getcwd())
from src.core.models import CaptureOrigin, ScanCandidate
from src.services.checkin.manager import CheckinManager
from src.services.checkin.stats import remaining

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')


async def main(args):
    manager = CheckinManager()
    events = await manager.load_events()
    for e in events:
        print(f"[{e.event_id}] {e.event_name}: {e.scanned}/{e.sold} checked in")

    if args.event is None:
        return

    await manager.select_event(args.event)
    if args.ticket:
        outcome = await manager.submit_manual(args.ticket)
        print(f"Outcome: {outcome}")
        manager.acknowledge()

    stat = manager.active_event
    if stat:
        print(f"{stat.event_name}: {stat.scanned} in, {remaining(stat)} remaining")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="List events and optionally check in one ticket.")
    parser.add_argument("--event", type=int, help="Event ID to bind the gate to")
    parser.add_argument("--ticket", help="Ticket ID to check in")
    asyncio.run(main(parser.parse_args()))
