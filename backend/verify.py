"""
backend/verify.py

Purpose:
    CLI entrypoint for the stored-match integrity check.

Dependencies:
    - wagerdesk.database
    - wagerdesk.checks.match_check
"""

import asyncio
import os
import sys
from pprint import pprint

sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from wagerdesk.checks.match_check import MatchIntegrityCheck
from wagerdesk.database import close_db, connect_db


async def main() -> int:
    print("\nSTARTING WAGERDESK MATCH INTEGRITY CHECK")
    print("=" * 50)

    try:
        await connect_db()
        report = await MatchIntegrityCheck.run()

        print("\n--- REPORT ---")
        pprint(report, indent=2)
        print("-" * 50)

        if report.get("status") == "HEALTHY":
            print("\nSYSTEM GREEN: every stored match is consistent.")
            return 0

        print(f"\nSYSTEM RED: Status is {report.get('status')}")
        print("Check the violations above.")
        return 1
    except ImportError as e:
        print(f"SETUP ERROR: Could not import wagerdesk modules.\n{e}")
        return 1
    except Exception as e:
        print(f"FATAL ERROR: {e}")
        return 1
    finally:
        await close_db()


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
