"""
backend/wagerdesk/checks/match_check.py

Purpose:
    Offline integrity scan of stored matches. Verifies that no match holds
    more than two participants, that the checkout space exists exactly when
    the match has left the open state, that resolved matches carry an outcome
    and that audit sequence numbers are unique.

Dependencies:
    - wagerdesk.database
"""

import logging
import traceback
from collections import Counter

import wagerdesk.database as _db
from wagerdesk.models.wager_match import MAX_PARTICIPANTS, MatchState

logger = logging.getLogger("wagerdesk.match_check")


def _match_problems(match: dict, participant_count: int) -> list[str]:
    problems = []
    state = match.get("state")
    space_ref = match.get("checkout_space_ref")
    if participant_count > MAX_PARTICIPANTS:
        problems.append(f"{participant_count} participants")
    if state == MatchState.open.value and space_ref:
        problems.append("open match has a checkout space")
    if state != MatchState.open.value and not space_ref:
        problems.append(f"{state} match has no checkout space")
    if state == MatchState.resolved.value and not (match.get("outcome") or {}).get("designator"):
        problems.append("resolved match has no outcome")
    return problems


class MatchIntegrityCheck:
    @staticmethod
    async def run() -> dict:
        report: dict = {
            "status": "UNKNOWN",
            "steps": {"database": "PENDING", "matches": "PENDING", "audit": "PENDING"},
            "details": {},
            "violations": {},
            "error": None,
        }

        try:
            if _db.db is None:
                raise RuntimeError("Database is not initialized. Call connect_db() first.")
            await _db.db.command("ping")
            report["steps"]["database"] = "OK"

            matches = await _db.db.wager_matches.find({}).to_list(length=None)
            participants = await _db.db.wager_participants.find({}, {"match_id": 1}).to_list(length=None)
            counts = Counter(p["match_id"] for p in participants)
            match_ids = {m["_id"] for m in matches}
            for match in matches:
                problems = _match_problems(match, counts.get(match["_id"], 0))
                if problems:
                    report["violations"][match["_id"]] = problems
            orphans = sorted(set(counts) - match_ids)
            if orphans:
                report["details"]["orphan_participant_matches"] = orphans
            report["details"]["matches"] = len(matches)
            report["details"]["by_state"] = dict(Counter(m.get("state") for m in matches))
            report["steps"]["matches"] = "OK" if not report["violations"] and not orphans else "FAILED"

            entries = await _db.db.audit_logs.find({}, {"seq": 1}).to_list(length=None)
            duplicates = sorted(seq for seq, n in Counter(e["seq"] for e in entries).items() if n > 1)
            report["details"]["audit_entries"] = len(entries)
            if duplicates:
                report["details"]["duplicate_seqs"] = duplicates
            report["steps"]["audit"] = "OK" if not duplicates else "FAILED"

            failed = [step for step, result in report["steps"].items() if result != "OK"]
            report["status"] = "HEALTHY" if not failed else "DEGRADED"

        except Exception as e:
            report["status"] = "CRITICAL"
            report["error"] = str(e)
            report["traceback"] = traceback.format_exc()
            logger.error("Match integrity check failed: %s", e, exc_info=True)

        return report
