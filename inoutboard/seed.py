"""Demo roster used by ``inoutboard seed``."""

import logging

from inoutboard.database import Store

logger = logging.getLogger(__name__)


def _p(name, group, status="IN", comment="", estimated_return=""):
    return {
        "name": name,
        "group": group,
        "status": status,
        "comment": comment,
        "estimated_return": estimated_return,
    }


DEMO_ROSTER = [
    _p("Alice Johnson", "Engineering"),
    _p("Bob Smith", "Engineering", "Away from Desk", "Grabbing coffee"),
    _p("Carlos Rivera", "Engineering", "In Meeting", "Sprint planning", "10:30 AM"),
    _p("Diana Chen", "Engineering", "Working Remotely", "Available on Slack"),
    _p("Ethan Williams", "Engineering", "PTO", "Vacation", "2026-02-24"),
    _p("Fiona Park", "Engineering"),
    _p("Greg Tanaka", "Engineering", "At Lunch", "", "1:00 PM"),
    _p("Hannah Lee", "Sales"),
    _p("Ian Foster", "Sales", "OUT", "Client visit", "3:00 PM"),
    _p("Julia Martinez", "Sales", "In Meeting", "Quarterly review", "11:00 AM"),
    _p("Kevin Brooks", "Sales", "On Break"),
    _p("Laura Kim", "Sales"),
    _p("Mike O'Brien", "Sales", "Sick", "Out today", "2026-02-18"),
    _p("Nina Patel", "Operations"),
    _p("Oscar Davis", "Operations"),
    _p("Priya Sharma", "Operations", "Away from Desk", "Mail room"),
    _p("Quinn Murphy", "Operations", "At Lunch", "", "12:30 PM"),
    _p("Rachel Wong", "Operations", "PTO", "Family leave", "2026-03-03"),
    _p("Sam Turner", "Operations"),
    _p("Tina Gonzalez", "Operations", "Working Remotely", "Reachable by email"),
]


def seed_demo(store: Store) -> int:
    """Replace the whole roster with the demo roster; returns the count."""
    count = store.replace_roster(DEMO_ROSTER)
    logger.info("seeded %d people", count)
    return count
