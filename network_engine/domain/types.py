"""
Enumerations and fixed tables of the relationship domain.
"""

from typing import Literal, get_args

ContactStatus = Literal["target", "requested", "connected", "engaged", "relationship"]
Seniority = Literal["ic", "manager", "director", "vp", "c_suite"]
InteractionSource = Literal["manual", "linkedin", "gmail", "calendar", "import"]
StatusTrigger = Literal["manual", "automated_promotion", "automated_demotion", "import"]
ScoreType = Literal["relationship", "priority"]

QueueActionType = Literal["connection_request", "follow_up", "re_engagement"]
QueueItemStatus = Literal["pending", "approved", "executed", "skipped", "snoozed"]
QueueResult = Literal["success", "failed"]

MatchType = Literal["linkedin_url", "email", "phone", "name_company", "fuzzy_name_company"]
MatchConfidence = Literal["high", "medium", "low"]
PairStatus = Literal["pending", "merged", "dismissed"]
MergeType = Literal["auto", "manual"]

FieldSource = Literal[
    "manual", "email_calendar", "linkedin", "linkedin_scrape", "scrape", "import", "inferred"
]

CONTACT_STATUSES: tuple[str, ...] = get_args(ContactStatus)
SENIORITY_LEVELS: tuple[str, ...] = get_args(Seniority)
INTERACTION_SOURCES: tuple[str, ...] = get_args(InteractionSource)
FIELD_SOURCES: tuple[str, ...] = get_args(FieldSource)

# Lifecycle order; index comparison tells whether a status is "past" another
STATUS_ORDER: dict[str, int] = {status: index for index, status in enumerate(CONTACT_STATUSES)}
CONNECTED_STATUSES = ("connected", "engaged", "relationship")

INTERACTION_POINTS: dict[str, int] = {
    "linkedin_message": 5,
    "linkedin_dm_sent": 2,
    "linkedin_dm_received": 3,
    "email": 4,
    "meeting_1on1_inperson": 10,
    "meeting_1on1_virtual": 8,
    "meeting_group": 4,
    "linkedin_comment_given": 2,
    "linkedin_comment_received": 3,
    "linkedin_like_given": 1,
    "linkedin_like_received": 2,
    "introduction_given": 7,
    "introduction_received": 8,
    "manual_note": 1,
    "connection_request_sent": 3,
    "connection_request_accepted": 5,
}
INTERACTION_TYPES: tuple[str, ...] = tuple(INTERACTION_POINTS)

# Interactions initiated by the other party
RECIPROCAL_TYPES = frozenset(
    {
        "linkedin_dm_received",
        "linkedin_comment_received",
        "linkedin_like_received",
        "introduction_received",
        "connection_request_accepted",
    }
)

# Interactions we initiate; used to tell whether a new connection got a follow-up
OUTBOUND_TYPES = frozenset(
    {
        "linkedin_message",
        "linkedin_dm_sent",
        "email",
        "linkedin_comment_given",
        "linkedin_like_given",
        "introduction_given",
    }
)

# Higher rank wins. Unknown/absent current source reads as "linkedin".
SOURCE_RANK: dict[str, int] = {
    "manual": 4,
    "email_calendar": 3,
    "linkedin": 2,
    "linkedin_scrape": 2,
    "scrape": 2,
    "import": 1,
    "inferred": 0,
}
DEFAULT_FIELD_SOURCE = "linkedin"
