"""ORM models for the chipin domain."""

from chipin.db.models.chip import Chip, ChipStatus
from chipin.db.models.chip_event import ChipEvent, ChipEventType
from chipin.db.models.chip_objective import ChipObjective
from chipin.db.models.chip_participant import ChipParticipant
from chipin.db.models.contribution import Contribution, ContributionStatus
from chipin.db.models.contribution_payment import ContributionPayment
from chipin.db.models.dispute import Dispute
from chipin.db.models.pool import Pool, PoolStatus
from chipin.db.models.pool_event import PoolEvent, PoolEventType
from chipin.db.models.profile import Profile
from chipin.db.models.webhook_event import WebhookEvent, WebhookEventStatus

__all__ = [
    "Chip",
    "ChipEvent",
    "ChipEventType",
    "ChipObjective",
    "ChipParticipant",
    "ChipStatus",
    "Contribution",
    "ContributionPayment",
    "ContributionStatus",
    "Dispute",
    "Pool",
    "PoolEvent",
    "PoolEventType",
    "PoolStatus",
    "Profile",
    "WebhookEvent",
    "WebhookEventStatus",
]
