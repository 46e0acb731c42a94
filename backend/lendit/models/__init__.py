"""Database models package."""

from lendit.models.base import Base, DecimalText, JSONText
from lendit.models.booking import (
    BookingEventModel,
    BookingModel,
    HandoverChecklistModel,
    NotificationModel,
    PaymentModel,
)
from lendit.models.damage import DamageReportModel, DamageReportPhotoModel
from lendit.models.listing import ListingModel, PolicyPageModel

__all__ = [
    "Base",
    "BookingEventModel",
    "BookingModel",
    "DamageReportModel",
    "DamageReportPhotoModel",
    "DecimalText",
    "HandoverChecklistModel",
    "JSONText",
    "ListingModel",
    "NotificationModel",
    "PaymentModel",
    "PolicyPageModel",
]
