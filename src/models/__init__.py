"""Database model definitions."""

from src.models.base import Base
from src.models.course import Course, CourseEnrollment
from src.models.notification import Notification
from src.models.offer import CustomOffer, OfferStatus
from src.models.order import Order, OrderStatus, ProductCategory
from src.models.payment import Payment
from src.models.referral import ReferralEarning, RentalEarning, WalletUsage
from src.models.rental import Rental, RentalBooking
from src.models.user import User

__all__ = [
    "Base",
    "Course",
    "CourseEnrollment",
    "CustomOffer",
    "Notification",
    "OfferStatus",
    "Order",
    "OrderStatus",
    "Payment",
    "ProductCategory",
    "ReferralEarning",
    "Rental",
    "RentalBooking",
    "RentalEarning",
    "User",
    "WalletUsage",
]
