from studyhall.models.user import User, UserRole
from studyhall.models.study_hall import StudyHall, Seat
from studyhall.models.booking import Booking
from studyhall.models.transaction import Transaction
from studyhall.models.coupon import Coupon, CouponUsage
from studyhall.models.reward import Reward, RewardTransaction
from studyhall.models.referral import Referral, ReferralCode
from studyhall.models.settlement import Settlement, SettlementTransaction
from studyhall.models.incharge import Incharge, InchargeActivityLog
from studyhall.models.review import Review
from studyhall.models.notification import Notification
from studyhall.models.business_settings import BusinessSettings

__all__ = [
    "User", "UserRole",
    "StudyHall", "Seat",
    "Booking", "Transaction",
    "Coupon", "CouponUsage",
    "Reward", "RewardTransaction",
    "Referral", "ReferralCode",
    "Settlement", "SettlementTransaction",
    "Incharge", "InchargeActivityLog",
    "Review", "Notification", "BusinessSettings",
]
