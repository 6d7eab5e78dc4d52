
from icebath.schemas.common import PaginatedResponse, ErrorResponse
from icebath.schemas.time_slot import (
    TimeSlot, TimeSlotListResponse, TimeSlotGenerate, TimeSlotGenerateResult,
)
from icebath.schemas.booking import (
    Booking, BookingCreate, BookingCreated, BookingCancelRequest, BookingCancelResponse,
    BookingType, PaymentMode, RefundType, PaymentVerificationResponse,
)
from icebath.schemas.entitlement import (
    TokenGrant, MembershipStatus, CreditGrant, EntitlementSummary,
    GiftCardRedeem, GiftCardRedeemResponse, GiftCardPurchase, GiftCardCheckoutResponse,
)
