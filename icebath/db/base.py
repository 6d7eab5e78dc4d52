
from icebath.db.session import Base
from icebath.models.time_slot import TimeSlot
from icebath.models.booking import Booking, BookingCreditDeduction
from icebath.models.entitlement import CustomerToken, Membership, CustomerCredit
from icebath.models.promotion import DiscountCode, PartnerCode, DiscountRedemption
from icebath.models.gift_card import GiftCard
from icebath.models.customer import Customer, PricingConfig, AuditLog
