import enum


class ChargeCategory(str, enum.Enum):
    RENT = 'rent'
    UTILITY = 'utility'
    FEE = 'fee'
    OTHER = 'other'


class AmountType(str, enum.Enum):
    FIXED = 'fixed'
    VARIABLE = 'variable'


class LeaseStatus(str, enum.Enum):
    DRAFT = 'draft'
    PENDING = 'pending'
    ACTIVE = 'active'
    EXPIRED = 'expired'
    TERMINATED = 'terminated'
    RENEWED = 'renewed'


class PaymentStatus(str, enum.Enum):
    UPCOMING = 'upcoming'
    DUE = 'due'
    PARTIAL = 'partial'
    PAID = 'paid'
    LATE = 'late'


class PaymentMethod(str, enum.Enum):
    CASH = 'cash'
    CHECK = 'check'
    ACH = 'ach'
    CARD = 'card'
    OTHER = 'other'


class AssignmentStatus(str, enum.Enum):
    PROPOSED = 'proposed'
    ACCEPTED = 'accepted'
    REJECTED = 'rejected'
