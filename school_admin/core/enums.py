from enum import Enum


class UserRole(str, Enum):
    ADMINISTRATOR = "administrator"
    ACCOUNTANT = "accountant"
    TEACHER = "teacher"


class StudentStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class RegistrationType(str, Enum):
    NEW = "new"
    CONTINUING = "continuing"


class FeeCategory(str, Enum):
    SCHOOL = "school"
    BUS = "bus"


class FeeFrequency(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"
    AD_HOC = "ad_hoc"


class PaymentMethod(str, Enum):
    CASH = "cash"
    ONLINE = "online"


class SplitPolicy(str, Enum):
    """How a single payment is divided between bus and school balances."""

    STANDARD = "standard"
    EQUAL = "equal"
    PROPORTIONAL = "proportional"
    MANUAL = "manual"


class ChargeType(str, Enum):
    FEE = "fee"
    MISCELLANEOUS = "miscellaneous"


class FeeStatus(str, Enum):
    PAID = "paid"
    PARTIAL = "partial"
    PENDING = "pending"


class PromotionStatus(str, Enum):
    PROMOTED = "promoted"
    RETAINED = "retained"
    TRANSFERRED_OUT = "transferred_out"
    DROPPED_OUT = "dropped_out"


class TransitionStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
