from school_admin.core.models.academic_year import AcademicYear, AcademicYearSetting
from school_admin.core.models.academic_year_transition import AcademicYearTransition
from school_admin.core.models.class_model import SchoolClass
from school_admin.core.models.village import BusFeeHistory, Village
from school_admin.core.models.student import Student
from school_admin.core.models.student_history import StudentAcademicHistory, StudentPromotionHistory
from school_admin.core.models.fee_type import FeeType
from school_admin.core.models.fee_structure import BusFeeStructure, FeeStructure
from school_admin.core.models.fee_payment import FeePayment, PaymentAllocation
from school_admin.core.models.miscellaneous_charge import ChargeCategory, MiscellaneousCharge

__all__ = [
    "AcademicYear",
    "AcademicYearSetting",
    "AcademicYearTransition",
    "SchoolClass",
    "Village",
    "BusFeeHistory",
    "Student",
    "StudentAcademicHistory",
    "StudentPromotionHistory",
    "FeeType",
    "FeeStructure",
    "BusFeeStructure",
    "FeePayment",
    "PaymentAllocation",
    "ChargeCategory",
    "MiscellaneousCharge",
]
