from .base import Base
from .system import Tenant, User  # noqa: F401
from .hr import (  # noqa: F401
    SgkRiskProfile,
    Department,
    WorkShift,
    Employee,
    SalaryHistory,
    PublicHoliday,
    AttendanceLog,
    DailyAttendance,
    LeavePolicy,
    LeaveAllocation,
    LeaveRequest,
    AdvanceRequest,
    Bonus,
    CommissionRule,
    PeriodCommission,
    HrSetting,
)
from .payroll import (  # noqa: F401
    TaxRule,
    SocialSecurityRule,
    MinimumWage,
    PayrollParameter,
    EarningDeductionType,
    EmployeeCumulative,
    Payroll,
    PayrollEntry,
    PayrollEntryDetail,
)
from .fixed_assets import (  # noqa: F401
    AssetCategory,
    Asset,
    AssetDepreciation,
    AssetAssignment,
    AssetMeterLog,
    AssetIncident,
    AssetMaintenance,
    AssetDisposal,
)
from .audit import AuditLog  # noqa: F401
