"""
Main entry point of the Robyn backend.

- Creates the Robyn app
- Wires the JSON API routes (every handler goes through handle_errors)
- Renders the HTML views (dashboard, payslip, employee badge) with Jinja2
"""

from __future__ import annotations

import logging
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape
from robyn import Robyn, Response, Request

from .core.config import settings
from .core.db import init_db, get_session
from .core.logging_config import setup_logging
from .core.auth import create_user, get_current_user
from .core.error_handler import handle_errors
from .api import auth as auth_api
from .api import employees as employees_api
from .api import attendance as attendance_api
from .api import leave as leave_api
from .api import compensation as compensation_api
from .api import payroll as payroll_api
from .api import hr_settings as hr_settings_api
from .api import fixed_assets as fixed_assets_api
from .models.hr import Employee, LeaveRequest
from .models.payroll import Payroll
from .models.system import Tenant, User
from .services import hr_settings_service

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent.parent.parent
TEMPLATES_DIR = BASE_DIR / "frontend" / "templates"

env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
)

app = Robyn(__file__)


def render_template(template_name: str, **context: object) -> Response:
    """Render a Jinja2 template into an HTML response."""

    template = env.get_template(template_name)
    html = template.render(**context)
    return Response(status_code=200, headers={"Content-Type": "text/html; charset=utf-8"}, description=html)


def dashboard_context(request: Request) -> dict[str, object]:
    """Headline numbers for the logged-in user's tenant; empty when anonymous."""

    user = get_current_user(request)
    if user is None:
        return {"user": None}
    with get_session() as db:
        employees = (
            db.query(Employee)
            .filter(Employee.tenant_id == user.tenant_id, Employee.is_deleted.is_(False), Employee.status == "Active")
            .count()
        )
        pending_leave = (
            db.query(LeaveRequest)
            .filter(
                LeaveRequest.tenant_id == user.tenant_id,
                LeaveRequest.is_deleted.is_(False),
                LeaveRequest.status == "Pending",
            )
            .count()
        )
        last_payroll = (
            db.query(Payroll)
            .filter(Payroll.tenant_id == user.tenant_id, Payroll.is_deleted.is_(False))
            .order_by(Payroll.period.desc())
            .first()
        )
        return {
            "user": {"username": user.username, "role": user.role},
            "active_employees": employees,
            "pending_leave_requests": pending_leave,
            "last_payroll": (
                {
                    "period": last_payroll.period,
                    "status": last_payroll.status,
                    "total_amount": float(last_payroll.total_amount),
                    "currency": last_payroll.currency_code,
                }
                if last_payroll
                else None
            ),
        }


# HTML views
@app.get("/")
@handle_errors
async def index(request: Request) -> Response:  # type: ignore[override]
    """Dashboard."""

    return render_template("index.html", app_name=settings.app_name, **dashboard_context(request))


@app.get("/ui/payroll/:id/payslip/:entry_id")
@handle_errors
async def ui_payslip(request: Request) -> Response:  # type: ignore[override]
    """Printable payslip."""

    return render_template("payroll/payslip.html", app_name=settings.app_name, **payroll_api.payslip_context(request))


@app.get("/ui/employees/:id/badge")
@handle_errors
async def ui_badge(request: Request) -> Response:  # type: ignore[override]
    """Printable employee badge with the attendance QR code."""

    return render_template("employees/badge.html", app_name=settings.app_name, **employees_api.badge_context(request))


# Auth
@app.post("/api/auth/login")
@handle_errors
async def api_login(request: Request) -> Response:  # type: ignore[override]
    return auth_api.login(request)


@app.get("/api/auth/me")
@handle_errors
async def api_me(request: Request) -> Response:  # type: ignore[override]
    return auth_api.me(request)


# Departments
@app.get("/api/hr/departments")
@handle_errors
async def api_list_departments(request: Request) -> Response:  # type: ignore[override]
    return employees_api.list_departments(request)


@app.post("/api/hr/departments")
@handle_errors
async def api_create_department(request: Request) -> Response:  # type: ignore[override]
    return employees_api.create_department(request)


@app.put("/api/hr/departments/:id")
@handle_errors
async def api_update_department(request: Request) -> Response:  # type: ignore[override]
    return employees_api.update_department(request)


@app.delete("/api/hr/departments/:id")
@handle_errors
async def api_delete_department(request: Request) -> Response:  # type: ignore[override]
    return employees_api.delete_department(request)


# Work shifts
@app.get("/api/hr/work-shifts")
@handle_errors
async def api_list_work_shifts(request: Request) -> Response:  # type: ignore[override]
    return employees_api.list_work_shifts(request)


@app.post("/api/hr/work-shifts")
@handle_errors
async def api_create_work_shift(request: Request) -> Response:  # type: ignore[override]
    return employees_api.create_work_shift(request)


@app.put("/api/hr/work-shifts/:id")
@handle_errors
async def api_update_work_shift(request: Request) -> Response:  # type: ignore[override]
    return employees_api.update_work_shift(request)


@app.delete("/api/hr/work-shifts/:id")
@handle_errors
async def api_delete_work_shift(request: Request) -> Response:  # type: ignore[override]
    return employees_api.delete_work_shift(request)


# Employees
@app.get("/api/hr/employees")
@handle_errors
async def api_list_employees(request: Request) -> Response:  # type: ignore[override]
    return employees_api.list_employees(request)


@app.post("/api/hr/employees")
@handle_errors
async def api_create_employee(request: Request) -> Response:  # type: ignore[override]
    return employees_api.create_employee(request)


@app.get("/api/hr/employees/:id")
@handle_errors
async def api_get_employee(request: Request) -> Response:  # type: ignore[override]
    return employees_api.get_employee(request)


@app.put("/api/hr/employees/:id")
@handle_errors
async def api_update_employee(request: Request) -> Response:  # type: ignore[override]
    return employees_api.update_employee(request)


@app.delete("/api/hr/employees/:id")
@handle_errors
async def api_delete_employee(request: Request) -> Response:  # type: ignore[override]
    return employees_api.delete_employee(request)


@app.post("/api/hr/employees/:id/salary")
@handle_errors
async def api_change_salary(request: Request) -> Response:  # type: ignore[override]
    return employees_api.change_salary(request)


@app.get("/api/hr/employees/:id/salary-history")
@handle_errors
async def api_salary_history(request: Request) -> Response:  # type: ignore[override]
    return employees_api.get_salary_history(request)


@app.post("/api/hr/employees/:id/terminate")
@handle_errors
async def api_terminate_employee(request: Request) -> Response:  # type: ignore[override]
    return employees_api.terminate_employee(request)


@app.post("/api/hr/employees/:id/qr-token")
@handle_errors
async def api_regenerate_qr_token(request: Request) -> Response:  # type: ignore[override]
    return employees_api.regenerate_qr_token(request)


@app.get("/api/hr/employees/:id/badge")
@handle_errors
async def api_badge(request: Request) -> Response:  # type: ignore[override]
    return employees_api.get_badge(request)


# Attendance
@app.post("/api/attendance/scan")
@handle_errors
async def api_scan(request: Request) -> Response:  # type: ignore[override]
    return attendance_api.scan(request)


@app.post("/api/attendance/check-in")
@handle_errors
async def api_check_in(request: Request) -> Response:  # type: ignore[override]
    return attendance_api.check_in(request)


@app.post("/api/attendance/check-out")
@handle_errors
async def api_check_out(request: Request) -> Response:  # type: ignore[override]
    return attendance_api.check_out(request)


@app.post("/api/attendance/absent")
@handle_errors
async def api_mark_absent(request: Request) -> Response:  # type: ignore[override]
    return attendance_api.mark_absent(request)


@app.get("/api/attendance/daily")
@handle_errors
async def api_list_daily(request: Request) -> Response:  # type: ignore[override]
    return attendance_api.list_daily(request)


@app.get("/api/attendance/summary/:employee_id")
@handle_errors
async def api_period_summary(request: Request) -> Response:  # type: ignore[override]
    return attendance_api.period_summary(request)


@app.get("/api/attendance/holidays")
@handle_errors
async def api_list_holidays(request: Request) -> Response:  # type: ignore[override]
    return attendance_api.list_holidays(request)


@app.post("/api/attendance/holidays")
@handle_errors
async def api_create_holiday(request: Request) -> Response:  # type: ignore[override]
    return attendance_api.create_holiday(request)


@app.delete("/api/attendance/holidays/:id")
@handle_errors
async def api_delete_holiday(request: Request) -> Response:  # type: ignore[override]
    return attendance_api.delete_holiday(request)


# Leave
@app.get("/api/leave/policies")
@handle_errors
async def api_list_leave_policies(request: Request) -> Response:  # type: ignore[override]
    return leave_api.list_policies(request)


@app.post("/api/leave/policies")
@handle_errors
async def api_create_leave_policy(request: Request) -> Response:  # type: ignore[override]
    return leave_api.create_policy(request)


@app.put("/api/leave/policies/:id")
@handle_errors
async def api_update_leave_policy(request: Request) -> Response:  # type: ignore[override]
    return leave_api.update_policy(request)


@app.delete("/api/leave/policies/:id")
@handle_errors
async def api_delete_leave_policy(request: Request) -> Response:  # type: ignore[override]
    return leave_api.delete_policy(request)


@app.get("/api/leave/allocations")
@handle_errors
async def api_list_allocations(request: Request) -> Response:  # type: ignore[override]
    return leave_api.list_allocations(request)


@app.post("/api/leave/allocations")
@handle_errors
async def api_allocate_leave(request: Request) -> Response:  # type: ignore[override]
    return leave_api.allocate(request)


@app.post("/api/leave/allocations/accrue")
@handle_errors
async def api_accrue_leave(request: Request) -> Response:  # type: ignore[override]
    return leave_api.accrue(request)


@app.get("/api/leave/balance/:employee_id")
@handle_errors
async def api_leave_balance(request: Request) -> Response:  # type: ignore[override]
    return leave_api.balance(request)


@app.get("/api/leave/requests")
@handle_errors
async def api_list_leave_requests(request: Request) -> Response:  # type: ignore[override]
    return leave_api.list_requests(request)


@app.post("/api/leave/requests")
@handle_errors
async def api_create_leave_request(request: Request) -> Response:  # type: ignore[override]
    return leave_api.create_request(request)


@app.post("/api/leave/requests/:id/approve")
@handle_errors
async def api_approve_leave_request(request: Request) -> Response:  # type: ignore[override]
    return leave_api.approve_request(request)


@app.post("/api/leave/requests/:id/reject")
@handle_errors
async def api_reject_leave_request(request: Request) -> Response:  # type: ignore[override]
    return leave_api.reject_request(request)


@app.post("/api/leave/requests/:id/cancel")
@handle_errors
async def api_cancel_leave_request(request: Request) -> Response:  # type: ignore[override]
    return leave_api.cancel_request(request)


# Compensation
@app.get("/api/compensation/advances")
@handle_errors
async def api_list_advances(request: Request) -> Response:  # type: ignore[override]
    return compensation_api.list_advances(request)


@app.post("/api/compensation/advances")
@handle_errors
async def api_create_advance(request: Request) -> Response:  # type: ignore[override]
    return compensation_api.create_advance(request)


@app.post("/api/compensation/advances/:id/approve")
@handle_errors
async def api_approve_advance(request: Request) -> Response:  # type: ignore[override]
    return compensation_api.approve_advance(request)


@app.post("/api/compensation/advances/:id/reject")
@handle_errors
async def api_reject_advance(request: Request) -> Response:  # type: ignore[override]
    return compensation_api.reject_advance(request)


@app.post("/api/compensation/advances/:id/pay")
@handle_errors
async def api_pay_advance(request: Request) -> Response:  # type: ignore[override]
    return compensation_api.pay_advance(request)


@app.get("/api/compensation/bonuses")
@handle_errors
async def api_list_bonuses(request: Request) -> Response:  # type: ignore[override]
    return compensation_api.list_bonuses(request)


@app.post("/api/compensation/bonuses")
@handle_errors
async def api_create_bonus(request: Request) -> Response:  # type: ignore[override]
    return compensation_api.create_bonus(request)


@app.get("/api/compensation/commission-rules")
@handle_errors
async def api_list_commission_rules(request: Request) -> Response:  # type: ignore[override]
    return compensation_api.list_commission_rules(request)


@app.post("/api/compensation/commission-rules")
@handle_errors
async def api_create_commission_rule(request: Request) -> Response:  # type: ignore[override]
    return compensation_api.create_commission_rule(request)


@app.put("/api/compensation/commission-rules/:id")
@handle_errors
async def api_update_commission_rule(request: Request) -> Response:  # type: ignore[override]
    return compensation_api.update_commission_rule(request)


@app.delete("/api/compensation/commission-rules/:id")
@handle_errors
async def api_delete_commission_rule(request: Request) -> Response:  # type: ignore[override]
    return compensation_api.delete_commission_rule(request)


@app.post("/api/compensation/commissions/calculate")
@handle_errors
async def api_calculate_commission(request: Request) -> Response:  # type: ignore[override]
    return compensation_api.calculate_commission(request)


@app.get("/api/compensation/commissions")
@handle_errors
async def api_list_commissions(request: Request) -> Response:  # type: ignore[override]
    return compensation_api.list_commissions(request)


@app.post("/api/compensation/commissions")
@handle_errors
async def api_record_commission(request: Request) -> Response:  # type: ignore[override]
    return compensation_api.record_commission(request)


# Payroll
@app.post("/api/payroll/run")
@handle_errors
async def api_run_payroll(request: Request) -> Response:  # type: ignore[override]
    return payroll_api.run_payroll(request)


@app.get("/api/payroll")
@handle_errors
async def api_list_payrolls(request: Request) -> Response:  # type: ignore[override]
    return payroll_api.list_payrolls(request)


@app.get("/api/payroll/:id")
@handle_errors
async def api_get_payroll(request: Request) -> Response:  # type: ignore[override]
    return payroll_api.get_payroll(request)


@app.get("/api/payroll/:id/entries")
@handle_errors
async def api_payroll_entries(request: Request) -> Response:  # type: ignore[override]
    return payroll_api.get_entries(request)


@app.get("/api/payroll/:id/payslip/:entry_id")
@handle_errors
async def api_payslip(request: Request) -> Response:  # type: ignore[override]
    return payroll_api.get_payslip(request)


@app.get("/api/payroll/:id/summary")
@handle_errors
async def api_payroll_summary(request: Request) -> Response:  # type: ignore[override]
    return payroll_api.get_summary(request)


@app.post("/api/payroll/:id/approve")
@handle_errors
async def api_approve_payroll(request: Request) -> Response:  # type: ignore[override]
    return payroll_api.approve_payroll(request)


@app.post("/api/payroll/:id/pay")
@handle_errors
async def api_pay_payroll(request: Request) -> Response:  # type: ignore[override]
    return payroll_api.pay_payroll(request)


# HR settings
@app.get("/api/hr-settings/tax-rules")
@handle_errors
async def api_list_tax_rules(request: Request) -> Response:  # type: ignore[override]
    return hr_settings_api.list_tax_rules(request)


@app.post("/api/hr-settings/tax-rules")
@handle_errors
async def api_create_tax_rule(request: Request) -> Response:  # type: ignore[override]
    return hr_settings_api.create_tax_rule(request)


@app.put("/api/hr-settings/tax-rules/:id")
@handle_errors
async def api_update_tax_rule(request: Request) -> Response:  # type: ignore[override]
    return hr_settings_api.update_tax_rule(request)


@app.get("/api/hr-settings/ss-rules")
@handle_errors
async def api_list_ss_rules(request: Request) -> Response:  # type: ignore[override]
    return hr_settings_api.list_ss_rules(request)


@app.post("/api/hr-settings/ss-rules")
@handle_errors
async def api_create_ss_rule(request: Request) -> Response:  # type: ignore[override]
    return hr_settings_api.create_ss_rule(request)


@app.get("/api/hr-settings/minimum-wages")
@handle_errors
async def api_list_minimum_wages(request: Request) -> Response:  # type: ignore[override]
    return hr_settings_api.list_minimum_wages(request)


@app.post("/api/hr-settings/minimum-wages")
@handle_errors
async def api_create_minimum_wage(request: Request) -> Response:  # type: ignore[override]
    return hr_settings_api.create_minimum_wage(request)


@app.get("/api/hr-settings/parameters")
@handle_errors
async def api_list_parameters(request: Request) -> Response:  # type: ignore[override]
    return hr_settings_api.list_parameters(request)


@app.put("/api/hr-settings/parameters")
@handle_errors
async def api_set_parameter(request: Request) -> Response:  # type: ignore[override]
    return hr_settings_api.set_parameter(request)


@app.get("/api/hr-settings/risk-profiles")
@handle_errors
async def api_list_risk_profiles(request: Request) -> Response:  # type: ignore[override]
    return hr_settings_api.list_risk_profiles(request)


@app.post("/api/hr-settings/risk-profiles")
@handle_errors
async def api_create_risk_profile(request: Request) -> Response:  # type: ignore[override]
    return hr_settings_api.create_risk_profile(request)


@app.get("/api/hr-settings/earning-types")
@handle_errors
async def api_list_earning_types(request: Request) -> Response:  # type: ignore[override]
    return hr_settings_api.list_earning_types(request)


@app.post("/api/hr-settings/earning-types")
@handle_errors
async def api_create_earning_type(request: Request) -> Response:  # type: ignore[override]
    return hr_settings_api.create_earning_type(request)


@app.get("/api/hr-settings/settings")
@handle_errors
async def api_list_settings(request: Request) -> Response:  # type: ignore[override]
    return hr_settings_api.list_settings(request)


@app.put("/api/hr-settings/settings")
@handle_errors
async def api_set_setting(request: Request) -> Response:  # type: ignore[override]
    return hr_settings_api.set_setting(request)


@app.post("/api/hr-settings/seed")
@handle_errors
async def api_seed_defaults(request: Request) -> Response:  # type: ignore[override]
    return hr_settings_api.seed_defaults(request)


@app.delete("/api/hr-settings/:kind/:id")
@handle_errors
async def api_delete_reference_item(request: Request) -> Response:  # type: ignore[override]
    return hr_settings_api.delete_reference_item(request)


@app.get("/api/audit-logs")
@handle_errors
async def api_audit_logs(request: Request) -> Response:  # type: ignore[override]
    return hr_settings_api.list_audit_logs(request)


# Fixed assets
@app.get("/api/fixed-assets/categories")
@handle_errors
async def api_list_asset_categories(request: Request) -> Response:  # type: ignore[override]
    return fixed_assets_api.list_categories(request)


@app.post("/api/fixed-assets/categories")
@handle_errors
async def api_create_asset_category(request: Request) -> Response:  # type: ignore[override]
    return fixed_assets_api.create_category(request)


@app.put("/api/fixed-assets/categories/:id")
@handle_errors
async def api_update_asset_category(request: Request) -> Response:  # type: ignore[override]
    return fixed_assets_api.update_category(request)


@app.delete("/api/fixed-assets/categories/:id")
@handle_errors
async def api_delete_asset_category(request: Request) -> Response:  # type: ignore[override]
    return fixed_assets_api.delete_category(request)


@app.get("/api/fixed-assets/assets")
@handle_errors
async def api_list_assets(request: Request) -> Response:  # type: ignore[override]
    return fixed_assets_api.list_assets(request)


@app.post("/api/fixed-assets/assets")
@handle_errors
async def api_create_asset(request: Request) -> Response:  # type: ignore[override]
    return fixed_assets_api.create_asset(request)


@app.get("/api/fixed-assets/assets/:id")
@handle_errors
async def api_get_asset(request: Request) -> Response:  # type: ignore[override]
    return fixed_assets_api.get_asset(request)


@app.put("/api/fixed-assets/assets/:id")
@handle_errors
async def api_update_asset(request: Request) -> Response:  # type: ignore[override]
    return fixed_assets_api.update_asset(request)


@app.delete("/api/fixed-assets/assets/:id")
@handle_errors
async def api_delete_asset(request: Request) -> Response:  # type: ignore[override]
    return fixed_assets_api.delete_asset(request)


@app.post("/api/fixed-assets/assets/:id/assign")
@handle_errors
async def api_assign_asset(request: Request) -> Response:  # type: ignore[override]
    return fixed_assets_api.assign_asset(request)


@app.post("/api/fixed-assets/assets/:id/return")
@handle_errors
async def api_return_asset(request: Request) -> Response:  # type: ignore[override]
    return fixed_assets_api.return_asset(request)


@app.get("/api/fixed-assets/assets/:id/assignments")
@handle_errors
async def api_list_asset_assignments(request: Request) -> Response:  # type: ignore[override]
    return fixed_assets_api.list_assignments(request)


@app.post("/api/fixed-assets/assets/:id/meter")
@handle_errors
async def api_log_meter(request: Request) -> Response:  # type: ignore[override]
    return fixed_assets_api.log_meter(request)


@app.get("/api/fixed-assets/assets/:id/meter")
@handle_errors
async def api_list_meter_logs(request: Request) -> Response:  # type: ignore[override]
    return fixed_assets_api.list_meter_logs(request)


@app.post("/api/fixed-assets/assets/:id/incidents")
@handle_errors
async def api_report_incident(request: Request) -> Response:  # type: ignore[override]
    return fixed_assets_api.report_incident(request)


@app.get("/api/fixed-assets/assets/:id/incidents")
@handle_errors
async def api_list_incidents(request: Request) -> Response:  # type: ignore[override]
    return fixed_assets_api.list_incidents(request)


@app.post("/api/fixed-assets/incidents/:id/resolve")
@handle_errors
async def api_resolve_incident(request: Request) -> Response:  # type: ignore[override]
    return fixed_assets_api.resolve_incident(request)


@app.post("/api/fixed-assets/assets/:id/maintenance")
@handle_errors
async def api_record_maintenance(request: Request) -> Response:  # type: ignore[override]
    return fixed_assets_api.record_maintenance(request)


@app.get("/api/fixed-assets/assets/:id/maintenance")
@handle_errors
async def api_list_maintenances(request: Request) -> Response:  # type: ignore[override]
    return fixed_assets_api.list_maintenances(request)


@app.post("/api/fixed-assets/assets/:id/dispose")
@handle_errors
async def api_dispose_asset(request: Request) -> Response:  # type: ignore[override]
    return fixed_assets_api.dispose_asset(request)


@app.get("/api/fixed-assets/assets/:id/depreciations")
@handle_errors
async def api_list_depreciations(request: Request) -> Response:  # type: ignore[override]
    return fixed_assets_api.list_depreciations(request)


@app.post("/api/fixed-assets/depreciation/run")
@handle_errors
async def api_run_depreciation(request: Request) -> Response:  # type: ignore[override]
    return fixed_assets_api.run_depreciation(request)


def ensure_default_tenant() -> None:
    """Create the default tenant, its admin user and reference data on first start."""

    with get_session() as db:
        tenant = db.query(Tenant).filter(Tenant.code == settings.default_tenant_code).first()
        if tenant is None:
            tenant = Tenant(
                code=settings.default_tenant_code,
                name=settings.app_name,
                base_currency=settings.base_currency,
            )
            db.add(tenant)
            db.flush()
            logger.info("Created default tenant %s", tenant.code)
        if db.query(User).filter(User.tenant_id == tenant.id).first() is None:
            create_user(db, tenant.id, settings.admin_username, settings.admin_password, "admin")
            logger.info("Created admin user '%s'", settings.admin_username)
        hr_settings_service.seed_tenant_defaults(db, tenant.id)


def setup() -> None:
    """Startup steps run before serving."""

    setup_logging()
    init_db()
    ensure_default_tenant()


if __name__ == "__main__":
    setup()
    app.start(port=settings.port, host="0.0.0.0")
