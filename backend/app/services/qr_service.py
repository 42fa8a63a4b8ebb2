"""
QR codes for employee badges, used by the attendance scanners.
"""

from __future__ import annotations

import io
import json
import base64

import qrcode

from ..core.error_handler import ValidationError
from ..models.hr import Employee


def generate_qr_code_image(data: str, size: int = 10, border: int = 4) -> bytes:
    """
    Create a QR code PNG from text.

    Args:
        data: QR content (text or JSON string)
        size: Box size in pixels
        border: Border width in boxes

    Returns:
        PNG bytes
    """
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=size,
        border=border,
    )
    qr.add_data(data)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")

    img_bytes = io.BytesIO()
    img.save(img_bytes, format="PNG")
    return img_bytes.getvalue()


def generate_qr_code_base64(data: str, size: int = 10, border: int = 4) -> str:
    """QR code PNG as a base64 string."""
    img_bytes = generate_qr_code_image(data, size, border)
    return base64.b64encode(img_bytes).decode("utf-8")


def generate_qr_code_data_url(data: str, size: int = 10, border: int = 4) -> str:
    """QR code as a data URL, usable directly in an <img> tag."""
    base64_str = generate_qr_code_base64(data, size, border)
    return f"data:image/png;base64,{base64_str}"


def create_employee_badge_qr_data(employee: Employee) -> str:
    """JSON payload printed on an employee badge."""
    qr_data = {
        "type": "employee",
        "tenant": str(employee.tenant_id),
        "token": employee.qr_token,
    }
    return json.dumps(qr_data, ensure_ascii=False)


def parse_scan_payload(raw: str | None) -> str:
    """Extract the badge token from a scanned payload (badge JSON or bare token)."""
    if raw is None or not str(raw).strip():
        raise ValidationError("Empty QR payload")
    raw = str(raw).strip()
    if not raw.startswith("{"):
        return raw

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        raise ValidationError("QR payload is not valid JSON")
    if payload.get("type") != "employee" or not payload.get("token"):
        raise ValidationError("QR code is not an employee badge")
    return str(payload["token"])
