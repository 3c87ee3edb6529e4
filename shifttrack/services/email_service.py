import logging
import smtplib
from email.message import EmailMessage
from typing import Any, Dict, Optional

from shifttrack.core.settings import env_bool, env_int, env_str

logger = logging.getLogger(__name__)


def _smtp_send(msg: EmailMessage) -> None:
    host = env_str("SMTP_HOST", "")
    port = env_int("SMTP_PORT", 587)
    username = env_str("SMTP_USERNAME", "")
    password = env_str("SMTP_PASSWORD", "")

    with smtplib.SMTP(host, port, timeout=30) as s:
        if env_bool("SMTP_TLS", True):
            s.starttls()
        if username and password:
            s.login(username, password)
        s.send_message(msg)


def render_daily_gps_report(report_date: str, report: Dict[str, Any]) -> str:
    summary = report.get("summary", {})
    lines = [
        f"GPS report for {report_date}",
        "",
        f"Employees: {summary.get('totalEmployees', 0)}",
        f"Shifts: {summary.get('totalShifts', 0)}",
        f"GPS problems: {summary.get('gpsProblems', 0)}",
        f"Auto-stopped shifts: {summary.get('autoStoppedShifts', 0)}",
        "",
    ]

    for emp in report.get("employees", []):
        lines.append(f"{emp.get('userName')} ({emp.get('departmentName') or '-'})")
        for shift in emp.get("shifts", []):
            end = shift.get("endTime") or "in progress"
            flag = " [auto-stopped]" if shift.get("autoStopped") else ""
            minutes = shift.get("durationMinutes")
            duration = f", {minutes} min" if minutes is not None else ""
            lines.append(f"  {shift.get('startTime')} - {end}{duration}{flag}")
        lines.append(f"  GPS samples: {emp.get('locationCount', 0)}")
        lines.append(f"  GPS status: {emp.get('gpsStatus') or '-'}")
        addresses = emp.get("addresses") or []
        if addresses:
            lines.append("  Places: " + "; ".join(addresses))
        lines.append("")

    return "\n".join(lines)


def send_daily_gps_report(
    recipient_email: Optional[str],
    recipient_name: str,
    report_date: str,
    report: Dict[str, Any],
) -> bool:
    mail_from = env_str("MAIL_FROM", "")
    if not recipient_email or not env_str("SMTP_HOST", "") or not mail_from:
        logger.warning(
            "Email not configured; daily GPS report not sent",
            extra={"recipient": recipient_email},
        )
        return False

    msg = EmailMessage()
    msg["Subject"] = f"Daily GPS report {report_date}"
    msg["From"] = mail_from
    msg["To"] = recipient_email
    msg.set_content(f"Hello {recipient_name},\n\n" + render_daily_gps_report(report_date, report))

    try:
        _smtp_send(msg)
    except Exception as exc:
        logger.warning(
            "Daily GPS report email failed",
            extra={"recipient": recipient_email, "error": str(exc)},
        )
        return False

    return True
