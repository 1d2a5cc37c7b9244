"""Chat message templates for patient changes and the daily summary."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict

CURRENCY = "د.ع"
CLINIC_SIGNATURE = "🏥 مركز اضواء الساير للعلاج الطبيعي والمساند الطبية"

ACTION_TITLES: Dict[str, str] = {
    "created": "تسجيل مريض جديد",
    "updated": "تحديث بيانات مريض",
    "deleted": "حذف سجل مريض",
    "payment_added": "تسجيل دفعة جديدة",
    "payment_removed": "حذف دفعة",
}

CARE_TYPE_LABELS: Dict[str, str] = {
    "home_exercises": "تمارين منزلية",
    "sessions": "جلسات علاجية",
}

WEEKDAYS = ["الاثنين", "الثلاثاء", "الأربعاء", "الخميس", "الجمعة", "السبت", "الأحد"]
MONTHS = [
    "كانون الثاني",
    "شباط",
    "آذار",
    "نيسان",
    "أيار",
    "حزيران",
    "تموز",
    "آب",
    "أيلول",
    "تشرين الأول",
    "تشرين الثاني",
    "كانون الأول",
]


def _money(value: Any) -> str:
    return f"{int(value or 0):,} {CURRENCY}"


def format_patient_message(
    patient: Dict[str, Any], action: str, payment: Dict[str, Any] | None = None
) -> str:
    """Render a Markdown message describing a patient record change."""

    total_amount = int(patient.get("total_amount") or 0)
    total_received = int(patient.get("total_received") or 0)
    remaining = total_amount - total_received

    lines = [f"📋 *{ACTION_TITLES.get(action, action)}*", ""]
    lines.append(f"👤 *الاسم:* {patient.get('patient_name', '')}")
    lines.append(f"🔢 *العمر:* {patient.get('age', '')}")

    if patient.get("residence"):
        lines.append(f"🏠 *السكن:* {patient['residence']}")
    if patient.get("phone"):
        lines.append(f"📱 *الهاتف:* {patient['phone']}")
    if patient.get("doctor_name"):
        lines.append(f"👨‍⚕️ *الطبيب:* {patient['doctor_name']}")
    if patient.get("diagnosis"):
        lines.append(f"🏥 *التشخيص:* {patient['diagnosis']}")

    if patient.get("has_surgery"):
        line = "✂️ *عملية:* نعم"
        if patient.get("surgery_type"):
            line += f" ({patient['surgery_type']})"
        lines.append(line)

    care_type = patient.get("care_type")
    if care_type in CARE_TYPE_LABELS:
        lines.append(f"💪 *نوع الرعاية:* {CARE_TYPE_LABELS[care_type]}")
        if patient.get("session_count"):
            line = f"📊 *عدد الجلسات:* {patient['session_count']}"
            if patient.get("session_price"):
                line += f" × {_money(patient['session_price'])}"
            lines.append(line)

    if patient.get("aid_type"):
        line = f"🩹 *المساند الطبية:* {patient['aid_type']}"
        if patient.get("aid_price"):
            line += f" - {_money(patient['aid_price'])}"
        lines.append(line)

    if patient.get("has_diet") and patient.get("diet_plan"):
        lines.append(f"🥗 *النظام الغذائي:* {patient['diet_plan']}")

    if patient.get("has_other_services") and patient.get("other_service_type"):
        line = f"🔧 *خدمات أخرى:* {patient['other_service_type']}"
        if patient.get("other_service_price"):
            line += f" - {_money(patient['other_service_price'])}"
        lines.append(line)

    if payment:
        line = f"💵 *الدفعة:* {_money(payment.get('amount'))}"
        if payment.get("note"):
            line += f" ({payment['note']})"
        lines.append(line)

    lines.extend(
        [
            "",
            "💰 *المالية:*",
            f"   الإجمالي: {_money(total_amount)}",
            f"   المستلم: {_money(total_received)}",
            f"   المتبقي: {_money(remaining)}",
        ]
    )
    return "\n".join(lines) + "\n"


def format_summary_date(value: date) -> str:
    return f"{WEEKDAYS[value.weekday()]} {value.day} {MONTHS[value.month - 1]} {value.year}"


def format_daily_summary(summary_date: date, count: int, total_amount: int) -> str:
    """Render the end-of-day summary message."""

    return "\n".join(
        [
            "📊 *ملخص اليوم*",
            "",
            f"📅 {format_summary_date(summary_date)}",
            "",
            f"👥 *عدد المراجعين اليوم:* {count}",
            f"💰 *إجمالي المبالغ:* {_money(total_amount)}",
            "",
            CLINIC_SIGNATURE,
        ]
    )


__all__ = [
    "ACTION_TITLES",
    "CARE_TYPE_LABELS",
    "format_daily_summary",
    "format_patient_message",
]
