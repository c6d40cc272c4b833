"""
Validation rules for doctor profile sections.

Every validator returns a list of {"field", "message"} errors and never stops at
the first problem, so clients can show all issues at once.
"""
import re
from datetime import datetime, timezone, timedelta
from typing import Any, Dict, List, Optional

from email_validator import validate_email, EmailNotValidError

from telehealth.models.doctor import WEEKDAYS

Errors = List[Dict[str, str]]

TIME_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")
PHONE_PATTERN = re.compile(r"^\+?[0-9][0-9\s\-()]{6,18}[0-9]$")

VALID_SPECIALIZATIONS = [
    "General Medicine", "Cardiology", "Neurology", "Orthopedics", "Pediatrics",
    "Gynecology", "Dermatology", "Psychiatry", "Ophthalmology", "ENT",
    "Radiology", "Pathology", "Anesthesiology", "Emergency Medicine",
    "Internal Medicine", "Surgery", "Oncology", "Endocrinology",
    "Gastroenterology", "Nephrology", "Pulmonology", "Rheumatology",
    "Infectious Disease", "Allergy & Immunology", "Sports Medicine",
    "Pain Management", "Rehabilitation", "Preventive Medicine", "Other",
]

CONSULTATION_MODES = ["chat", "phone", "email", "video"]

NOTIFICATION_FLAGS = ["email", "sms", "push", "appointmentReminders", "newBookings", "payments"]

MAX_SPECIALIZATIONS = 5
MAX_QUALIFICATIONS = 20


def _error(field: str, message: str) -> Dict[str, str]:
    return {"field": field, "message": message}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _parse_date(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def time_to_minutes(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def validate_personal_info(data: Any) -> Errors:
    if not isinstance(data, dict):
        return [_error("personalInfo", "Personal information is required")]

    errors = []
    if data.get("email"):
        try:
            validate_email(data["email"], check_deliverability=False)
        except EmailNotValidError:
            errors.append(_error("email", "Invalid email format"))

    if data.get("phone") and not PHONE_PATTERN.match(str(data["phone"])):
        errors.append(_error("phone", "Invalid phone number format"))

    for field, label in (("first_name", "First name"), ("last_name", "Last name")):
        if field in data and len(_text(data[field])) < 2:
            errors.append(_error(field, f"{label} must be at least 2 characters long"))

    if "name" in data and len(_text(data["name"])) < 2:
        errors.append(_error("name", "Name must be at least 2 characters long"))

    return errors


def validate_medical_license(data: Any) -> Errors:
    if not isinstance(data, dict):
        return [_error("medicalLicense", "Medical license information is required")]

    errors = []
    if len(_text(data.get("license_number"))) < 5:
        errors.append(_error("license_number", "License number must be at least 5 characters long"))

    if len(_text(data.get("issuing_authority"))) < 3:
        errors.append(_error("issuing_authority", "Issuing authority is required"))

    issue_date = _parse_date(data.get("issue_date"))
    expiry_date = _parse_date(data.get("expiry_date"))
    if not issue_date:
        errors.append(_error("issue_date", "Issue date is required"))
    if not expiry_date:
        errors.append(_error("expiry_date", "Expiry date is required"))
    elif expiry_date <= datetime.now(timezone.utc):
        errors.append(_error("expiry_date", "License expiry date must be in the future"))

    if issue_date and expiry_date and issue_date >= expiry_date:
        errors.append(_error("issue_date", "Issue date must be before expiry date"))

    return errors


def validate_specializations(data: Any) -> Errors:
    if not isinstance(data, list):
        return [_error("specializations", "Specializations must be an array")]

    errors = []
    if not data:
        errors.append(_error("specializations", "At least one specialization is required"))
    if len(data) > MAX_SPECIALIZATIONS:
        errors.append(_error("specializations", f"Maximum {MAX_SPECIALIZATIONS} specializations allowed"))

    lowered = [s.lower() for s in data if isinstance(s, str)]
    if len(set(lowered)) != len(lowered):
        errors.append(_error("specializations", "Duplicate specializations are not allowed"))

    for index, specialization in enumerate(data):
        if not _text(specialization):
            errors.append(_error(f"specializations[{index}]", "Specialization cannot be empty"))
        elif specialization not in VALID_SPECIALIZATIONS:
            errors.append(_error(
                f"specializations[{index}]",
                f"Invalid specialization: {specialization}. Must be one of the predefined options.",
            ))
    return errors


def validate_qualifications(data: Any) -> Errors:
    if not isinstance(data, list):
        return [_error("qualifications", "Qualifications must be an array")]

    errors = []
    if not data:
        errors.append(_error("qualifications", "At least one qualification is required"))
    if len(data) > MAX_QUALIFICATIONS:
        errors.append(_error("qualifications", f"Maximum {MAX_QUALIFICATIONS} qualifications allowed"))

    keys = [
        (_text(q.get("degree")).lower(), _text(q.get("institution")).lower(), str(q.get("year")))
        for q in data if isinstance(q, dict)
    ]
    if len(set(keys)) != len(keys):
        errors.append(_error("qualifications", "Duplicate qualifications are not allowed"))

    current_year = datetime.now(timezone.utc).year
    for index, qual in enumerate(data):
        if not isinstance(qual, dict):
            errors.append(_error(f"qualifications[{index}]", "Qualification must be an object"))
            continue

        degree = _text(qual.get("degree"))
        if len(degree) < 2:
            errors.append(_error(f"qualifications[{index}].degree", "Degree is required and must be at least 2 characters"))
        elif len(degree) > 100:
            errors.append(_error(f"qualifications[{index}].degree", "Degree must be less than 100 characters"))

        institution = _text(qual.get("institution"))
        if len(institution) < 3:
            errors.append(_error(
                f"qualifications[{index}].institution", "Institution is required and must be at least 3 characters"
            ))
        elif len(institution) > 200:
            errors.append(_error(f"qualifications[{index}].institution", "Institution name must be less than 200 characters"))

        year = qual.get("year")
        if not isinstance(year, int) or isinstance(year, bool):
            errors.append(_error(f"qualifications[{index}].year", "Valid graduation year is required"))
        elif not 1950 <= year <= current_year:
            errors.append(_error(
                f"qualifications[{index}].year", f"Graduation year must be between 1950 and {current_year}"
            ))

        if len(_text(qual.get("specialization"))) > 100:
            errors.append(_error(
                f"qualifications[{index}].specialization", "Specialization must be less than 100 characters"
            ))
    return errors


def validate_consultation_modes(data: Any) -> Errors:
    if not isinstance(data, dict):
        return [_error("consultationModes", "Consultation modes configuration is required")]

    errors = []
    if not any(isinstance(mode, dict) and mode.get("available") is True for mode in data.values()):
        errors.append(_error("consultationModes", "At least one consultation mode must be available"))

    for name in CONSULTATION_MODES:
        mode = data.get(name)
        if not isinstance(mode, dict) or not mode.get("available"):
            continue

        if not _is_number(mode.get("fee")) or mode["fee"] < 0:
            errors.append(_error(f"consultationModes.{name}.fee", "Fee must be a non-negative number"))

        if name == "email":
            response_time = mode.get("response_time")
            if not _is_number(response_time) or not 1 <= response_time <= 72:
                errors.append(_error(
                    f"consultationModes.{name}.response_time", "Response time must be between 1 and 72 hours"
                ))
        else:
            duration = mode.get("duration")
            if not _is_number(duration) or not 15 <= duration <= 180:
                errors.append(_error(
                    f"consultationModes.{name}.duration", "Duration must be between 15 and 180 minutes"
                ))
    return errors


def _validate_range(field: str, start: Any, end: Any) -> Errors:
    errors = []
    start_ok = isinstance(start, str) and bool(TIME_PATTERN.match(start))
    end_ok = isinstance(end, str) and bool(TIME_PATTERN.match(end))
    if not start_ok:
        errors.append(_error(f"{field}.start", "Start time must be in HH:MM format"))
    if not end_ok:
        errors.append(_error(f"{field}.end", "End time must be in HH:MM format"))
    if start_ok and end_ok and time_to_minutes(end) <= time_to_minutes(start):
        errors.append(_error(field, "End time must be after start time"))
    return errors


def validate_working_hours(data: Any) -> Errors:
    if not isinstance(data, dict):
        return [_error("workingHours", "Working hours configuration is required")]

    errors = []
    available_days = 0
    for day in WEEKDAYS:
        config = data.get(day)
        if not isinstance(config, dict) or not config.get("available"):
            continue
        available_days += 1

        slots = config.get("slots")
        if isinstance(slots, list):
            if not slots:
                errors.append(_error(
                    f"workingHours.{day}.slots", "At least one time slot is required when day is available"
                ))
            for index, slot in enumerate(slots):
                slot = slot if isinstance(slot, dict) else {}
                errors.extend(_validate_range(f"workingHours.{day}.slots[{index}]", slot.get("start"), slot.get("end")))
        else:
            errors.extend(_validate_range(f"workingHours.{day}", config.get("start"), config.get("end")))

    if available_days == 0:
        errors.append(_error("workingHours", "At least one day must be available"))
    return errors


def validate_availability(data: Any) -> Errors:
    if not isinstance(data, dict):
        return [_error("availability", "Availability configuration is required")]

    errors = []
    if "working_hours" in data:
        errors.extend(validate_working_hours(data["working_hours"]))

    bounds = (
        ("time_slot_duration", 15, 120, "Time slot duration must be between 15 and 120 minutes"),
        ("break_between_slots", 0, 60, "Break between slots must be between 0 and 60 minutes"),
        ("max_advance_booking_days", 1, 365, "Max advance booking days must be between 1 and 365"),
    )
    for field, low, high, message in bounds:
        if field in data:
            value = data[field]
            if not _is_number(value) or not low <= value <= high:
                errors.append(_error(field, message))
    return errors


def validate_experience(data: Any) -> Errors:
    if not isinstance(data, dict):
        return [_error("experience", "Experience information is required")]

    errors = []
    total_years = data.get("total_years")
    if not _is_number(total_years) or not 0 <= total_years <= 60:
        errors.append(_error("total_years", "Total years must be between 0 and 60"))

    workplaces = data.get("workplace")
    if isinstance(workplaces, list):
        for index, work in enumerate(workplaces):
            work = work if isinstance(work, dict) else {}
            if len(_text(work.get("hospital_name"))) < 2:
                errors.append(_error(f"workplace[{index}].hospital_name", "Hospital/workplace name is required"))
            if len(_text(work.get("position"))) < 2:
                errors.append(_error(f"workplace[{index}].position", "Position is required"))

            start = _parse_date(work.get("start_date"))
            end = _parse_date(work.get("end_date"))
            if start and end and start >= end:
                errors.append(_error(f"workplace[{index}]", "Start date must be before end date"))
    return errors


def validate_bio(data: Any) -> Errors:
    if data is None or data == "":
        return []
    if not isinstance(data, str):
        return [_error("bio", "Bio must be a string")]

    errors = []
    if len(data) > 1000:
        errors.append(_error("bio", "Bio must not exceed 1000 characters"))
    if len(data.strip()) < 10:
        errors.append(_error("bio", "Bio must be at least 10 characters long"))
    return errors


def validate_languages(data: Any) -> Errors:
    if not isinstance(data, list):
        return [_error("languages", "Languages must be an array")]

    errors = []
    if not data:
        errors.append(_error("languages", "At least one language is required"))

    hashable = [lang for lang in data if isinstance(lang, str)]
    if len(set(hashable)) != len(hashable):
        errors.append(_error("languages", "Duplicate languages are not allowed"))

    for index, lang in enumerate(data):
        if len(_text(lang)) < 2:
            errors.append(_error(f"languages[{index}]", "Language name must be at least 2 characters long"))
    return errors


def validate_notifications(data: Any) -> Errors:
    if not isinstance(data, dict):
        return [_error("notifications", "Notification preferences are required")]

    return [
        _error(f"notifications.{flag}", "Notification preference must be a boolean value")
        for flag in NOTIFICATION_FLAGS
        if flag in data and not isinstance(data[flag], bool)
    ]


SECTION_VALIDATORS = {
    "personalInfo": validate_personal_info,
    "medicalLicense": validate_medical_license,
    "specializations": validate_specializations,
    "qualifications": validate_qualifications,
    "experience": validate_experience,
    "consultationModes": validate_consultation_modes,
    "workingHours": validate_working_hours,
    "availability": validate_availability,
    "bio": validate_bio,
    "languages": validate_languages,
    "notifications": validate_notifications,
    "notificationPreferences": validate_notifications,
}


def validate_section(section: str, data: Any) -> Errors:
    validator = SECTION_VALIDATORS.get(section)
    if validator is None:
        return [_error("section", "Invalid profile section")]
    return validator(data)


def business_rule_review(profile: Dict[str, Any]) -> Dict[str, Errors]:
    """
    Activation checks over a whole stored profile

    Returns:
        Dict with "errors" blocking activation and advisory "warnings"
    """
    errors: Errors = []
    warnings: Errors = []
    now = datetime.now(timezone.utc)

    expiry = _parse_date((profile.get("medical_license") or {}).get("expiry_date"))
    if expiry:
        if expiry <= now:
            errors.append(_error(
                "medical_license.expiry_date",
                "Medical license has expired. Profile cannot be activated until license is renewed.",
            ))
        elif expiry <= now + timedelta(days=90):
            errors.append(_error(
                "medical_license.expiry_date",
                "Medical license expires within 3 months. Please renew immediately to avoid service interruption.",
            ))
        elif expiry <= now + timedelta(days=182):
            warnings.append(_error(
                "medical_license.expiry_date", "Medical license expires within 6 months. Consider renewing soon."
            ))

    for mode, config in (profile.get("consultation_modes") or {}).items():
        if not isinstance(config, dict) or not config.get("available") or not _is_number(config.get("fee")):
            continue
        if config["fee"] < 10:
            warnings.append(_error(
                f"consultation_modes.{mode}.fee",
                f"{mode} consultation fee ({config['fee']}) is below market average. Consider reviewing pricing.",
            ))
        elif config["fee"] > 1000:
            warnings.append(_error(
                f"consultation_modes.{mode}.fee",
                f"{mode} consultation fee ({config['fee']}) is significantly above market average.",
            ))

    working_hours = profile.get("working_hours") or {}
    available_days = [day for day in WEEKDAYS if (working_hours.get(day) or {}).get("available")]
    if not available_days:
        errors.append(_error("working_hours", "At least one day must be available for consultations to activate profile."))
    elif len(available_days) < 3:
        warnings.append(_error(
            "working_hours",
            "Consider being available more days per week for better patient access and higher booking rates.",
        ))

    for day in available_days:
        schedule = working_hours[day]
        start, end = schedule.get("start"), schedule.get("end")
        if not (isinstance(start, str) and isinstance(end, str) and TIME_PATTERN.match(start) and TIME_PATTERN.match(end)):
            continue
        hours = (time_to_minutes(end) - time_to_minutes(start)) / 60
        if hours > 16:
            errors.append(_error(
                f"working_hours.{day}", f"{day} working hours ({hours:g} hours) exceed platform maximum of 16 hours per day."
            ))
        elif hours > 12:
            warnings.append(_error(
                f"working_hours.{day}", f"{day} working hours ({hours:g} hours) are quite long. Consider work-life balance."
            ))

    missing = [
        name for name, key in (
            ("medicalLicense", "medical_license"),
            ("specializations", "specializations"),
            ("qualifications", "qualifications"),
        )
        if not profile.get(key)
    ]
    if missing:
        errors.append(_error("profile", f"Profile missing required sections for activation: {', '.join(missing)}"))

    if len(_text(profile.get("bio"))) < 50:
        warnings.append(_error(
            "bio",
            "A detailed bio (at least 50 characters) helps patients understand your expertise and improves booking rates.",
        ))

    if not profile.get("languages"):
        warnings.append(_error(
            "languages", "Adding supported languages helps patients find you and improves accessibility."
        ))

    return {"errors": errors, "warnings": warnings}
