import unittest
from datetime import datetime, timedelta, timezone

from telehealth.services.profile_validation import (
    business_rule_review,
    validate_availability,
    validate_bio,
    validate_consultation_modes,
    validate_experience,
    validate_languages,
    validate_medical_license,
    validate_notifications,
    validate_personal_info,
    validate_qualifications,
    validate_section,
    validate_specializations,
    validate_working_hours,
)
from tests.helpers import doctor_profile


def fields(errors):
    return [e["field"] for e in errors]


def in_days(days):
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


class TestSectionValidators(unittest.TestCase):
    def test_personal_info(self):
        assert validate_personal_info({"name": "Asha Rao", "email": "asha@clinic.test", "phone": "+91 98765 43210"}) == []
        errors = validate_personal_info({"name": "A", "email": "not-an-email", "phone": "12"})
        assert set(fields(errors)) == {"name", "email", "phone"}
        assert fields(validate_personal_info("nope")) == ["personalInfo"]

    def test_medical_license(self):
        ok = {
            "license_number": "MCI-12345",
            "issuing_authority": "MCI",
            "issue_date": in_days(-1000),
            "expiry_date": in_days(1000),
        }
        assert validate_medical_license(ok) == []

        expired = dict(ok, expiry_date=in_days(-1))
        assert "expiry_date" in fields(validate_medical_license(expired))

        errors = validate_medical_license({"license_number": "123"})
        assert set(fields(errors)) == {"license_number", "issuing_authority", "issue_date", "expiry_date"}

    def test_specializations(self):
        assert validate_specializations(["Cardiology", "Neurology"]) == []
        assert fields(validate_specializations([])) == ["specializations"]
        errors = validate_specializations(["Cardiology", "cardiology"])
        assert any("Duplicate" in e["message"] for e in errors)
        assert fields(validate_specializations(["Astrology"])) == ["specializations[0]"]
        assert any("Maximum" in e["message"] for e in validate_specializations(["Cardiology"] * 6))

    def test_qualifications(self):
        assert validate_qualifications([{"degree": "MBBS", "institution": "AIIMS", "year": 2008}]) == []
        errors = validate_qualifications([{"degree": "M", "institution": "AB", "year": 1900}])
        assert set(fields(errors)) == {
            "qualifications[0].degree", "qualifications[0].institution", "qualifications[0].year",
        }
        duplicate = {"degree": "MBBS", "institution": "AIIMS", "year": 2008}
        assert any("Duplicate" in e["message"] for e in validate_qualifications([duplicate, dict(duplicate)]))

        errors = validate_qualifications([{"degree": "MBBS", "institution": "AIIMS", "year": [2008]}])
        assert fields(errors) == ["qualifications[0].year"]

    def test_consultation_modes(self):
        assert validate_consultation_modes({"video": {"available": True, "fee": 500, "duration": 30}}) == []
        errors = validate_consultation_modes({"video": {"available": False}})
        assert fields(errors) == ["consultationModes"]
        errors = validate_consultation_modes({
            "video": {"available": True, "fee": -1, "duration": 5},
            "email": {"available": True, "fee": 100, "response_time": 100},
        })
        assert set(fields(errors)) == {
            "consultationModes.video.fee", "consultationModes.video.duration", "consultationModes.email.response_time",
        }

    def test_working_hours(self):
        assert validate_working_hours({"monday": {"available": True, "start": "09:00", "end": "17:00"}}) == []
        assert fields(validate_working_hours({"monday": {"available": False}})) == ["workingHours"]
        errors = validate_working_hours({"monday": {"available": True, "start": "18:00", "end": "09:00"}})
        assert fields(errors) == ["workingHours.monday"]
        errors = validate_working_hours({"tuesday": {"available": True, "slots": [{"start": "9am", "end": "10:00"}]}})
        assert fields(errors) == ["workingHours.tuesday.slots[0].start"]

    def test_availability_bounds(self):
        assert validate_availability({"time_slot_duration": 30, "break_between_slots": 5}) == []
        errors = validate_availability({"time_slot_duration": 5, "max_advance_booking_days": 400})
        assert set(fields(errors)) == {"time_slot_duration", "max_advance_booking_days"}

    def test_experience(self):
        assert validate_experience({"total_years": 12}) == []
        errors = validate_experience({
            "total_years": 70,
            "workplace": [{"hospital_name": "", "position": "Resident",
                           "start_date": "2020-01-01", "end_date": "2019-01-01"}],
        })
        assert set(fields(errors)) == {"total_years", "workplace[0].hospital_name", "workplace[0]"}

    def test_bio_and_languages(self):
        assert validate_bio("") == []
        assert fields(validate_bio("short")) == ["bio"]
        assert fields(validate_bio("x" * 1001)) == ["bio"]
        assert validate_languages(["English"]) == []
        assert fields(validate_languages([])) == ["languages"]
        assert "languages[1]" in fields(validate_languages(["English", "E"]))

    def test_notifications_flags_must_be_booleans(self):
        assert validate_notifications({"email": True, "sms": False}) == []
        assert fields(validate_notifications({"email": "yes"})) == ["notifications.email"]

    def test_unknown_section(self):
        assert fields(validate_section("hobbies", {})) == ["section"]


class TestBusinessRuleReview(unittest.TestCase):
    def test_complete_profile_can_activate(self):
        profile = doctor_profile(medical_license={
            "license_number": "MCI-12345", "issuing_authority": "MCI", "expiry_date": in_days(1000),
        })
        review = business_rule_review(profile)
        assert review["errors"] == []

    def test_expiring_license_and_pricing(self):
        profile = doctor_profile(
            medical_license={"license_number": "MCI-12345", "issuing_authority": "MCI", "expiry_date": in_days(30)},
            consultation_modes={"video": {"available": True, "fee": 5000, "duration": 30}},
        )
        review = business_rule_review(profile)
        assert "medical_license.expiry_date" in fields(review["errors"])
        assert "consultation_modes.video.fee" in fields(review["warnings"])

    def test_long_days_and_missing_sections(self):
        profile = doctor_profile(
            working_hours={"monday": {"available": True, "start": "05:00", "end": "23:00"}},
            qualifications=[],
        )
        review = business_rule_review(profile)
        assert "working_hours.monday" in fields(review["errors"])
        assert "profile" in fields(review["errors"])
        # a single working day is only a warning
        assert "working_hours" in fields(review["warnings"])


if __name__ == "__main__":
    unittest.main()
