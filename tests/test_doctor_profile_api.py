import asyncio
import unittest

from fastapi.testclient import TestClient

from telehealth.app import app
from tests.helpers import reset_state, seed_doctor, seed_user

DOCTOR = {"Authorization": "Bearer doc1"}
OTHER_DOCTOR = {"Authorization": "Bearer doc2"}
PATIENT = {"Authorization": "Bearer p1"}


class TestDoctorProfileApi(unittest.TestCase):
    def setUp(self):
        reset_state()
        asyncio.run(seed_doctor("doc1"))
        asyncio.run(seed_doctor("doc2", name="Ravi Kumar"))
        asyncio.run(seed_user("p1"))
        self.client = TestClient(app)
        self.client.__enter__()

    def tearDown(self):
        self.client.__exit__(None, None, None)

    def update(self, section, data, headers=DOCTOR, doctor_id="doc1"):
        return self.client.put(
            f"/doctors/{doctor_id}/profile/section", headers=headers, json={"section": section, "data": data}
        )

    def test_get_profile(self):
        response = self.client.get("/doctors/doc1/profile?include_stats=true", headers=PATIENT)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["name"] == "Asha Rao"
        assert data["profile_completion_percentage"] == 95
        assert data["statistics"]["total_reviews"] == 20

        response = self.client.get("/doctors/nobody/profile", headers=PATIENT)
        assert response.status_code == 404
        assert response.json()["message"] == "Doctor profile not found"

    def test_update_section_merges_objects(self):
        response = self.update("consultationModes", {"chat": {"available": True, "fee": 250, "duration": 20}})
        assert response.status_code == 200
        body = response.json()
        assert body["success"]
        assert body["section"] == "consultationModes"
        assert body["data"]["video"]["fee"] == 500
        assert body["data"]["chat"]["fee"] == 250

        profile = self.client.get("/doctors/doc1/profile", headers=DOCTOR).json()["data"]
        assert profile["consultation_fee"] == 250

    def test_personal_info_section(self):
        response = self.update("personalInfo", {"first_name": "Asha", "last_name": "Iyer", "phone": "+91 98765 43210"})
        assert response.status_code == 200
        data = self.client.get("/doctors/doc1/profile/section/personalInfo", headers=DOCTOR).json()["data"]
        assert data["last_name"] == "Iyer"
        assert data["phone"] == "+91 98765 43210"
        assert self.client.get("/doctors/doc1/profile", headers=DOCTOR).json()["data"]["name"] == "Asha Iyer"

    def test_validation_errors_are_listed(self):
        response = self.update("workingHours", {"monday": {"available": True, "start": "18:00", "end": "08:00"}})
        assert response.status_code == 400
        body = response.json()
        assert body["message"] == "Validation failed"
        assert body["error_type"] == "validation"
        assert body["errors"] == [{"field": "workingHours.monday", "message": "End time must be after start time"}]

        response = self.update("hobbies", ["golf"])
        assert response.status_code == 400

        response = self.update("qualifications", [{"degree": "MBBS", "institution": "AIIMS", "year": [2008]}])
        assert response.status_code == 400
        assert response.json()["errors"] == [
            {"field": "qualifications[0].year", "message": "Valid graduation year is required"},
        ]

    def test_other_doctors_cannot_edit(self):
        response = self.update("bio", "A perfectly reasonable biography.", headers=OTHER_DOCTOR)
        assert response.status_code == 403
        assert response.json()["message"] == "You can only update your own profile"
        assert self.client.get("/doctors/doc1/profile/history", headers=OTHER_DOCTOR).status_code == 403

    def test_history_and_review(self):
        self.update("languages", ["English", "Marathi"])
        history = self.client.get("/doctors/doc1/profile/history", headers=DOCTOR).json()["data"]
        assert len(history) == 1
        assert history[0]["changes"] == ["English", "Marathi"]
        assert history[0]["previous_values"] == ["English", "Hindi"]

        review = self.client.get("/doctors/doc1/profile/review", headers=DOCTOR).json()["data"]
        assert review["can_activate_profile"] is True

    def test_dashboard_is_for_doctors(self):
        assert self.client.get("/doctor/api/dashboard", headers=PATIENT).status_code == 403

        body = self.client.get("/doctor/api/dashboard", headers=DOCTOR).json()
        assert body["doctor"]["name"] == "Asha Rao"
        assert body["profile_completion_percentage"] == 95
        assert body["notification_counts"]["notifications"] == 0
        assert body["statistics"]["profile_updates"] == 0


if __name__ == "__main__":
    unittest.main()
