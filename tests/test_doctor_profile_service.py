import unittest

from telehealth.errors import ForbiddenError, NotFoundError, ValidationFailedError
from telehealth.models.chatbot import DoctorRecommendationRequest
from telehealth.models.doctor import ProfileSection
from telehealth.services.base_store import CHAT_MESSAGES, get_store
from telehealth.services.chatbot_service import chatbot_service
from telehealth.services.doctor_profile_service import (
    DoctorProfileService,
    apply_section,
    calculate_profile_completion,
    doctor_profile_service,
    extract_section,
)
from tests.helpers import IndexStrictStore, doctor_profile, reset_state, seed_doctor

OWNER = {"id": "doc1", "role": "doctor"}
STRANGER = {"id": "doc2", "role": "doctor"}
ADMIN = {"id": "root", "role": "admin"}


class TestProfileHelpers(unittest.TestCase):
    def test_completion_weights(self):
        assert calculate_profile_completion({}) == 0
        # everything but a profile image
        assert calculate_profile_completion(doctor_profile()) == 95
        assert calculate_profile_completion(doctor_profile(profile_image="https://img.test/a.png")) == 100

    def test_zero_years_experience_counts(self):
        assert calculate_profile_completion({"experience": {"total_years": 0}}) == 10
        assert calculate_profile_completion({"bio": "too short"}) == 0

    def test_personal_info_splits_name(self):
        info = extract_section({"name": "Asha Devi Rao"}, ProfileSection.PERSONAL_INFO)
        assert info["first_name"] == "Asha"
        assert info["last_name"] == "Devi Rao"

    def test_object_sections_merge_lists_replace(self):
        profile = doctor_profile()
        updates = apply_section(profile, ProfileSection.EXPERIENCE, {"total_years": 15})
        assert updates["experience"] == {"total_years": 15, "workplace": []}

        updates = apply_section(profile, ProfileSection.LANGUAGES, ["Tamil"])
        assert updates == {"languages": ["Tamil"]}

    def test_consultation_fee_is_cheapest_available_mode(self):
        updates = apply_section(doctor_profile(), ProfileSection.CONSULTATION_MODES, {
            "chat": {"available": True, "fee": 200, "duration": 15},
        })
        assert updates["consultation_modes"]["video"]["fee"] == 500
        assert updates["consultation_fee"] == 200

    def test_name_rebuilt_from_parts(self):
        updates = apply_section({"first_name": "Asha", "last_name": "Rao"}, ProfileSection.PERSONAL_INFO,
                                {"last_name": "Iyer"})
        assert updates["name"] == "Asha Iyer"


class TestDoctorProfileService(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        reset_state()
        await seed_doctor("doc1")

    async def test_full_profile_has_computed_fields(self):
        profile = await doctor_profile_service.get_full_profile("doc1", include_stats=True)
        assert profile["profile_completion_percentage"] == 95
        assert profile["is_fully_setup"] is False
        assert profile["statistics"]["average_rating"] == 4.5
        assert profile["statistics"]["total_reviews"] == 20

    async def test_missing_doctor(self):
        with self.assertRaises(NotFoundError):
            await doctor_profile_service.get_full_profile("nobody")

    async def test_update_section_saves_and_logs(self):
        result = await doctor_profile_service.update_section(
            "doc1", ProfileSection.BIO, "Interventional cardiologist, 12 years in practice.", OWNER
        )
        assert result["success"]
        assert result["section"] == "bio"
        assert result["data"] == "Interventional cardiologist, 12 years in practice."

        stored = await get_store().get_doctor("doc1")
        assert stored["bio"].startswith("Interventional")

        history = await doctor_profile_service.get_change_history("doc1", OWNER)
        assert len(history) == 1
        assert history[0]["section"] == "bio"
        assert history[0]["previous_values"] == "Cardiologist with a focus on preventive heart care."
        assert history[0]["user_id"] == "doc1"

    async def test_only_owner_or_admin_can_edit(self):
        with self.assertRaises(ForbiddenError):
            await doctor_profile_service.update_section("doc1", ProfileSection.LANGUAGES, ["Tamil"], STRANGER)
        with self.assertRaises(ForbiddenError):
            await doctor_profile_service.get_change_history("doc1", STRANGER)

        result = await doctor_profile_service.update_section("doc1", ProfileSection.LANGUAGES, ["Tamil"], ADMIN)
        assert result["data"] == ["Tamil"]

    async def test_invalid_section_data_is_rejected(self):
        with self.assertRaises(ValidationFailedError) as ctx:
            await doctor_profile_service.update_section("doc1", ProfileSection.SPECIALIZATIONS, [], OWNER)
        assert ctx.exception.errors[0]["field"] == "specializations"

        stored = await get_store().get_doctor("doc1")
        assert stored["specializations"] == ["Cardiology"]

    async def test_chat_referrals_are_counted(self):
        request = DoctorRecommendationRequest(specialty="Cardiology", search_type="database")
        await chatbot_service.doctor_recommendations({"id": "p1"}, request)
        store = get_store()
        await store.add_document(CHAT_MESSAGES, {
            "user_id": "p2",
            "message_type": "general",
            "bot_response": {"available_doctors": [{"id": "doc1"}]},
        })
        stats = await doctor_profile_service.get_doctor_statistics("doc1")
        assert stats["chat_referrals"] == 1
        assert stats["profile_updates"] == 0

    async def test_review_profile(self):
        review = await doctor_profile_service.review_profile("doc1")
        assert review["can_activate_profile"] is True
        assert review["profile_completion_percentage"] == 95

        await get_store().save_doctor("doc1", {"working_hours": {}})
        review = await doctor_profile_service.review_profile("doc1")
        assert review["can_activate_profile"] is False

    async def test_history_and_statistics_use_single_field_queries(self):
        store = IndexStrictStore()
        await store.save_doctor("doc1", doctor_profile("doc1"))
        service = DoctorProfileService(store)
        await service.update_section("doc1", ProfileSection.LANGUAGES, ["English"], OWNER)
        await service.update_section("doc1", ProfileSection.LANGUAGES, ["English", "Tamil"], OWNER)

        history = await service.get_change_history("doc1", OWNER)
        assert len(history) == 2
        assert history[0]["timestamp"] >= history[1]["timestamp"]
        assert len(await service.get_change_history("doc1", OWNER, limit=1)) == 1

        stats = await service.get_doctor_statistics("doc1")
        assert stats["profile_updates"] == 2
        assert stats["chat_referrals"] == 0
        assert store.unfiltered_reads == 0


if __name__ == "__main__":
    unittest.main()
