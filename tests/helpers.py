"""Shared fixtures: a scripted chat model and seed data for the in-memory store."""
from datetime import timedelta

from langchain_core.messages import AIMessage

from telehealth.agent.chatbot_ai import chatbot_ai
from telehealth.services.base_store import NOTIFICATIONS, get_store, utcnow
from telehealth.services.memory_store import MemoryStore
from telehealth.services.rate_limiter import rate_limiter


class FakeStructuredModel:
    def __init__(self, owner, schema):
        self.owner = owner
        self.schema = schema

    async def ainvoke(self, prompt):
        self.owner.prompts.append((self.schema.__name__, prompt))
        response = self.owner.responses.get(self.schema.__name__)
        if isinstance(response, Exception):
            raise response
        return dict(response or {})


class FakeChatModel:
    """Answers structured calls from a {schema name: response} map"""

    def __init__(self, responses=None, reply="Connected"):
        self.responses = responses or {}
        self.reply = reply
        self.prompts = []

    def with_structured_output(self, schema):
        return FakeStructuredModel(self, schema)

    async def ainvoke(self, prompt):
        return AIMessage(content=self.reply)


class IndexStrictStore(MemoryStore):
    """Rejects what Firestore rejects without composite indexes, and counts full reads"""

    def __init__(self):
        super().__init__()
        self.unfiltered_reads = 0

    async def query(self, collection, filters=None, order_by=None, descending=False, limit=None):
        if order_by and any(field != order_by for field, _, _ in filters or []):
            raise AssertionError(f"{collection}: filter plus order_by on {order_by} needs a composite index")
        if not filters:
            self.unfiltered_reads += 1
        return await super().query(collection, filters, order_by, descending, limit)


HEALTHCARE_REPLY = {
    "message": "Palpitations can have many causes. A cardiologist can help.",
    "doctor_recommendations": [
        {"specialty": "Cardiology", "reason": "Heart rhythm concerns", "urgency": "medium", "what_to_expect": "ECG"},
    ],
    "self_care_tips": ["Limit caffeine"],
    "red_flags": ["Fainting"],
    "disclaimer": "Not medical advice.",
    "confidence_level": "medium",
}

SYMPTOM_REPLY = {
    "symptom_analysis": {
        "primary_symptoms": ["headache"],
        "associated_symptoms": [],
        "possible_causes": ["tension"],
        "severity_assessment": "moderate",
        "body_systems_involved": ["nervous"],
    },
    "recommendations": {
        "immediate_actions": ["Rest"],
        "when_to_see_doctor": "If it persists for more than 3 days",
        "specialist_needed": "Neurology",
        "self_care_measures": ["Hydrate"],
        "monitoring_advice": ["Track frequency"],
    },
    "red_flags": ["Sudden worst headache"],
    "timeline": {"if_symptoms_worsen": "Seek care", "follow_up_timing": "1 week"},
    "disclaimer": "Not a diagnosis.",
    "confidence": "medium",
}

EDUCATION_REPLY = {
    "overview": "Diabetes affects how the body uses sugar.",
    "key_points": ["Common", "Manageable"],
}

TIPS_REPLY = {
    "daily_health_tips": ["Walk 30 minutes"],
    "nutrition_recommendations": ["More vegetables"],
}


def fake_model(**overrides) -> FakeChatModel:
    responses = {
        "HealthcareResponse": HEALTHCARE_REPLY,
        "SymptomAnalysis": SYMPTOM_REPLY,
        "HealthEducation": EDUCATION_REPLY,
        "HealthTips": TIPS_REPLY,
    }
    responses.update(overrides)
    return FakeChatModel(responses)


def reset_state(model=None):
    """Empty store, fresh rate limits, scripted model"""
    get_store().clear()
    rate_limiter.reset()
    chatbot_ai.set_model(model if model is not None else fake_model())


def doctor_profile(doctor_id="doc1", **overrides) -> dict:
    profile = {
        "user_id": doctor_id,
        "name": "Asha Rao",
        "email": f"{doctor_id}@clinic.test",
        "specializations": ["Cardiology"],
        "languages": ["English", "Hindi"],
        "bio": "Cardiologist with a focus on preventive heart care.",
        "experience": {"total_years": 12, "workplace": []},
        "consultation_modes": {
            "video": {"available": True, "fee": 500, "duration": 30},
            "chat": {"available": False, "fee": 0, "duration": 15},
        },
        "consultation_fee": 500,
        "working_hours": {
            day: {"available": True, "start": "09:00", "end": "17:00"}
            for day in ("monday", "tuesday", "wednesday", "thursday", "friday")
        },
        "medical_license": {"license_number": "MCI-12345", "issuing_authority": "MCI"},
        "qualifications": [{"degree": "MBBS", "institution": "AIIMS", "year": 2008}],
        "rating": {"average": 4.5, "count": 20},
        "city": "Mumbai",
        "gender": "female",
        "verified": True,
        "accepting_patients": True,
    }
    profile.update(overrides)
    return profile


async def seed_doctor(doctor_id="doc1", **overrides) -> dict:
    profile = doctor_profile(doctor_id, **overrides)
    store = get_store()
    await store.save_doctor(doctor_id, dict(profile))
    await store.save_user(doctor_id, {"role": "doctor", "name": profile["name"], "email": profile["email"]})
    return profile


async def seed_user(user_id, role="patient", **profile) -> None:
    await get_store().save_user(user_id, {"role": role, "name": user_id.title(), "profile": profile})


async def seed_notification(user_id="p1", age=timedelta(0), **fields) -> str:
    doc = {
        "user_id": user_id,
        "type": "appointment_reminder",
        "category": "appointment",
        "priority": "medium",
        "title": "Appointment tomorrow",
        "message": "Dr. Rao at 10:00",
        "data": {},
        "created_at": utcnow() - age,
        "read_at": None,
        "action_taken": None,
        "dismissed": False,
        "delivery_channels": ["websocket"],
    }
    doc.update(fields)
    return await get_store().add_document(NOTIFICATIONS, doc)
