import json
import logging
from datetime import datetime, timezone
from typing import Any, Literal, Optional, TypedDict

from langchain.chat_models import init_chat_model
from langchain_core.exceptions import OutputParserException

from telehealth.config import settings
from telehealth.models.chatbot import Recommendation

logger = logging.getLogger(__name__)

# --- MODEL PROFILES ---
# One chat model per purpose; lower temperature where precision matters
MODEL_PROFILES = {
    "general": {"temperature": 0.3, "max_tokens": 4096},
    "medical": {"temperature": 0.2, "max_tokens": 6144},
    "emergency": {"temperature": 0.1, "max_tokens": 2048},
}

MEDICAL_SPECIALTIES = {
    "cardiology": {
        "keywords": ["heart", "cardiac", "blood pressure", "chest pain", "palpitations", "hypertension", "cholesterol"],
        "conditions": ["hypertension", "heart disease", "arrhythmia", "heart attack", "stroke"],
        "description": "Specialists in heart and cardiovascular system disorders",
    },
    "dermatology": {
        "keywords": ["skin", "rash", "acne", "mole", "eczema", "psoriasis", "dermatitis"],
        "conditions": ["acne", "eczema", "psoriasis", "skin cancer", "dermatitis"],
        "description": "Specialists in skin, hair, and nail conditions",
    },
    "gastroenterology": {
        "keywords": ["stomach", "digestive", "nausea", "vomiting", "diarrhea", "constipation", "acid reflux"],
        "conditions": ["gastritis", "acid reflux", "IBS", "ulcer", "liver disease"],
        "description": "Specialists in digestive system disorders",
    },
    "neurology": {
        "keywords": ["brain", "neurological", "headache", "migraine", "seizure", "memory", "dementia"],
        "conditions": ["migraine", "epilepsy", "alzheimer", "parkinson", "stroke"],
        "description": "Specialists in nervous system and brain disorders",
    },
    "orthopedics": {
        "keywords": ["bone", "joint", "muscle", "fracture", "arthritis", "back pain", "knee pain"],
        "conditions": ["arthritis", "fracture", "osteoporosis", "joint pain", "back pain"],
        "description": "Specialists in bone, joint, and muscle conditions",
    },
    "psychiatry": {
        "keywords": ["mental health", "depression", "anxiety", "stress", "mood", "sleep", "panic"],
        "conditions": ["depression", "anxiety", "bipolar", "PTSD", "insomnia"],
        "description": "Specialists in mental health and behavioral disorders",
    },
    "pediatrics": {
        "keywords": ["child", "children", "infant", "baby", "vaccination", "growth", "development"],
        "conditions": ["childhood illnesses", "developmental issues", "vaccinations", "growth problems"],
        "description": "Specialists in children's health and development",
    },
    "gynecology": {
        "keywords": ["women", "pregnancy", "menstrual", "reproductive", "contraception", "fertility"],
        "conditions": ["pregnancy care", "menstrual disorders", "fertility issues", "contraception"],
        "description": "Specialists in women's reproductive health",
    },
    "ophthalmology": {
        "keywords": ["eye", "vision", "sight", "blurred vision", "eye pain", "cataract", "glaucoma"],
        "conditions": ["cataract", "glaucoma", "vision problems", "eye infections"],
        "description": "Specialists in eye and vision disorders",
    },
    "ent": {
        "keywords": ["ear", "nose", "throat", "hearing", "sinus", "tonsil", "voice"],
        "conditions": ["hearing loss", "sinus infection", "throat infection", "voice problems"],
        "description": "Specialists in ear, nose, and throat conditions",
    },
}

COMMON_CONDITIONS = {
    "diabetes": {"type": "chronic", "specialties": ["endocrinology", "internal medicine"]},
    "hypertension": {"type": "chronic", "specialties": ["cardiology", "internal medicine"]},
    "asthma": {"type": "chronic", "specialties": ["pulmonology", "allergy"]},
    "migraine": {"type": "episodic", "specialties": ["neurology"]},
}

EMERGENCY_KEYWORDS = [
    "chest pain", "heart attack", "stroke", "difficulty breathing", "severe bleeding",
    "loss of consciousness", "severe allergic reaction", "poisoning", "severe burns",
    "suicide", "self harm", "emergency", "urgent", "life threatening",
]

MEDICAL_TERMS = [
    "symptom", "disease", "condition", "treatment", "diagnosis", "medicine",
    "pain", "ache", "fever", "infection", "allergy", "chronic", "acute",
]

DISCLAIMER = (
    "I'm here to help with health information, but please consult healthcare "
    "professionals for medical advice."
)


# --- STRUCTURED OUTPUT SCHEMAS ---

class MedicalInformation(TypedDict):
    condition: str
    symptoms: list[str]
    causes: list[str]
    prevention: list[str]
    when_to_see_doctor: str


class DoctorRecommendation(TypedDict):
    specialty: str
    reason: str
    urgency: str
    what_to_expect: str


class RecommendedAction(TypedDict):
    action: str
    priority: Literal["immediate", "high", "medium", "low"]
    timeline: str


class HealthcareResponse(TypedDict):
    """Structured reply to a free-text patient message"""
    message: str
    medical_information: MedicalInformation
    doctor_recommendations: list[DoctorRecommendation]
    self_care_tips: list[str]
    red_flags: list[str]
    follow_up_questions: list[str]
    educational_resources: list[str]
    disclaimer: str
    confidence_level: Literal["high", "medium", "low"]
    recommended_actions: list[RecommendedAction]


class SymptomDetails(TypedDict):
    primary_symptoms: list[str]
    associated_symptoms: list[str]
    possible_causes: list[str]
    severity_assessment: Literal["mild", "moderate", "severe", "urgent"]
    body_systems_involved: list[str]


class SymptomRecommendations(TypedDict):
    immediate_actions: list[str]
    when_to_see_doctor: str
    specialist_needed: str
    self_care_measures: list[str]
    monitoring_advice: list[str]


class SymptomTimeline(TypedDict):
    if_symptoms_worsen: str
    follow_up_timing: str


class SymptomAnalysis(TypedDict):
    symptom_analysis: SymptomDetails
    recommendations: SymptomRecommendations
    red_flags: list[str]
    timeline: SymptomTimeline
    disclaimer: str
    confidence: str


class MythFact(TypedDict):
    myth: str
    fact: str


class HealthEducation(TypedDict):
    topic: str
    overview: str
    key_points: list[str]
    prevention: list[str]
    management: list[str]
    lifestyle_factors: list[str]
    myths_vs_facts: list[MythFact]
    when_to_seek_help: str
    additional_resources: list[str]
    takeaway_message: str


class HealthTips(TypedDict):
    daily_health_tips: list[str]
    nutrition_recommendations: list[str]
    exercise_suggestions: list[str]
    preventive_care: list[str]
    lifestyle_modifications: list[str]
    health_monitoring: list[str]
    wellness_goals: list[str]
    seasonal_advice: list[str]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ChatbotAI:
    """Prompts, keyword analysis and structured LLM calls for the patient chatbot"""

    def __init__(self, model: Any = None):
        # An injected model is used for every profile
        self._injected_model = model
        self._models: dict[str, Any] = {}

    def set_model(self, model: Any) -> None:
        self._injected_model = model
        self._models.clear()

    def get_model(self, profile: str = "general"):
        """Chat model for a profile, created on first use"""
        if self._injected_model is not None:
            return self._injected_model
        if profile not in self._models:
            self._models[profile] = init_chat_model(settings.CHAT_MODEL, **MODEL_PROFILES[profile])
        return self._models[profile]

    # --- KEYWORD ANALYSIS ---

    def is_emergency(self, message: str) -> bool:
        text = message.lower()
        return any(keyword in text for keyword in EMERGENCY_KEYWORDS)

    def analyze_message_intent(self, message: str) -> dict:
        """Classify intents and urgency from keywords"""
        text = message.lower()
        is_emergency = self.is_emergency(text)

        intents = {
            "medical_query": any(term in text for term in MEDICAL_TERMS),
            "doctor_recommendation": "doctor" in text or "specialist" in text,
            "symptom_checker": "symptom" in text or "pain" in text or "feel" in text,
            "medication_inquiry": "medicine" in text or "medication" in text or "drug" in text,
            "appointment_help": "appointment" in text or "booking" in text,
            "emergency": is_emergency,
            "general_health": "health" in text or "wellness" in text,
            "prevention": "prevent" in text or "avoid" in text,
        }

        if is_emergency:
            urgency = "emergency"
        elif "urgent" in text or "severe" in text:
            urgency = "high"
        elif "pain" in text or "problem" in text:
            urgency = "medium"
        else:
            urgency = "low"

        return {"intents": intents, "urgency": urgency, "is_emergency": is_emergency}

    def model_profile_for(self, analysis: dict) -> str:
        intents = analysis["intents"]
        return "medical" if intents["medical_query"] or intents["symptom_checker"] else "general"

    def find_specialty_recommendations(self, text: str, urgency: str = "medium") -> list[Recommendation]:
        """Top three specialties by keyword matches"""
        lowered = (text or "").lower()
        recommendations = []

        for specialty, data in MEDICAL_SPECIALTIES.items():
            matched = [keyword for keyword in data["keywords"] if keyword in lowered]
            if matched:
                recommendations.append(Recommendation(
                    specialty=specialty.capitalize(),
                    match_score=len(matched),
                    relevant_keywords=matched,
                    conditions_treated=data["conditions"],
                    urgency_level=urgency,
                    description=data["description"],
                ))

        recommendations.sort(key=lambda r: r.match_score, reverse=True)
        return recommendations[:3]

    @staticmethod
    def specialty_description(specialty: str) -> str:
        data = MEDICAL_SPECIALTIES.get(specialty.lower())
        return data["description"] if data else "Medical specialist"

    @staticmethod
    def age_specific_tips(age: int) -> list[str]:
        if age < 18:
            return ["Focus on proper nutrition for growth", "Regular physical activity", "Adequate sleep for development"]
        if age < 40:
            return ["Establish healthy habits early", "Regular exercise routine", "Stress management techniques"]
        if age < 65:
            return ["Regular health screenings", "Maintain physical activity", "Monitor blood pressure and cholesterol"]
        return ["Regular senior health checkups", "Fall prevention measures", "Cognitive health activities"]

    # --- CANNED RESPONSES ---

    def emergency_response(self) -> dict:
        number = settings.EMERGENCY_NUMBER
        return {
            "type": "emergency",
            "urgency": "emergency",
            "message": (
                "**EMERGENCY DETECTED**\n\n"
                "If this is a medical emergency, please:\n\n"
                "**Call emergency services immediately:**\n"
                f"- India: {number} (Emergency)\n"
                "- General: 112 (Emergency)\n\n"
                "**Go to the nearest emergency room**\n\n"
                "**Contact your doctor immediately**\n\n"
                "I'm an AI assistant and cannot provide emergency medical care. "
                "Please seek immediate professional medical help."
            ),
            "recommendations": [
                {
                    "action": "Call Emergency Services",
                    "priority": "immediate",
                    "phone": number,
                    "description": "For immediate medical emergency response",
                },
                {
                    "action": "Visit Emergency Room",
                    "priority": "immediate",
                    "description": "Go to the nearest hospital emergency department",
                },
            ],
            "timestamp": _now_iso(),
            "disclaimer": "This is an automated emergency response. Seek immediate professional medical help.",
        }

    def fallback_response(self, raw_response: str = "") -> dict:
        return {
            "type": "fallback",
            "message": raw_response or "I couldn't put together a structured answer this time.",
            "disclaimer": DISCLAIMER,
            "timestamp": _now_iso(),
            "note": "Response generated in fallback mode",
        }

    def error_response(self, error_message: str) -> dict:
        return {
            "type": "error",
            "message": (
                "I apologize, but I'm experiencing technical difficulties right now. "
                "Please try again later or consult a healthcare professional for urgent matters."
            ),
            "error": error_message,
            "recommendations": [
                {"action": "Try again later", "priority": "low"},
                {"action": "Consult healthcare professional for urgent matters", "priority": "high"},
            ],
            "timestamp": _now_iso(),
        }

    # --- PROMPTS ---

    def build_healthcare_prompt(self, message: str, analysis: dict, history: list[tuple[str, str]], user_profile: dict) -> str:
        context_history = "\n\n".join(
            f"User: {user}\nAssistant: {bot}" for user, bot in history[-6:]
        )
        return f"""You are an advanced AI healthcare assistant designed to help patients with medical information, doctor recommendations, and health guidance. You must provide helpful, accurate, and safe medical information while being clear about limitations.

IMPORTANT GUIDELINES:
1. Always include medical disclaimers
2. Recommend consulting healthcare professionals for serious concerns
3. Provide evidence-based information
4. Be empathetic and supportive
5. Never provide specific medical diagnoses
6. Include relevant doctor specialties and recommendations
7. Suggest preventive measures when appropriate

USER CONTEXT:
- User Profile: {json.dumps(user_profile, default=str)}
- Message Intent Analysis: {json.dumps(analysis)}
- Conversation History: {context_history or 'No previous conversation'}

USER MESSAGE: "{message}"

Write the message field in markdown. Leave doctor_recommendations empty when no specialist is relevant.
Ensure your response is helpful, medically sound, and appropriately cautious about AI limitations in healthcare."""

    # --- LLM CALLS ---

    async def _structured(self, schema, prompt: str, profile: str) -> dict:
        structured_llm = self.get_model(profile).with_structured_output(schema)
        return dict(await structured_llm.ainvoke(prompt))

    async def generate_healthcare_response(
        self,
        message: str,
        analysis: dict,
        history: list[tuple[str, str]],
        user_profile: Optional[dict] = None,
    ) -> dict:
        """Ask the LLM for a structured healthcare reply; never raises"""
        user_profile = user_profile or {}
        profile = self.model_profile_for(analysis)
        prompt = self.build_healthcare_prompt(message, analysis, history, user_profile)

        try:
            response = await self._structured(HealthcareResponse, prompt, profile)
        except OutputParserException as e:
            logger.warning("Could not parse healthcare response, using fallback: %s", e)
            response = self.fallback_response(getattr(e, "llm_output", "") or "")
        except Exception as e:
            logger.error("Error generating healthcare response: %s", e)
            return self.error_response(str(e))

        response.setdefault("type", "healthcare_response")
        response["urgency"] = analysis["urgency"]
        response.setdefault("timestamp", _now_iso())
        return self.enhance_response(response, analysis, user_profile)

    def enhance_response(self, response: dict, analysis: dict, user_profile: dict) -> dict:
        if user_profile.get("location") and response.get("doctor_recommendations"):
            response["location_context"] = {
                "user_location": user_profile["location"],
                "suggestion": "Based on your location, I can help you find nearby specialists.",
            }

        if analysis["urgency"] == "high":
            response["urgency_note"] = "Based on your message, this seems like it needs prompt medical attention."

        if user_profile.get("age"):
            response["age_specific_tips"] = self.age_specific_tips(int(user_profile["age"]))

        if analysis["intents"]["medication_inquiry"] and user_profile.get("medications"):
            response["medication_context"] = {
                "note": "I see you're asking about medications. Always consult your doctor about medication interactions.",
                "current_medications": user_profile["medications"],
            }
        return response

    async def analyze_symptoms(self, symptoms: str, user_profile: Optional[dict] = None) -> dict:
        prompt = f"""As a healthcare AI assistant, analyze the following symptoms and provide guidance.

SYMPTOMS: "{symptoms}"
USER PROFILE: {json.dumps(user_profile or {}, default=str)}

Cover the main and associated symptoms, possible causes (ranging from common to serious), a severity assessment,
affected body systems, immediate actions, when to see a doctor, the type of specialist if specialty care is needed
(leave empty otherwise), safe self-care steps, what to monitor, red flags and follow-up timing.
Be thorough but clear about the limitations of AI symptom analysis."""
        try:
            return await self._structured(SymptomAnalysis, prompt, "medical")
        except OutputParserException as e:
            logger.warning("Could not parse symptom analysis: %s", e)
            return {"error": "Could not parse symptom analysis", "raw_response": getattr(e, "llm_output", "")}
        except Exception as e:
            logger.error("Error analyzing symptoms: %s", e)
            return {
                "error": str(e),
                "message": "Unable to analyze symptoms at this time. Please consult a healthcare professional.",
            }

    async def provide_health_education(self, topic: str) -> dict:
        prompt = f"""Provide comprehensive health education about: "{topic}"

Give a clear, accessible overview, key facts, prevention and management approaches, lifestyle factors,
common myths with the facts, when to consult healthcare providers, reliable sources and a takeaway message.
Ensure information is evidence-based, current, and accessible to general audiences."""
        try:
            education = await self._structured(HealthEducation, prompt, "general")
            education["topic"] = topic
            return education
        except OutputParserException as e:
            logger.warning("Could not parse health education: %s", e)
            return {
                "topic": topic,
                "overview": getattr(e, "llm_output", "") or "",
                "error": "Could not parse structured education content",
            }
        except Exception as e:
            logger.error("Error providing health education: %s", e)
            return {"error": str(e), "topic": topic, "message": "Unable to provide educational content at this time."}

    async def personalized_health_tips(self, user_profile: dict) -> dict:
        prompt = f"""Generate personalized health tips for a user with the following profile:

USER PROFILE: {json.dumps(user_profile, default=str)}

Make recommendations specific, actionable, and appropriate for the user's profile."""
        try:
            return await self._structured(HealthTips, prompt, "general")
        except OutputParserException as e:
            logger.warning("Could not parse health tips: %s", e)
            return {"error": "Could not parse health tips", "raw_response": getattr(e, "llm_output", "")}
        except Exception as e:
            logger.error("Error generating health tips: %s", e)
            return {"error": str(e), "message": "Unable to generate personalized health tips at this time."}

    async def test_connection(self) -> bool:
        """Ping the provider with a trivial prompt"""
        try:
            reply = await self.get_model("general").ainvoke(
                "Hello, respond with 'Connected' if you can receive this message."
            )
            return "connected" in str(getattr(reply, "content", reply)).lower()
        except Exception as e:
            logger.error("LLM connection test failed: %s", e)
            return False

    def stats(self, active_conversations: int) -> dict:
        return {
            "active_conversations": active_conversations,
            "total_specialties": len(MEDICAL_SPECIALTIES),
            "total_conditions": len(COMMON_CONDITIONS),
            "emergency_keywords": len(EMERGENCY_KEYWORDS),
            "model_configs": list(MODEL_PROFILES),
        }


# Singleton instance
chatbot_ai = ChatbotAI()
