import unittest
from unittest.mock import patch

from langchain_core.messages import AIMessage, HumanMessage

from telehealth.agent.agent_core import ConversationAgent, _exchanges
from telehealth.agent.chatbot_ai import chatbot_ai
from telehealth.config import settings
from tests.helpers import HEALTHCARE_REPLY, fake_model, reset_state


class TestIntentAnalysis(unittest.TestCase):
    def test_urgency_levels(self):
        assert chatbot_ai.analyze_message_intent("I think this is an emergency")["urgency"] == "emergency"
        assert chatbot_ai.analyze_message_intent("severe itching on my arm")["urgency"] == "high"
        assert chatbot_ai.analyze_message_intent("my knee has a problem")["urgency"] == "medium"
        assert chatbot_ai.analyze_message_intent("hello there")["urgency"] == "low"

    def test_intents_pick_the_model_profile(self):
        analysis = chatbot_ai.analyze_message_intent("Which doctor treats a skin rash symptom?")
        assert analysis["intents"]["doctor_recommendation"]
        assert chatbot_ai.model_profile_for(analysis) == "medical"
        assert chatbot_ai.model_profile_for(chatbot_ai.analyze_message_intent("hi")) == "general"

    def test_specialty_recommendations(self):
        recommendations = chatbot_ai.find_specialty_recommendations("skin rash and acne, also some heart palpitations")
        # "ear" inside "heart" also counts for ENT
        assert [r.specialty for r in recommendations] == ["Dermatology", "Cardiology", "Ent"]
        assert recommendations[0].match_score == 3
        assert chatbot_ai.find_specialty_recommendations("") == []

    def test_exchange_pairing(self):
        messages = [
            HumanMessage(content="a"), AIMessage(content="b"),
            HumanMessage(content="c"), HumanMessage(content="d"), AIMessage(content="e"),
        ]
        assert _exchanges(messages) == [("a", "b"), ("d", "e")]


class TestConversationAgent(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.model = fake_model()
        reset_state(self.model)
        self.agent = ConversationAgent()

    async def test_turns_are_remembered_per_user(self):
        reply = await self.agent.chat("p1", "What helps with palpitations?")
        assert reply["message"] == HEALTHCARE_REPLY["message"]
        await self.agent.chat("p2", "Anything for a headache?")

        history = await self.agent.history("p1")
        assert [type(m) for m in history] == [HumanMessage, AIMessage]
        assert history[1].content == HEALTHCARE_REPLY["message"]
        assert self.agent.active_conversations == 2

    async def test_history_is_trimmed(self):
        with patch.object(settings, "CONVERSATION_HISTORY_LIMIT", 2):
            for n in range(4):
                await self.agent.chat("p1", f"question {n}")
        history = await self.agent.history("p1")
        assert [m.content for m in history if isinstance(m, HumanMessage)] == ["question 2", "question 3"]
        assert len(history) == 4

    async def test_emergency_turn_is_stored_without_model_call(self):
        reply = await self.agent.chat("p1", "My father collapsed, is this a heart attack?")
        assert reply["type"] == "emergency"
        assert self.model.prompts == []
        history = await self.agent.history("p1")
        assert history[-1].content.startswith("**EMERGENCY DETECTED**")

    async def test_clear(self):
        await self.agent.chat("p1", "hello")
        await self.agent.clear("p1")
        assert await self.agent.history("p1") == []
        assert self.agent.active_conversations == 0


if __name__ == "__main__":
    unittest.main()
