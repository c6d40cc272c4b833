import unittest

from telehealth.services.risk_assessment import assess_risk, severity_to_urgency, urgency_for_score


class TestRiskAssessment(unittest.TestCase):
    def test_mild_symptoms_are_low_risk(self):
        result = assess_risk("slight runny nose", severity="mild")
        assert result.risk_score == 1
        assert result.urgency_level == "low"
        assert result.detected_flags == []
        assert not result.recommends_emergency_action

    def test_emergency_keyword_escalates(self):
        result = assess_risk("Sudden CHEST PAIN after climbing stairs", severity="moderate")
        # 4 for the keyword, 2 for moderate severity
        assert result.risk_score == 6
        assert result.urgency_level == "emergency"
        assert result.recommends_emergency_action
        assert [f.keyword for f in result.detected_flags] == ["chest pain"]
        assert result.detected_flags[0].type == "emergency"

    def test_high_risk_keywords_and_body_parts(self):
        result = assess_risk("there is blood in my cough", severity="mild", body_parts=["Chest", "Arm"])
        assert result.risk_score == 4
        assert result.urgency_level == "high"
        assert result.detected_flags[0].type == "high_risk"

    def test_unknown_severity_counts_as_one(self):
        assert assess_risk("tired", severity="unheard-of").risk_score == 1
        assert assess_risk("tired").risk_score == 1

    def test_urgency_bands(self):
        assert urgency_for_score(0) == "low"
        assert urgency_for_score(2) == "moderate"
        assert urgency_for_score(4) == "high"
        assert urgency_for_score(9) == "emergency"

    def test_severity_to_urgency(self):
        assert severity_to_urgency("severe") == "high"
        assert severity_to_urgency("urgent") == "high"
        assert severity_to_urgency("Critical") == "emergency"
        assert severity_to_urgency(None) == "medium"


if __name__ == "__main__":
    unittest.main()
