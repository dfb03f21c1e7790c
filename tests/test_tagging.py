import os
import sys
from datetime import datetime, timedelta, timezone

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Settings
from graph.nodes.score import calculate_lead_score
from graph.nodes.tag import build_merge_fields, generate_tags, tag
from graph.state import LeadScore

NOW = datetime(2026, 3, 14, 23, 30, tzinfo=timezone.utc)


class TestTags:
    """Segmentation tag generation."""

    def test_intake_and_date_lead(self):
        tags = generate_tags({}, LeadScore(score=40), "outside-counsel", NOW)
        assert tags[:2] == ["intake-outside-counsel", "date-2026-03-14"]

    def test_date_is_utc(self):
        eastern = timezone(timedelta(hours=-5))
        tags = generate_tags({}, LeadScore(score=40), "outside-counsel", datetime(2026, 3, 14, 21, 0, tzinfo=eastern))
        assert tags[1] == "date-2026-03-15"

    @pytest.mark.parametrize("score,expected", [
        (85, ["high-priority", "score-high", "trigger-vip-sequence", "notify-drew-immediately"]),
        (70, ["high-priority", "score-high", "trigger-vip-sequence", "notify-drew-immediately"]),
        (69, ["medium-priority", "score-medium", "trigger-premium-nurture"]),
        (50, ["medium-priority", "score-medium", "trigger-premium-nurture"]),
        (49, ["standard-priority", "score-low", "trigger-standard-nurture"]),
    ])
    def test_priority_band(self, score, expected):
        tags = generate_tags({}, LeadScore(score=score), "chat-intake", NOW)
        assert tags[2:2 + len(expected)] == expected

    def test_no_duplicates(self):
        payload = {"tags": ["High Priority", "married", "married"], "maritalStatus": "Married"}
        tags = generate_tags(payload, LeadScore(score=90), "estate-intake", NOW)

        assert len(tags) == len(set(tags))
        assert tags.count("high-priority") == 1
        assert tags.count("married") == 1

    def test_estate_high_net_worth_trust(self):
        payload = {
            "email": "x@firm.com",
            "grossEstate": "$6,500,000",
            "packagePreference": "Trust",
            "ownBusiness": "Yes",
            "state": "NJ",
            "maritalStatus": "Married",
        }
        tags = generate_tags(payload, calculate_lead_score(payload, "estate-intake"), "estate-intake", NOW)

        for expected in ("very-wealthy", "sequence-estate-tax", "wants-trust", "high-priority",
                         "business-owner", "sequence-business-succession", "married"):
            assert expected in tags

    @pytest.mark.parametrize("marital", ["married", "MARRIED", "Married (filing jointly)"])
    def test_married_matches_any_casing(self, marital):
        tags = generate_tags({"maritalStatus": marital}, LeadScore(score=40), "estate-intake", NOW)
        assert "married" in tags

    def test_single_is_not_married(self):
        tags = generate_tags({"maritalStatus": "Single"}, LeadScore(score=40), "estate-intake", NOW)
        assert "married" not in tags

    @pytest.mark.parametrize("gross_estate,expected", [
        ("$5,000,000", ["wealthy", "sequence-wealth-protection"]),
        ("1500000", ["comfortable", "sequence-asset-protection"]),
        ("", ["modest-assets", "sequence-basic-planning"]),
    ])
    def test_estate_bands(self, gross_estate, expected):
        tags = generate_tags({"grossEstate": gross_estate}, LeadScore(score=40), "estate-intake", NOW)
        for item in expected:
            assert item in tags

    def test_business_vc(self):
        payload = {"investmentPlan": "vc", "projectedRevenue": "over25m", "selectedPackage": "gold"}
        tags = generate_tags(payload, LeadScore(score=100), "business-formation", NOW)

        assert "sequence-vc-startup" in tags
        assert "vc-backed" in tags
        assert "package-gold" in tags
        assert "high-priority" in tags

    @pytest.mark.parametrize("goal,expected", [
        ("enforcement", ["needs-enforcement", "sequence-ip-enforcement"]),
        ("trademark registration", ["wants-trademark", "sequence-trademark-registration"]),
        ("clearance search", ["needs-clearance", "sequence-trademark-clearance"]),
        ("portfolio", ["portfolio-management", "sequence-ip-portfolio"]),
        ("monitoring", ["wants-monitoring", "sequence-brand-monitoring"]),
    ])
    def test_brand_goals(self, goal, expected):
        tags = generate_tags({"protectionGoal": goal}, LeadScore(score=35), "brand-protection", NOW)
        for item in expected:
            assert item in tags

    def test_kind_tags_only_for_matching_kind(self):
        tags = generate_tags({"grossEstate": "9000000"}, LeadScore(score=45), "outside-counsel", NOW)
        assert "very-wealthy" not in tags
        assert "sequence-outside-counsel" in tags

    def test_conversion_and_urgency(self):
        payload = {"fromAssessment": "true", "urgency": "urgent"}
        tags = generate_tags(payload, LeadScore(score=60), "brand-protection", NOW)
        assert "assessment-conversion" in tags
        assert "urgent-need" in tags

    def test_guide_type(self):
        tags = generate_tags({"guideType": "primary"}, LeadScore(score=30), "legal-guide-download", NOW)
        assert "resource-guide-download" in tags
        assert "guide-primary" in tags


class TestMergeFields:
    """Merge fields pushed to the marketing list."""

    def test_always_present(self):
        fields = build_merge_fields({}, LeadScore(score=72), "business-formation", NOW)

        for key in ("FNAME", "LNAME", "EMAIL", "PHONE", "BUSINESS", "LEAD_SCORE",
                    "PRIORITY", "SERVICE_TYPE", "SIGNUP_DATE", "LEAD_SOURCE"):
            assert key in fields
        assert fields["LEAD_SCORE"] == 72
        assert fields["PRIORITY"] == "High Priority"
        assert fields["SERVICE_TYPE"] == "business formation"
        assert fields["SIGNUP_DATE"] == "2026-03-14"
        assert fields["LEAD_SOURCE"] == "Website Intake Form"

    def test_first_last_preferred(self):
        payload = {"firstName": "Jane", "lastName": "Doe", "fullName": "Someone Else"}
        fields = build_merge_fields(payload, LeadScore(score=40), "estate-intake", NOW)
        assert (fields["FNAME"], fields["LNAME"]) == ("Jane", "Doe")

    def test_full_name_split(self):
        payload = {"contactName": "Mary Ann Smith"}
        fields = build_merge_fields(payload, LeadScore(score=40), "outside-counsel", NOW)
        assert (fields["FNAME"], fields["LNAME"]) == ("Mary", "Ann Smith")

    def test_kind_extras_only_when_present(self):
        fields = build_merge_fields({"protectionGoal": "enforcement"}, LeadScore(score=40), "brand-protection", NOW)
        assert fields["BP_GOAL"] == "enforcement"
        assert "BP_STAGE" not in fields
        assert "ESTATE_AMOUNT" not in fields

    def test_estate_amount(self):
        fields = build_merge_fields({"grossEstate": "$2,500,000"}, LeadScore(score=75), "estate-intake", NOW)
        assert fields["ESTATE_AMOUNT"] == "$2,500,000"

    def test_extra_fields_do_not_override_computed(self):
        payload = {
            "email": "jo@studio.io",
            "merge_fields": {"lead_score": "zero", "email": "spoof@x.io", "referrer": "podcast"},
        }
        fields = build_merge_fields(payload, LeadScore(score=80), "estate-intake", NOW, Settings())

        assert fields["LEAD_SCORE"] == 80
        assert fields["EMAIL"] == "jo@studio.io"
        assert fields["REFERRER"] == "podcast"

    @pytest.mark.parametrize("kind,score,expected", [
        ("estate-intake", 80, "priority-consultation"),
        ("estate-intake", 69, "wealth-protection-consultation"),
        ("business-formation", 50, "business-protection-consultation"),
        ("brand-protection", 40, "brand-protection-consultation"),
        ("outside-counsel", 45, "outside-counsel-consultation"),
        ("legal-guide-download", 30, "general-consultation"),
    ])
    def test_booking_link(self, kind, score, expected):
        fields = build_merge_fields({}, LeadScore(score=score), kind, NOW, Settings())
        assert fields["CALENDLY"] == f"https://calendly.com/jacobscounsel/{expected}"

    def test_booking_link_overrides(self):
        settings = Settings(booking_links={"general": "https://book.example.com/general"})

        assert settings.booking_link("estate-intake", 90) == "https://book.example.com/general"
        assert settings.booking_link("outside-counsel", 40) == "https://book.example.com/general"

    def test_tag_node(self):
        state = {
            "kind": "chat-intake",
            "raw": {"email": "jo@studio.io"},
            "lead_score": LeadScore(score=30),
            "received_at": NOW,
            "submission_id": "chat-intake-1",
        }
        result = tag(state)

        assert result["tags"][:2] == ["intake-chat-intake", "date-2026-03-14"]
        assert result["merge_fields"]["EMAIL"] == "jo@studio.io"
