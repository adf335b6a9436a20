"""Unit tests for the geographic and financing gates."""
from automatch.score.gates import cde_financing_focus, financing_gate, geographic_gate
from automatch.score.normalize import TriState


class TestGeographicGate:
    """Tests for geographic_gate."""

    def test_national(self, make_deal, make_cde):
        gate = geographic_gate(make_deal(state="Texas"), make_cde(service_area_type=" National "))
        assert gate.passed
        assert gate.via == "national"
        assert gate.state_abbrev == "TX"

    def test_unknown_state(self, make_deal, make_cde):
        gate = geographic_gate(make_deal(state="ZZ"), make_cde(service_area_type="statewide"))
        assert not gate.passed
        assert gate.via == "unknown_state"

    def test_primary_states_abbrev_or_name(self, make_deal, make_cde):
        deal = make_deal(state="illinois")
        by_abbrev = geographic_gate(deal, make_cde(service_area_type="regional", primary_states=["il"]))
        by_name = geographic_gate(deal, make_cde(service_area_type="regional", primary_states=["Illinois"]))

        assert by_abbrev.via == by_name.via == "primary_states"
        assert by_abbrev.state_abbrev == "IL"

    def test_market_tokens(self, make_deal, make_cde):
        cde = make_cde(service_area_type="multi-state", predominant_market="IN, IL, WI")
        gate = geographic_gate(make_deal(), cde)
        assert gate.passed
        assert gate.via == "market_states"

    def test_market_state_name(self, make_deal, make_cde):
        cde = make_cde(service_area_type="local", predominant_market="Rural Illinois and Indiana")
        gate = geographic_gate(make_deal(), cde)
        assert gate.via == "market_name"

    def test_west_virginia_market_excludes_virginia(self, make_deal, make_cde):
        cde = make_cde(service_area_type="local", predominant_market="Southern West Virginia")
        assert geographic_gate(make_deal(state="VA"), cde).via == "out_of_area"
        assert geographic_gate(make_deal(state="WV"), cde).via == "market_name"

    def test_out_of_area(self, make_deal, make_cde):
        cde = make_cde(service_area_type="statewide", primary_states=["CA"], predominant_market="Los Angeles")
        gate = geographic_gate(make_deal(), cde)
        assert not gate.passed
        assert gate.via == "out_of_area"
        assert gate.reason == "Does not serve IL"


class TestFinancingGate:
    """Tests for financing_gate."""

    def test_focus_classification(self, make_cde):
        assert cde_financing_focus(make_cde(predominant_financing="Real Estate Financing")) == "real_estate"
        assert cde_financing_focus(make_cde(predominant_financing="Operating Business")) == "business"
        assert cde_financing_focus(make_cde(predominant_financing="Real Estate; Business")) == "both"
        assert cde_financing_focus(make_cde(predominant_financing="Other")) is None
        assert cde_financing_focus(make_cde()) is None

    def test_owner_occupied_default(self, make_deal, make_cde):
        """Unstated owner occupancy fits any focus."""
        gate = financing_gate(make_deal(venture_type="business"), make_cde(predominant_financing="Real Estate"))
        assert gate.passed
        assert gate.via == "owner_occupied"

    def test_clinic_vs_business_cde(self, make_deal, make_cde):
        """A clinic project reads as real estate and fails a business-only CDE."""
        deal = make_deal(is_owner_occupied=False, project_type="Community Health Clinic")
        gate = financing_gate(deal, make_cde(predominant_financing="Business/Operating"))

        assert not gate.passed
        assert gate.via == "mismatch"
        assert gate.reason == "Financing type mismatch: real estate deal vs business CDE"

    def test_both_and_ambiguous(self, make_deal, make_cde):
        deal = make_deal(is_owner_occupied=TriState.NO, venture_type="business")
        assert financing_gate(deal, make_cde(predominant_financing="Real Estate and Business")).via == "both"
        assert financing_gate(deal, make_cde(predominant_financing="Loans")).via == "ambiguous_cde"

    def test_indeterminate_deal(self, make_deal, make_cde):
        deal = make_deal(is_owner_occupied=False, project_type="software startup")
        gate = financing_gate(deal, make_cde(predominant_financing="Real Estate"))
        assert gate.passed
        assert gate.via == "indeterminate_deal"

    def test_matching_focus(self, make_deal, make_cde):
        deal = make_deal(is_owner_occupied=False, is_real_estate=True)
        assert financing_gate(deal, make_cde(predominant_financing="real_estate")).via == "real_estate"
