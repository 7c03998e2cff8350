"""Tests for the simulated authority submission."""
from unittest.mock import Mock

from sunat_pos.models import DocumentKind
from sunat_pos.parsers import extract_digest_value, parse_invoice
from sunat_pos.submission import (
    REJECTION_DESCRIPTION,
    SALE_NOTE_DESCRIPTION,
    SubmissionAdapter,
    random_decision,
)
from sunat_pos.ubl import placeholder_signature


class TestRandomDecision:
    """Tests for the seedable accept/reject draw."""

    def test_seed_is_reproducible(self):
        """Test that the same seed gives the same sequence."""
        a = random_decision(0.5, seed=42)
        b = random_decision(0.5, seed=42)
        assert [a() for _ in range(20)] == [b() for _ in range(20)]

    def test_extreme_rates(self):
        """Test that rates of 1 and 0 always accept and always reject."""
        always = random_decision(1.0, seed=1)
        never = random_decision(0.0, seed=1)
        assert all(always() for _ in range(50))
        assert not any(never() for _ in range(50))


class TestSubmissionAdapter:
    """Tests for SubmissionAdapter.submit."""

    def test_accepted_receipt(self, adapter, make_document, company):
        """Test the accepted response fields."""
        doc = make_document(correlative=5)
        response = adapter.submit(doc, company)

        assert response.success is True
        assert "ACEPTADA" in response.description
        assert "B001-5" in response.description
        assert "BETA" in response.description
        assert response.digest == placeholder_signature(doc, company)[0]
        assert response.digest == extract_digest_value(response.signed_xml)
        assert response.cdr_ref == "R-20123456789-03-B001-00000005.zip"
        assert response.ticket and len(response.ticket) == 15

    def test_signed_xml_is_the_rendered_document(self, adapter, make_document, company):
        """Test that the returned XML describes the submitted document."""
        doc = make_document(correlative=5)
        data = parse_invoice(adapter.submit(doc, company).signed_xml)
        assert data["id"] == "B001-00000005"

    def test_prod_description_has_no_beta_marker(self, config, make_document, company):
        """Test that production responses do not mention the test environment."""
        config.sunat_env = "prod"
        adapter = SubmissionAdapter(config, decide=lambda: True, sleep=lambda s: None)
        response = adapter.submit(make_document(), company)
        assert "BETA" not in response.description
        assert response.description.endswith("ha sido ACEPTADA.")

    def test_rejected_receipt(self, rejecting_adapter, make_document, company):
        """Test the rejected response fields."""
        response = rejecting_adapter.submit(make_document(), company)

        assert response.success is False
        assert response.description == REJECTION_DESCRIPTION
        assert response.description.startswith("Error 0156")
        assert response.signed_xml.startswith("<?xml")
        assert response.digest is None
        assert response.cdr_ref is None

    def test_latency_is_simulated(self, config, make_document, company):
        """Test that fiscal submissions wait for the configured latency."""
        config.latency = 2.0
        sleep = Mock()
        adapter = SubmissionAdapter(config, decide=lambda: True, sleep=sleep)
        adapter.submit(make_document(), company)
        sleep.assert_called_once_with(2.0)

    def test_sale_note_stays_internal(self, config, make_document, company):
        """Test that sale notes skip rendering and the accept/reject draw."""
        config.sale_note_delay = 0.5
        decide = Mock(return_value=False)
        sleep = Mock()
        adapter = SubmissionAdapter(config, decide=decide, sleep=sleep)

        response = adapter.submit(make_document(kind=DocumentKind.SALE_NOTE), company)

        assert response.success is True
        assert response.description == SALE_NOTE_DESCRIPTION
        assert response.signed_xml == ""
        assert response.digest is None
        decide.assert_not_called()
        sleep.assert_called_once_with(0.5)

    def test_default_decision_uses_config(self, config, make_document, company):
        """Test that a success rate of 1 accepts without an explicit decide."""
        adapter = SubmissionAdapter(config, sleep=lambda s: None)
        assert adapter.submit(make_document(), company).success is True
