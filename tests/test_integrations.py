"""Tests for identity lookup and WhatsApp delivery (HTTP mocked)."""
import pytest
import requests
from unittest.mock import Mock
from urllib.parse import unquote
from tenacity import wait_exponential, wait_none
from tenacity.wait import wait_base

from sunat_pos.errors import IntegrationFailure
from sunat_pos.integrations import DispatchResult, IdentityLookup, WhatsAppDispatcher
from sunat_pos.integrations.lookup import normalize_company, normalize_person
from sunat_pos.models import ClientDocType, TaxCategory


def http_response(status=200, payload=None, json_error=False):
    r = Mock()
    r.status_code = status
    r.ok = status < 400
    if json_error:
        r.json.side_effect = ValueError("Expecting value")
    else:
        r.json.return_value = payload
    return r


@pytest.fixture
def lookup(config):
    lookup = IdentityLookup(config, wait=wait_none())
    lookup.session = Mock()
    return lookup


class TestNormalize:
    """Tests for response normalization."""

    def test_person_english_fields(self):
        """Test a DNI result with split English names."""
        result = normalize_person(
            {"first_name": "JUAN", "first_last_name": "PEREZ", "second_last_name": "GOMEZ",
             "document_number": "12345678"},
            "12345678",
        )
        assert result.name == "JUAN PEREZ GOMEZ"
        assert result.doc_type is ClientDocType.DNI

    def test_person_spanish_fields(self):
        """Test a DNI result with Spanish field names."""
        result = normalize_person(
            {"nombres": "ANA", "apellidoPaterno": "QUISPE", "apellidoMaterno": "MAMANI"}, "87654321"
        )
        assert result.name == "ANA QUISPE MAMANI"
        assert result.doc_number == "87654321"

    def test_person_full_name_preferred(self):
        """Test that a ready full name wins over parts."""
        result = normalize_person({"full_name": "ROSA TORRES", "nombres": "X"}, "1")
        assert result.name == "ROSA TORRES"

    def test_person_without_name(self):
        """Test that an empty record gives None."""
        assert normalize_person({"document_number": "1"}, "1") is None

    def test_company_address_from_parts(self):
        """Test that a missing address is assembled from location parts."""
        result = normalize_company(
            {"razon_social": "ACME S.A.C.", "departamento": "LIMA", "provincia": "LIMA",
             "distrito": "MIRAFLORES"},
            "20100070970",
        )
        assert result.name == "ACME S.A.C."
        assert result.address == "LIMA - LIMA - MIRAFLORES"
        assert result.doc_number == "20100070970"


class TestIdentityLookup:
    """Tests for IdentityLookup.search."""

    def test_dni_found(self, lookup):
        """Test a successful DNI lookup against the reniec endpoint."""
        lookup.session.get.return_value = http_response(
            payload={"first_name": "JUAN", "first_last_name": "PEREZ", "document_number": "12345678"}
        )
        result = lookup.search(ClientDocType.DNI, " 12345678 ")

        assert result.name == "JUAN PEREZ"
        args, kwargs = lookup.session.get.call_args
        assert args[0] == "https://identity.test/v1/reniec/dni"
        assert kwargs["params"] == {"numero": "12345678"}
        assert kwargs["headers"]["Authorization"] == "Bearer test-token"

    def test_ruc_wrapped_in_data(self, lookup):
        """Test that a payload nested under 'data' is unwrapped."""
        lookup.session.get.return_value = http_response(
            payload={"data": {"razonSocial": "ACME S.A.C.", "direccion": "AV. LIMA 123"}}
        )
        result = lookup.search(ClientDocType.RUC, "20100070970")
        assert result.name == "ACME S.A.C."
        assert result.address == "AV. LIMA 123"
        assert lookup.session.get.call_args[0][0].endswith("/sunat/ruc")

    @pytest.mark.parametrize("status", [404, 422])
    def test_not_found(self, lookup, status):
        """Test that unknown numbers give None."""
        lookup.session.get.return_value = http_response(status=status)
        assert lookup.search(ClientDocType.DNI, "00000000") is None

    def test_default_wait_is_exponential(self, config):
        """Test that the default backoff is a tenacity wait strategy."""
        lookup = IdentityLookup(config)
        assert isinstance(lookup.wait, wait_base)
        assert isinstance(lookup.wait, wait_exponential)

    def test_no_token_skips_request(self, config):
        """Test that a missing token returns None without calling out."""
        config.identity_api_token = ""
        lookup = IdentityLookup(config)
        lookup.session = Mock()
        assert lookup.search(ClientDocType.DNI, "12345678") is None
        lookup.session.get.assert_not_called()

    def test_blank_number(self, lookup):
        """Test that an empty number returns None."""
        assert lookup.search(ClientDocType.RUC, "  ") is None
        lookup.session.get.assert_not_called()

    def test_none_doc_type_rejected(self, lookup):
        """Test that only DNI and RUC can be looked up."""
        with pytest.raises(ValueError):
            lookup.search(ClientDocType.NONE, "123")

    def test_retries_then_succeeds(self, lookup):
        """Test that transient errors are retried."""
        lookup.session.get.side_effect = [
            requests.ConnectionError("reset"),
            http_response(status=503),
            http_response(payload={"full_name": "JUAN PEREZ"}),
        ]
        assert lookup.search(ClientDocType.DNI, "12345678").name == "JUAN PEREZ"
        assert lookup.session.get.call_count == 3

    def test_gives_up_after_attempts(self, lookup):
        """Test that persistent transport errors raise IntegrationFailure."""
        lookup.session.get.side_effect = requests.Timeout("slow")
        with pytest.raises(IntegrationFailure, match="unreachable"):
            lookup.search(ClientDocType.DNI, "12345678")
        assert lookup.session.get.call_count == 3

    def test_client_error_not_retried(self, lookup):
        """Test that a 401 fails at once."""
        lookup.session.get.return_value = http_response(status=401)
        with pytest.raises(IntegrationFailure, match="401"):
            lookup.search(ClientDocType.RUC, "20100070970")
        assert lookup.session.get.call_count == 1

    def test_invalid_json(self, lookup):
        """Test that a non-JSON body raises IntegrationFailure."""
        lookup.session.get.return_value = http_response(json_error=True)
        with pytest.raises(IntegrationFailure, match="invalid JSON"):
            lookup.search(ClientDocType.DNI, "12345678")


@pytest.fixture
def whatsapp_company(company):
    return company.model_copy(update={"whatsapp_instance": "1234", "whatsapp_token": "wa-token"})


@pytest.fixture
def sale(make_document, make_line):
    return make_document(
        correlative=9,
        lines=[
            make_line("118.00", quantity=2, description="Gaseosa 3L"),
            make_line("35.00", category=TaxCategory.EXEMPT, description="Libro escolar", product_id="p2"),
        ],
    )


class TestWhatsAppDispatcher:
    """Tests for WhatsAppDispatcher."""

    def test_format_message(self, config, sale, company):
        """Test the customer-facing text."""
        message = WhatsAppDispatcher(config).format_message(sale, company)
        assert message.startswith("*MI EMPRESA DEMO S.A.C.*\nRUC: 20123456789\n")
        assert "*Boleta*: B001-00000009" in message
        assert "*Fecha*: 14/05/2024" in message
        assert "*Cliente*: María Quispe" in message
        assert "*TOTAL*: S/ 271.00" in message
        assert "- 2 x Gaseosa 3L (S/ 236.00)" in message
        assert "- 1 x Libro escolar (S/ 35.00)" in message

    def test_send_to_default_provider(self, config, sale, whatsapp_company):
        """Test that a bare instance id uses the configured gateway."""
        dispatcher = WhatsAppDispatcher(config)
        dispatcher.session = Mock()
        result = dispatcher.send(sale, whatsapp_company, "+51 999-888-777")

        assert result == DispatchResult(True, "Sent successfully")
        args, kwargs = dispatcher.session.post.call_args
        assert args[0] == "https://gateway.test/instance1234/sendMessage"
        assert kwargs["json"]["phone"] == "51999888777"
        assert kwargs["json"]["token"] == "wa-token"
        assert kwargs["headers"]["Authorization"] == "Bearer wa-token"

    def test_send_to_instance_url(self, config, sale, whatsapp_company):
        """Test that an instance URL is used as the host."""
        company = whatsapp_company.model_copy(update={"whatsapp_instance": "https://wa.example.com/"})
        dispatcher = WhatsAppDispatcher(config)
        dispatcher.session = Mock()
        dispatcher.send(sale, company, "999888777")
        assert dispatcher.session.post.call_args[0][0] == "https://wa.example.com/send-message"

    def test_missing_credentials(self, config, sale, company):
        """Test that an unconfigured gateway fails without a request."""
        dispatcher = WhatsAppDispatcher(config)
        dispatcher.session = Mock()
        result = dispatcher.send(sale, company, "999888777")
        assert result.success is False
        assert "credentials" in result.message
        dispatcher.session.post.assert_not_called()

    def test_transport_error(self, config, sale, whatsapp_company):
        """Test that connection errors become a failure result."""
        dispatcher = WhatsAppDispatcher(config)
        dispatcher.session = Mock()
        dispatcher.session.post.side_effect = requests.ConnectionError("down")
        result = dispatcher.send(sale, whatsapp_company, "999888777")
        assert result.success is False

    def test_click_to_chat_link(self, config, sale, company):
        """Test the wa.me fallback link."""
        link = WhatsAppDispatcher(config).click_to_chat_link(sale, company, "+51 999 888 777")
        assert link.startswith("https://wa.me/51999888777?text=")
        text = unquote(link.split("?text=", 1)[1])
        assert "*Boleta B001-00000009*" in text
        assert "*S/ 271.00*" in text
