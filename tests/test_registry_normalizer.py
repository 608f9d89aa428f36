"""Tests for app.registry.payload and app.registry.normalizer."""
from __future__ import annotations

import pytest

from app.registry import payload as p
from app.registry.normalizer import (
    NAME_NOT_AVAILABLE,
    UNKNOWN,
    LookupOutcome,
    Outcome,
    normalize_response,
)


def _mapping(answer: dict, *, prefix: str = "") -> dict:
    """Answer record wrapped the way SOAP client libraries decode it."""
    return {
        f"{prefix}Envelope": {
            f"{prefix}Body": {
                f"{prefix}PersonsokningSvar": {f"{prefix}PersonsokningSvarspost": answer},
            }
        }
    }


# ---------------------------------------------------------------------------
# Intermediate tree
# ---------------------------------------------------------------------------


class TestPayloadTree:
    def test_xml_namespace_prefixes_are_stripped(self, spar_response) -> None:
        tree = p.parse_payload(spar_response("<Status>1</Status>", prefix="spar"))
        record = p.find_descendant(tree, "PersonsokningSvarspost")
        assert p.text(record, "Status") == "1"
        assert p.find(tree, "Envelope", "Body", "SPARPersonsokningSvar")

    def test_mapping_prefixes_are_stripped(self) -> None:
        tree = p.parse_payload(_mapping({"ns2:Status": "4"}, prefix="soap:"))
        assert p.text(p.find_descendant(tree, "PersonsokningSvarspost"), "Status") == "4"

    def test_scalar_and_single_element_list_read_alike(self) -> None:
        scalar = p.parse_payload({"Namn": {"Efternamn": "Testsson"}})
        listed = p.parse_payload({"Namn": [{"Efternamn": ["Testsson"]}]})
        assert p.texts(scalar, "Namn", "Efternamn") == p.texts(listed, "Namn", "Efternamn") == ["Testsson"]

    def test_repeated_xml_elements_become_sequence(self) -> None:
        tree = p.parse_payload("<Namn><Fornamn>Anna</Fornamn><Fornamn> Maria </Fornamn></Namn>")
        assert p.texts(tree, "Namn", "Fornamn") == ["Anna", "Maria"]

    def test_text_keys_and_attributes(self) -> None:
        tree = p.parse_payload({"Status": {"$value": "2", "$": {"type": "xs:string"}}, "Flag": True})
        assert p.text(tree, "Status") == "2"
        assert p.text(tree, "Flag") == "true"

    def test_missing_path_is_empty(self) -> None:
        tree = p.parse_payload({"Namn": {}})
        assert p.text(tree, "Namn", "Fornamn") is None
        assert p.texts(tree, "Folkbokforingsadress", "SvenskAdress", "PostNr") == []

    def test_decoded_text_ignores_declared_encoding(self) -> None:
        document = '<?xml version="1.0" encoding="ISO-8859-1"?><Namn><Fornamn>Åsa</Fornamn></Namn>'
        assert p.text(p.parse_payload(document), "Namn", "Fornamn") == "Åsa"

    def test_bytes_follow_declared_encoding(self) -> None:
        document = '<?xml version="1.0" encoding="ISO-8859-1"?><Namn><Fornamn>Åsa</Fornamn></Namn>'
        assert p.text(p.parse_payload(document.encode("iso-8859-1")), "Namn", "Fornamn") == "Åsa"

    @pytest.mark.parametrize("payload", ["", b"   ", "<Envelope><Body>", "not xml at all", 42])
    def test_unreadable_payload_raises(self, payload) -> None:
        with pytest.raises(p.RegistryPayloadError):
            p.parse_payload(payload)

    def test_local_name(self) -> None:
        assert p.local_name("ns2:Status") == "Status"
        assert p.local_name("{urn:x}Status") == "Status"
        assert p.local_name("Status") == "Status"


# ---------------------------------------------------------------------------
# Status resolution
# ---------------------------------------------------------------------------


class TestStatusVocabularies:
    @pytest.mark.parametrize(
        "code, expected",
        [("1", Outcome.FOUND), ("2", Outcome.PROTECTED), ("3", Outcome.DECEASED), ("4", Outcome.NOT_FOUND)],
    )
    def test_numeric_status(self, code: str, expected: Outcome) -> None:
        assert normalize_response(_mapping({"Status": code})).outcome is expected

    def test_protected_flag_without_status(self) -> None:
        assert normalize_response(_mapping({"SkyddadIdentitet": "true"})).outcome is Outcome.PROTECTED

    def test_secrecy_marker_without_status(self, spar_response) -> None:
        result = normalize_response(spar_response("<Sekretessmarkering>J</Sekretessmarkering>"))
        assert result.outcome is Outcome.PROTECTED

    def test_false_flags_without_status_resolve_to_found(self) -> None:
        result = normalize_response(_mapping({"SkyddadIdentitet": "false", "Sekretessmarkering": "N"}))
        assert result.outcome is Outcome.FOUND
        assert result.record.protected_identity is False

    def test_protected_flag_overrides_found_status(self) -> None:
        result = normalize_response(_mapping({"Status": "1", "SkyddadIdentitet": "true"}))
        assert result.outcome is Outcome.PROTECTED
        assert result.record is None

    def test_not_found_status_wins_over_flags(self) -> None:
        result = normalize_response(_mapping({"Status": "4", "SkyddadIdentitet": "false"}))
        assert result.outcome is Outcome.NOT_FOUND

    def test_no_signal_is_malformed(self) -> None:
        result = normalize_response(_mapping({"Namn": {"Fornamn": "Anna"}}))
        assert result.outcome is Outcome.MALFORMED
        assert result.reason

    def test_unrecognised_flag_value_is_no_signal(self) -> None:
        assert normalize_response(_mapping({"SkyddadIdentitet": "maybe"})).outcome is Outcome.MALFORMED

    def test_unknown_status_code_is_malformed(self) -> None:
        result = normalize_response(_mapping({"Status": "9", "SkyddadIdentitet": "false"}))
        assert result.outcome is Outcome.MALFORMED

    def test_missing_answer_record_is_malformed(self) -> None:
        result = normalize_response({"Envelope": {"Body": {"PersonsokningSvar": {}}}})
        assert result.outcome is Outcome.MALFORMED

    def test_soap_fault_raises(self) -> None:
        fault = (
            '<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/"><soap:Body>'
            "<soap:Fault><faultcode>soap:Server</faultcode><faultstring>Ogiltigt uppdrag</faultstring></soap:Fault>"
            "</soap:Body></soap:Envelope>"
        )
        with pytest.raises(p.RegistryFaultError) as excinfo:
            normalize_response(fault)
        assert excinfo.value.fault_string == "Ogiltigt uppdrag"
        assert excinfo.value.fault_code == "soap:Server"


# ---------------------------------------------------------------------------
# Person record
# ---------------------------------------------------------------------------


class TestPersonRecord:
    def test_full_record(self, spar_response, full_answer) -> None:
        result = normalize_response(spar_response(full_answer))
        assert result.outcome is Outcome.FOUND
        assert result.record.to_dict() == {
            "name": "Test User Testsson",
            "birthDate": "1990-01-16",
            "address": {"street": "Test Street 123", "postalCode": "12345", "city": "Stockholm"},
            "protectedIdentity": False,
            "lastUpdated": "2023-01-01",
        }

    def test_name_order_includes_middle_name(self) -> None:
        answer = {
            "Status": "1",
            "Namn": {"Efternamn": "Svensson", "Mellannamn": "Berg", "Fornamn": ["Karl", "Erik"]},
        }
        assert normalize_response(_mapping(answer)).record.name == "Karl Erik Berg Svensson"

    def test_missing_name_uses_placeholder(self) -> None:
        record = normalize_response(_mapping({"Status": "1", "Namn": {"Fornamn": "  "}})).record
        assert record.name == NAME_NOT_AVAILABLE

    def test_each_address_field_falls_back_independently(self) -> None:
        answer = {"Status": "1", "Folkbokforingsadress": {"SvenskAdress": {"Postort": "Uppsala"}}}
        address = normalize_response(_mapping(answer)).record.address
        assert (address.street, address.postal_code, address.city) == (UNKNOWN, UNKNOWN, "Uppsala")

    def test_street_falls_back_to_first_delivery_line(self) -> None:
        answer = {"Status": "1", "Folkbokforingsadress": {"SvenskAdress": {"Utdelningsadress1": "Box 12"}}}
        assert normalize_response(_mapping(answer)).record.address.street == "Box 12"

    def test_all_fields_have_sentinels(self) -> None:
        record = normalize_response(_mapping({"Status": "1"})).record.to_dict()
        assert record == {
            "name": NAME_NOT_AVAILABLE,
            "birthDate": UNKNOWN,
            "address": {"street": UNKNOWN, "postalCode": UNKNOWN, "city": UNKNOWN},
            "protectedIdentity": False,
            "lastUpdated": UNKNOWN,
        }

    @pytest.mark.parametrize("raw, expected", [("19900116", "1990-01-16"), ("1990-01-16", "1990-01-16"), ("16/01/90", UNKNOWN)])
    def test_birth_date_rendering(self, raw: str, expected: str) -> None:
        answer = {"Status": "1", "Persondetaljer": {"Fodelsedatum": raw}}
        assert normalize_response(_mapping(answer)).record.birth_date == expected

    def test_last_updated_spar_variant(self) -> None:
        answer = {"Status": "1", "SenasteAndringSPAR": "2024-05-01"}
        assert normalize_response(_mapping(answer)).record.last_updated == "2024-05-01"


def test_found_outcome_requires_record() -> None:
    with pytest.raises(ValueError):
        LookupOutcome(Outcome.FOUND)
    with pytest.raises(ValueError):
        LookupOutcome(Outcome.NOT_FOUND, record=normalize_response(_mapping({"Status": "1"})).record)
