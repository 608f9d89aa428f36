"""Registry gateway: the single authenticated call to SPAR.

The lookup core depends only on the :class:`RegistryGateway` protocol.
:class:`SparGateway` is the production adapter: it posts a SOAP 1.1
``PersonsokningFraga`` over mutual TLS with ``httpx`` and hands the raw
response body back untouched.  Interpreting the body is the
normalizer's job, including SOAP faults, which SPAR returns with
HTTP 500.

Lifecycle
---------
The gateway owns one ``httpx.AsyncClient``.  It is created by
:func:`build_gateway` in the application lifespan and closed there with
:meth:`SparGateway.aclose`; nothing here is a module-level singleton.

Safety rule: the identity number is never logged.  Observability around
the call is the orchestrator's responsibility.
"""
from __future__ import annotations

import logging
import ssl
from typing import Any, Protocol

import httpx
from lxml import etree

from app.core.settings import Settings

logger = logging.getLogger(__name__)

SOAP_ENV_NS = "http://schemas.xmlsoap.org/soap/envelope/"
WSSE_NS = "http://docs.oasis-open.org/wss/2004/01/oasis-200401-wss-wssecurity-secext-1.0.xsd"
SPAR_NS = "http://statenspersonadressregister.se/schema/personsok/2021.1/personsokningfraga"
IDINFO_NS = "http://statenspersonadressregister.se/schema/komponent/metadata/identifieringsinformationWs-1.1"

# Statuses meaning the registry could not be reached or refused our credentials.
UNAVAILABLE_STATUSES: frozenset[int] = frozenset({401, 403, 502, 503, 504})


# ---------------------------------------------------------------------------
# Custom exceptions
# ---------------------------------------------------------------------------


class RegistryUnavailableError(ConnectionError):
    """Raised on transport, certificate or availability failures."""


# ---------------------------------------------------------------------------
# Collaborator protocol
# ---------------------------------------------------------------------------


class RegistryGateway(Protocol):
    async def lookup(self, personnummer: str) -> Any:
        """Return the raw registry payload for a normalized 12-digit number."""
        ...

    async def aclose(self) -> None:
        ...


class UnavailableGateway:
    """Stand-in used when SPAR is not configured; every lookup fails."""

    def __init__(self, reason: str) -> None:
        self.reason = reason

    async def lookup(self, personnummer: str) -> Any:
        raise RegistryUnavailableError(self.reason)

    async def aclose(self) -> None:
        return None


# ---------------------------------------------------------------------------
# SOAP request
# ---------------------------------------------------------------------------


def build_request_envelope(
    personnummer: str,
    *,
    customer_number: str,
    assignment_id: str,
    end_user_id: str,
) -> bytes:
    """Return the SOAP 1.1 envelope for a ``PersonsokningFraga``."""
    envelope = etree.Element(
        f"{{{SOAP_ENV_NS}}}Envelope",
        nsmap={"soapenv": SOAP_ENV_NS, "wsse": WSSE_NS, "per": SPAR_NS, "id": IDINFO_NS},
    )

    header = etree.SubElement(envelope, f"{{{SOAP_ENV_NS}}}Header")
    security = etree.SubElement(header, f"{{{WSSE_NS}}}Security")
    token = etree.SubElement(security, f"{{{WSSE_NS}}}UsernameToken")
    etree.SubElement(token, f"{{{WSSE_NS}}}Username").text = customer_number
    etree.SubElement(token, f"{{{WSSE_NS}}}Password").text = assignment_id

    body = etree.SubElement(envelope, f"{{{SOAP_ENV_NS}}}Body")
    question = etree.SubElement(body, f"{{{SPAR_NS}}}SPARPersonsokningFraga")
    ident = etree.SubElement(question, f"{{{IDINFO_NS}}}Identifieringsinformation")
    etree.SubElement(ident, f"{{{IDINFO_NS}}}KundNrLeveransMottagare").text = customer_number
    etree.SubElement(ident, f"{{{IDINFO_NS}}}KundNrSlutkund").text = customer_number
    etree.SubElement(ident, f"{{{IDINFO_NS}}}UppdragId").text = assignment_id
    etree.SubElement(ident, f"{{{IDINFO_NS}}}SlutAnvandarId").text = end_user_id
    search = etree.SubElement(question, f"{{{SPAR_NS}}}PersonsokningFraga")
    etree.SubElement(search, f"{{{SPAR_NS}}}IdNummer").text = personnummer

    return etree.tostring(envelope, xml_declaration=True, encoding="UTF-8")


# ---------------------------------------------------------------------------
# SparGateway
# ---------------------------------------------------------------------------


def build_ssl_context(settings: Settings) -> ssl.SSLContext:
    """Return a mutual-TLS context from the certificates in ``SPAR_CERT_DIR``.

    Server verification is only enforced in production.

    Raises
    ------
    OSError
        If a certificate file is missing or unreadable.
    ssl.SSLError
        If a certificate or key cannot be loaded.
    """
    cert, key, ca = settings.spar_cert_paths
    context = ssl.create_default_context(cafile=str(ca))
    if not settings.is_production:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    context.load_cert_chain(certfile=str(cert), keyfile=str(key))
    return context


class SparGateway:
    """Asynchronous SPAR ``PersonSok`` client.

    Parameters
    ----------
    endpoint_url:
        SPAR service endpoint.
    customer_number, assignment_id:
        Credentials sent in the WS-Security header and the
        ``Identifieringsinformation`` block.
    end_user_id:
        ``SlutAnvandarId`` reported to SPAR.
    client:
        The ``httpx.AsyncClient`` to send requests with.  The gateway
        closes it in :meth:`aclose`.
    """

    def __init__(
        self,
        *,
        endpoint_url: str,
        customer_number: str,
        assignment_id: str,
        end_user_id: str,
        client: httpx.AsyncClient,
    ) -> None:
        self.endpoint_url = endpoint_url
        self.customer_number = customer_number
        self.assignment_id = assignment_id
        self.end_user_id = end_user_id
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> SparGateway:
        client = httpx.AsyncClient(
            verify=build_ssl_context(settings),
            timeout=httpx.Timeout(settings.spar_timeout_seconds),
            headers={"Content-Type": "text/xml; charset=utf-8", "SOAPAction": '""'},
        )
        return cls(
            endpoint_url=settings.spar_endpoint_url,
            customer_number=settings.spar_customer_number,
            assignment_id=settings.spar_assignment_id,
            end_user_id=settings.spar_end_user_id,
            client=client,
        )

    async def lookup(self, personnummer: str) -> bytes:
        """Send one ``PersonsokningFraga`` and return the raw response body.

        Raises
        ------
        RegistryUnavailableError
            On timeouts, connection and TLS failures, undecodable
            responses, and HTTP statuses in :data:`UNAVAILABLE_STATUSES`.
        """
        envelope = build_request_envelope(
            personnummer,
            customer_number=self.customer_number,
            assignment_id=self.assignment_id,
            end_user_id=self.end_user_id,
        )
        try:
            response = await self._client.post(self.endpoint_url, content=envelope)
        except httpx.TimeoutException as exc:
            raise RegistryUnavailableError("SPAR request timed out") from exc
        except httpx.TransportError as exc:
            raise RegistryUnavailableError(f"Cannot connect to SPAR: {exc}") from exc
        except httpx.HTTPError as exc:
            raise RegistryUnavailableError(f"SPAR HTTP error: {exc}") from exc

        if response.status_code in UNAVAILABLE_STATUSES:
            raise RegistryUnavailableError(f"SPAR answered HTTP {response.status_code}")
        return response.content

    async def aclose(self) -> None:
        await self._client.aclose()


def build_gateway(settings: Settings) -> RegistryGateway:
    """Return the gateway the application should use for *settings*.

    Falls back to :class:`UnavailableGateway` when SPAR is not configured
    or its certificates cannot be loaded, so lookups answer 503 instead
    of the service failing to start.
    """
    if not settings.registry_configured:
        logger.warning("SPAR is not configured; lookups will report the registry as unavailable")
        return UnavailableGateway("SPAR is not configured")
    try:
        return SparGateway.from_settings(settings)
    except OSError as exc:
        logger.error("Cannot load SPAR client certificates from %s: %s", settings.spar_cert_dir, exc)
        return UnavailableGateway("SPAR client certificates could not be loaded")
