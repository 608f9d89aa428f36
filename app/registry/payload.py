"""Tolerant parser for registry payloads.

The registry answers in SOAP/XML whose namespace prefixes vary by
deployment, and SOAP client libraries hand the same answer back as a
mapping tree in which a repeated element is sometimes a scalar and
sometimes a one-element list.  Both shapes are reduced to one
intermediate tree before any field is interpreted:

* every element name is its local name (``ns2:Status`` -> ``Status``);
* every key maps to a **list** of children, each either a nested tree or
  a stripped text value;
* attributes, comments and processing instructions are dropped.

Accessors (:func:`text`, :func:`texts`, :func:`find`) then read
"present, singular" and multi-valued fields the same way regardless of
the variant the registry sent.
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Union

from lxml import etree

Tree = dict[str, list[Union["Tree", str]]]

# Keys SOAP client libraries use for element text and attributes.
_TEXT_KEYS = ("$value", "#text", "_value_1")
_ATTRIBUTE_KEYS = frozenset({"$", "$attributes", "attributes", "$xml"})


class RegistryPayloadError(ValueError):
    """Raised when a payload cannot be read as a registry document."""


class RegistryFaultError(RegistryPayloadError):
    """Raised when the payload is a SOAP fault rather than an answer."""

    def __init__(self, fault_code: str | None, fault_string: str | None) -> None:
        self.fault_code = fault_code
        self.fault_string = fault_string
        super().__init__(f"Registry returned SOAP fault {fault_code or '?'}: {fault_string or 'no reason given'}")


def local_name(name: str) -> str:
    """Strip a ``prefix:`` or ``{namespace}`` decoration from *name*."""
    if name.startswith("{"):
        name = name.rpartition("}")[2]
    return name.rpartition(":")[2]


# ---------------------------------------------------------------------------
# XML
# ---------------------------------------------------------------------------

_XML_PARSER_OPTIONS = dict(resolve_entities=False, no_network=True, remove_comments=True, remove_pis=True)


def _element_to_tree(element: etree._Element) -> Tree | str:
    children = [child for child in element if isinstance(child.tag, str)]
    if not children:
        return (element.text or "").strip()
    node: Tree = {}
    for child in children:
        node.setdefault(etree.QName(child).localname, []).append(_element_to_tree(child))
    return node


def _parse_xml(document: bytes, encoding: str | None = None) -> Tree:
    # A str payload was already decoded; its XML declaration no longer applies.
    parser = etree.XMLParser(encoding=encoding, **_XML_PARSER_OPTIONS)
    try:
        root = etree.fromstring(document, parser=parser)
    except etree.XMLSyntaxError as exc:
        raise RegistryPayloadError(f"Registry payload is not well-formed XML: {exc}") from exc
    if root is None:
        raise RegistryPayloadError("Registry payload is empty")
    return {etree.QName(root).localname: [_element_to_tree(root)]}


# ---------------------------------------------------------------------------
# Mapping trees
# ---------------------------------------------------------------------------


def _scalar_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value).strip()


def _value_to_tree(value: Any) -> Tree | str:
    if not isinstance(value, Mapping):
        return _scalar_text(value)
    for key in _TEXT_KEYS:
        if key in value:
            return _scalar_text(value[key])
    return _mapping_to_tree(value)


def _mapping_to_tree(mapping: Mapping) -> Tree:
    node: Tree = {}
    for key, value in mapping.items():
        if not isinstance(key, str) or key in _ATTRIBUTE_KEYS or value is None:
            continue
        items = value if isinstance(value, (list, tuple)) else [value]
        converted = [_value_to_tree(item) for item in items if item is not None]
        node.setdefault(local_name(key), []).extend(converted)
    return node


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_payload(payload: Any) -> Tree:
    """Return the intermediate tree for an XML document or mapping tree.

    Raises
    ------
    RegistryPayloadError
        If *payload* is empty, not well-formed XML, or of an unsupported
        type.
    """
    encoding = None
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
        encoding = "utf-8"
    if isinstance(payload, (bytes, bytearray)):
        if not payload.strip():
            raise RegistryPayloadError("Registry payload is empty")
        return _parse_xml(bytes(payload), encoding)
    if isinstance(payload, Mapping):
        return _mapping_to_tree(payload)
    raise RegistryPayloadError(f"Unsupported registry payload type: {type(payload).__name__}")


def find(node: Tree, *path: str) -> list[Tree | str]:
    """Return every value reached by following *path* from *node*."""
    current: list[Tree | str] = [node]
    for name in path:
        current = [child for item in current if isinstance(item, dict) for child in item.get(name, [])]
    return current


def find_descendant(node: Tree, name: str) -> Tree | None:
    """Return the shallowest nested tree named *name*, searching breadth-first."""
    queue: list[Tree] = [node]
    while queue:
        current = queue.pop(0)
        for child in current.get(name, []):
            if isinstance(child, dict):
                return child
        queue.extend(child for values in current.values() for child in values if isinstance(child, dict))
    return None


def texts(node: Tree, *path: str) -> list[str]:
    """Return every non-empty text value at *path* (multi-valued fields)."""
    return [value for value in find(node, *path) if isinstance(value, str) and value]


def text(node: Tree, *path: str) -> str | None:
    """Return the first non-empty text value at *path*, or ``None``."""
    values = texts(node, *path)
    return values[0] if values else None


def check_fault(tree: Tree) -> None:
    """Raise :class:`RegistryFaultError` if *tree* carries a SOAP fault."""
    fault = find_descendant(tree, "Fault")
    if fault is None:
        return
    code = text(fault, "faultcode") or text(fault, "Code", "Value")
    reason = text(fault, "faultstring") or text(fault, "Reason", "Text")
    raise RegistryFaultError(code, reason)
