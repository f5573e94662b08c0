"""XML helpers for the Rakuten and CJ feeds.

Both networks are inconsistent about element casing across endpoints and
API versions ("couponfeed" vs "couponFeed", "advertiserid" vs "mid"), so
lookups are case-insensitive and accept several candidate names.
"""

from lxml import etree

# Feeds occasionally contain entities/DTDs; never resolve them.
_PARSER = etree.XMLParser(resolve_entities=False, no_network=True, recover=True, huge_tree=True)


def parse_xml(payload: str | bytes) -> etree._Element | None:
    """Parse an XML document; None for empty or unparseable input."""
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    if not payload or not payload.strip():
        return None
    try:
        return etree.fromstring(payload, parser=_PARSER)
    except etree.XMLSyntaxError:
        return None


def _local_name(element: etree._Element) -> str:
    tag = element.tag
    if not isinstance(tag, str):
        return ""
    return etree.QName(tag).localname.lower()


def find_child(element: etree._Element | None, *names: str) -> etree._Element | None:
    """First direct child whose tag matches any of `names` (case-insensitive)."""
    if element is None:
        return None
    wanted = {n.lower() for n in names}
    for child in element:
        if _local_name(child) in wanted:
            return child
    return None


def find_children(element: etree._Element | None, *names: str) -> list[etree._Element]:
    """All direct children whose tag matches any of `names`."""
    if element is None:
        return []
    wanted = {n.lower() for n in names}
    return [child for child in element if _local_name(child) in wanted]


def find_descendant(element: etree._Element | None, *names: str) -> etree._Element | None:
    """First element at any depth (including `element`) matching any of `names`."""
    if element is None:
        return None
    wanted = {n.lower() for n in names}
    for node in element.iter():
        if _local_name(node) in wanted:
            return node
    return None


def child_text(element: etree._Element | None, *names: str) -> str | None:
    """Stripped text of the first matching child; None when missing or blank."""
    child = find_child(element, *names)
    if child is None or child.text is None:
        return None
    text = child.text.strip()
    return text or None


def element_to_dict(element: etree._Element) -> dict:
    """Flatten an element into a JSON-friendly dict for raw_data snapshots.

    Attributes become "@name" keys; repeated children become lists.
    """
    out: dict = {f"@{k}": v for k, v in element.attrib.items()}
    for child in element:
        name = _local_name(child)
        if not name:
            continue
        value: object = element_to_dict(child) if len(child) or child.attrib else (child.text or "").strip()
        if name in out:
            existing = out[name]
            if isinstance(existing, list):
                existing.append(value)
            else:
                out[name] = [existing, value]
        else:
            out[name] = value
    if not len(element) and element.text and element.text.strip() and out:
        out["#text"] = element.text.strip()
    return out
