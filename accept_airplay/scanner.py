"""
AirPlay notification scanner.

Walks the Notification Center accessibility tree depth-first and performs the
"accept" action on the one element that represents an incoming AirPlay request.

Matching is layered:
- Action predicate: action name starts with ``name:accept`` and its
  description is ``accept`` (both case-insensitive).
- Attribute predicate on the element owning the action, covering the two known
  renderings of the alert:
    1. AXDescription is the whole sentence
       ("AirPlay ... would like to AirPlay to this Mac.")
    2. AXDescription is just "AirPlay" and a child identified as "body" carries
       the sentence in its AXValue.

At most one action is performed per scan. Nothing here raises: read misses and
failed actions are logged and treated as non-matches.
"""

import logging
import re
from typing import Any, Callable, Dict, List, Optional, Protocol

from accept_airplay.config import MAX_SCAN_DEPTH

logger = logging.getLogger(__name__)

ACCEPT_ACTION_PREFIX = "name:accept"
ACCEPT_ACTION_DESCRIPTION = "accept"
AIRPLAY_DESCRIPTION = "airplay"
BODY_IDENTIFIER = "body"

AIRPLAY_ALERT_RE = re.compile(r"airplay.+would like to airplay to this mac\.", re.IGNORECASE)
AIRPLAY_BODY_RE = re.compile(r".+would like to airplay to this mac\.", re.IGNORECASE)

# Attribute keys (AX names)
DESCRIPTION = "AXDescription"
IDENTIFIER = "AXIdentifier"
VALUE = "AXValue"
ROLE = "AXRole"


class UIElementNode(Protocol):
    """Read interface over a node of an externally owned UI tree."""

    def children(self) -> List["UIElementNode"]: ...

    def attribute(self, key: str) -> Any: ...

    def action_names(self) -> List[str]: ...

    def action_description(self, name: str) -> Optional[str]: ...

    def perform_action(self, name: str) -> int: ...


def _read(what, fn, *args, default=None):
    """Call a node accessor, turning any failure into ``default``."""
    try:
        value = fn(*args)
    except Exception as e:
        logger.debug("%s failed: %s", what, e)
        return default
    return default if value is None else value


def _children(node):
    return list(_read("children read", node.children, default=[]))


def _string(node, key):
    value = _read(f"{key} read", node.attribute, key)
    return value if isinstance(value, str) else None


class NotificationsScanner:
    """Finds and accepts AirPlay request notifications."""

    def __init__(self, root_provider: Callable[[], Optional[UIElementNode]],
                 max_depth: int = MAX_SCAN_DEPTH):
        self.root_provider = root_provider
        self.max_depth = max_depth

    def scan_for_airplay_alerts(self) -> None:
        """Fetch the live notification root and scan it."""
        root = _read("root lookup", self.root_provider)
        if root is None:
            return
        logger.debug("scanning for airplay notifications")
        self.scan(root)

    def scan(self, root: UIElementNode) -> None:
        """Accept the first qualifying AirPlay alert under ``root``, if any."""
        self._find_and_action(root, 0)

    # ---------------- Traversal ----------------

    def _find_and_action(self, element, depth) -> bool:
        if depth >= self.max_depth:
            logger.debug("max scan depth %d reached", self.max_depth)
            return False

        for child in _children(element):
            for name in _read("action names read", child.action_names, default=[]):
                if not self.action_matches(child, name):
                    continue
                logger.info("action validation passed")

                if not self.attributes_match(child):
                    continue
                logger.info("attributes validation passed")

                err = _read("perform action", child.perform_action, name, default=-1)
                if err != 0:
                    logger.error("action perform failed (AXError code: %s)", err)
                    continue
                logger.info("action performed successfully")
                return True

            if self._find_and_action(child, depth + 1):
                return True

        return False

    # ---------------- Predicates ----------------

    def action_matches(self, node: UIElementNode, name: str) -> bool:
        """Action name has the accept prefix and its description is "accept"."""
        if not str(name).lower().startswith(ACCEPT_ACTION_PREFIX):
            return False
        logger.debug("action name matched: %s", name)

        description = _read("action description read", node.action_description, name)
        if not isinstance(description, str) or description.lower() != ACCEPT_ACTION_DESCRIPTION:
            logger.debug("action description not matched: %r", description)
            return False

        logger.debug("action description matched: %s", description)
        return True

    def attributes_match(self, node: UIElementNode) -> bool:
        """Node describes an AirPlay request, in either known rendering."""
        description = _string(node, DESCRIPTION)
        if description is None:
            return False
        logger.debug("attribute description: %s", description)

        if AIRPLAY_ALERT_RE.fullmatch(description):
            return True

        if description.lower() != AIRPLAY_DESCRIPTION:
            return False

        return any(self._is_airplay_body(child) for child in _children(node))

    def _is_airplay_body(self, node) -> bool:
        identifier = _string(node, IDENTIFIER)
        if identifier is None or identifier.lower() != BODY_IDENTIFIER:
            logger.debug("attribute identifier not matched: %r", identifier)
            return False

        value = _string(node, VALUE)
        if value is None or not AIRPLAY_BODY_RE.fullmatch(value):
            logger.debug("attribute value not matched: %r", value)
            return False

        return True


# ---------------- Inspection ----------------

def describe_tree(node: UIElementNode, max_depth: int = 12) -> Dict[str, Any]:
    """Snapshot a subtree as plain data, for diagnosing new alert renderings."""
    info = {
        "role": _string(node, ROLE),
        "description": _string(node, DESCRIPTION),
        "identifier": _string(node, IDENTIFIER),
        "value": _string(node, VALUE),
        "actions": [
            {"name": name, "description": _read("action description read", node.action_description, name)}
            for name in _read("action names read", node.action_names, default=[])
        ],
    }
    if max_depth > 0:
        info["children"] = [describe_tree(c, max_depth - 1) for c in _children(node)]
    else:
        info["children"] = []
    return info
