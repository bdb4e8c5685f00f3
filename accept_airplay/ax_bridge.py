"""
macOS Accessibility (AX) bridge.

Thin PyObjC wrappers over AXUIElement plus the ``AXNode`` handle the scanner
walks. The UI tree belongs to another process and changes while we read it, so
every call here returns an empty/absent value instead of raising.

Requires Accessibility permission for the hosting process:
  System Settings → Privacy & Security → Accessibility
"""

import logging
from typing import List, Optional

import ApplicationServices
from AppKit import NSWorkspace
from ApplicationServices import (
    AXIsProcessTrustedWithOptions,
    AXUIElementCopyActionDescription,
    AXUIElementCopyActionNames,
    AXUIElementCopyAttributeValue,
    AXUIElementCreateApplication,
    AXUIElementPerformAction,
    kAXTrustedCheckOptionPrompt,
)

from accept_airplay.config import NOTIFICATION_CENTER_BUNDLE_ID

logger = logging.getLogger(__name__)

kAXErrorSuccess = 0
kAXErrorFailure = -25200

# AX attribute names, resolved from the bindings when present.
ATTR = {
    "AXRole": getattr(ApplicationServices, "kAXRoleAttribute", "AXRole"),
    "AXIdentifier": getattr(ApplicationServices, "kAXIdentifierAttribute", "AXIdentifier"),
    "AXValue": getattr(ApplicationServices, "kAXValueAttribute", "AXValue"),
    "AXDescription": getattr(ApplicationServices, "kAXDescriptionAttribute", "AXDescription"),
    "AXChildren": getattr(ApplicationServices, "kAXChildrenAttribute", "AXChildren"),
    "AXWindows": getattr(ApplicationServices, "kAXWindowsAttribute", "AXWindows"),
}


# ---------------- AX API Wrappers ----------------

def _unwrap(res):
    """Split a PyObjC ``(err, value)`` result; plain values pass through."""
    if isinstance(res, tuple) and len(res) == 2:
        err, value = res
        return value if err == kAXErrorSuccess else None
    return res


def ax_get(el, attr):
    """Read an AX attribute, ``None`` on any error."""
    if el is None:
        return None
    try:
        return _unwrap(AXUIElementCopyAttributeValue(el, ATTR.get(attr, attr), None))
    except Exception as e:
        logger.debug("attribute %s read failed: %s", attr, e)
        return None


def ax_children(el):
    """Return children array for an element."""
    children = ax_get(el, "AXChildren")
    return list(children) if children else []


def ax_action_names(el):
    """Return supported action names for element."""
    try:
        names = _unwrap(AXUIElementCopyActionNames(el, None)) or []
        return [str(x) for x in names]
    except Exception as e:
        logger.debug("action names read failed: %s", e)
        return []


def ax_action_description(el, name):
    try:
        desc = _unwrap(AXUIElementCopyActionDescription(el, name, None))
    except Exception as e:
        logger.debug("action description read failed for %s: %s", name, e)
        return None
    return str(desc) if desc is not None else None


def ax_perform(el, name):
    """Perform an action and return the AX error code (0 on success)."""
    try:
        err = AXUIElementPerformAction(el, name)
        # Some bindings return (err, None)
        if isinstance(err, tuple):
            err = err[0]
        return int(err)
    except Exception as e:
        logger.debug("perform %s raised: %s", name, e)
        return kAXErrorFailure


class AXNode:
    """Live handle to an AXUIElement in another process's UI tree."""

    __slots__ = ("ref",)

    def __init__(self, ref):
        self.ref = ref

    def children(self) -> List["AXNode"]:
        return [AXNode(c) for c in ax_children(self.ref)]

    def attribute(self, key: str):
        return ax_get(self.ref, key)

    def action_names(self) -> List[str]:
        return ax_action_names(self.ref)

    def action_description(self, name: str) -> Optional[str]:
        return ax_action_description(self.ref, name)

    def perform_action(self, name: str) -> int:
        return ax_perform(self.ref, name)

    def __repr__(self):
        return f"AXNode({self.ref!r})"


# ---------------- Application lookup ----------------

def running_application(bundle_id):
    """Return the first running NSRunningApplication with ``bundle_id``."""
    for app in NSWorkspace.sharedWorkspace().runningApplications():
        if app.bundleIdentifier() == bundle_id:
            return app
    return None


def notification_center_root(bundle_id: str = NOTIFICATION_CENTER_BUNDLE_ID) -> Optional[AXNode]:
    """First window of the Notification Center process, or ``None``."""
    app = running_application(bundle_id)
    if app is None:
        logger.error("no app with bundle id %s is running", bundle_id)
        return None

    app_el = AXUIElementCreateApplication(app.processIdentifier())
    windows = ax_get(app_el, "AXWindows")
    if not windows:
        logger.debug("no notification center active windows")
        return None
    return AXNode(windows[0])


# ---------------- Trust ----------------

def is_process_trusted(prompt: bool = False) -> bool:
    """Whether this process may use the AX API; optionally show the OS prompt."""
    return bool(AXIsProcessTrustedWithOptions({kAXTrustedCheckOptionPrompt: bool(prompt)}))
