"""
Shared fixtures: an in-memory stand-in for the Notification Center AX tree.
"""

import pytest


class FakeNode:
    """UI element with fixed attributes, actions and children.

    ``actions`` maps action name → description. ``perform_results`` maps action
    name → AX error code returned by perform_action (default 0).
    """

    def __init__(self, name="node", description=None, identifier=None, value=None,
                 actions=None, children=None, perform_results=None, raises=False):
        self.name = name
        self.attrs = {
            "AXDescription": description,
            "AXIdentifier": identifier,
            "AXValue": value,
        }
        self.actions = dict(actions or {})
        self._children = list(children or [])
        self.perform_results = dict(perform_results or {})
        self.raises = raises
        self.performed = []
        self.children_reads = 0

    def children(self):
        self.children_reads += 1
        if self.raises:
            raise RuntimeError(f"{self.name} vanished")
        return list(self._children)

    def attribute(self, key):
        if self.raises:
            raise RuntimeError(f"{self.name} vanished")
        return self.attrs.get(key)

    def action_names(self):
        if self.raises:
            raise RuntimeError(f"{self.name} vanished")
        return list(self.actions)

    def action_description(self, name):
        return self.actions.get(name)

    def perform_action(self, name):
        self.performed.append(name)
        return self.perform_results.get(name, 0)

    def __repr__(self):
        return f"FakeNode({self.name})"


def all_performed(root):
    """Every (node name, action) performed anywhere under and including root."""
    out = [(root.name, a) for a in root.performed]
    for child in root._children:
        out.extend(all_performed(child))
    return out


@pytest.fixture
def make_node():
    return FakeNode


@pytest.fixture
def airplay_alert():
    """Combined-sentence rendering of the AirPlay request alert."""
    return FakeNode(
        name="alert",
        description="AirPlay would like to AirPlay to this Mac.",
        actions={"Name:Accept": "Accept", "Name:Decline": "Decline"},
    )
