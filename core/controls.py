"""
VOIDFX -- Headless Control Builder
Collects the control descriptors an effect declares so any front end (or
a test) can render them and route user changes back through
``on_change(key, value)``.
"""

from dataclasses import dataclass, field


@dataclass
class Control:
    kind: str
    label: str
    value: object = None
    on_change: object = None
    options: dict = field(default_factory=dict)

    def set(self, value):
        """Simulate a user interaction."""
        self.value = value
        if self.on_change is not None:
            self.on_change(value)


class ControlGroup:
    def __init__(self, title: str, on_toggle=None, description: str = ""):
        self.title = title
        self.description = description
        self.on_toggle = on_toggle
        self.controls: list[Control] = []

    def _add(self, control: Control) -> Control:
        self.controls.append(control)
        return control

    def add_slider(self, label, minimum, maximum, value, step, on_change):
        return self._add(Control("slider", label, value, on_change,
                                 {"min": minimum, "max": maximum, "step": step}))

    def add_select(self, label, choices, value, on_change):
        return self._add(Control("select", label, value, on_change, {"choices": list(choices)}))

    def add_toggle(self, label, value, on_change):
        return self._add(Control("toggle", label, bool(value), on_change))

    def add_color(self, label, value, on_change):
        return self._add(Control("color", label, value, on_change))

    def add_number(self, label, value, on_change):
        return self._add(Control("number", label, value, on_change))

    def add_description(self, text):
        return self._add(Control("description", text))

    def toggle(self, enabled: bool):
        if self.on_toggle is not None:
            self.on_toggle(enabled)

    def find(self, label: str) -> Control:
        for control in self.controls:
            if control.label == label:
                return control
        raise KeyError(label)


class ControlBuilder:
    """Records every group created by ``effect.get_controls``."""

    def __init__(self):
        self.groups: list[ControlGroup] = []

    def create_group(self, title, on_toggle=None, description=""):
        group = ControlGroup(title, on_toggle, description)
        self.groups.append(group)
        return group

    def group(self, title: str) -> ControlGroup:
        for g in self.groups:
            if g.title == title:
                return g
        raise KeyError(title)

    def describe(self) -> list:
        """Plain-data view of every control, for JSON front ends."""
        return [
            {
                "title": g.title,
                "description": g.description,
                "controls": [
                    {"kind": c.kind, "label": c.label, "value": c.value, **c.options}
                    for c in g.controls
                ],
            }
            for g in self.groups
        ]
