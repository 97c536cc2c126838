"""Service control protocol descriptions (SCPD) of UPnP services."""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Optional, Union

SCPD_XML_NAMESPACE = "urn:schemas-upnp-org:service-1-0"

_INT_RX = re.compile(r"[+-]?[0-9]+")


def _local(tag: str) -> str:
    return tag.rpartition("}")[2]


def _kids(elem: ET.Element, name: str) -> list[ET.Element]:
    return [c for c in elem if isinstance(c.tag, str) and _local(c.tag) == name]


def _path(elem: ET.Element, *names: str) -> list[ET.Element]:
    elems = [elem]
    for name in names:
        elems = [child for e in elems for child in _kids(e, name)]
    return elems


def _direct_text(elem: ET.Element) -> str:
    return (elem.text or "") + "".join(child.tail or "" for child in elem)


def _text(elem: ET.Element, name: str) -> str:
    matches = _kids(elem, name)
    return _direct_text(matches[-1]) if matches else ""


def _attr(elem: ET.Element, name: str) -> str:
    for key, value in elem.attrib.items():
        if _local(key) == name:
            return value
    return ""


def _int32(elem: ET.Element, name: str) -> int:
    text = _text(elem, name).strip()
    if not text:
        return 0
    if _INT_RX.fullmatch(text) is None:
        raise ValueError(f"scpd: invalid integer {text!r} in <{name}>")
    value = int(text)
    if not -(2**31) <= value < 2**31:
        raise ValueError(f"scpd: integer {text!r} in <{name}> out of range")
    return value


@dataclass
class SpecVersion:
    """Version of the specification that a document adheres to."""

    major: int = 0
    minor: int = 0


@dataclass
class Argument:
    name: str = ""
    direction: str = ""
    related_state_variable: str = ""
    retval: str = ""

    def is_input(self) -> bool:
        return self.direction == "in"

    def is_output(self) -> bool:
        return self.direction == "out"

    def _clean(self) -> None:
        self.name = self.name.strip()
        self.direction = self.direction.strip()
        self.related_state_variable = self.related_state_variable.strip()
        self.retval = self.retval.strip()


@dataclass
class Action:
    name: str = ""
    arguments: list[Argument] = field(default_factory=list)

    def input_arguments(self) -> list[Argument]:
        return [arg for arg in self.arguments if arg.is_input()]

    def output_arguments(self) -> list[Argument]:
        return [arg for arg in self.arguments if arg.is_output()]

    def _clean(self) -> None:
        self.name = self.name.strip()
        for arg in self.arguments:
            arg._clean()


@dataclass
class AllowedValueRange:
    minimum: str = ""
    maximum: str = ""
    step: str = ""

    def _clean(self) -> None:
        self.minimum = self.minimum.strip()
        self.maximum = self.maximum.strip()
        self.step = self.step.strip()


@dataclass
class DataType:
    name: str = ""
    type: str = ""

    def _clean(self) -> None:
        self.name = self.name.strip()
        self.type = self.type.strip()


@dataclass
class StateVariable:
    name: str = ""
    send_events: str = ""
    multicast: str = ""
    data_type: DataType = field(default_factory=DataType)
    default_value: str = ""
    allowed_value_range: Optional[AllowedValueRange] = None
    allowed_values: list[str] = field(default_factory=list)

    def _clean(self) -> None:
        self.name = self.name.strip()
        self.send_events = self.send_events.strip()
        self.multicast = self.multicast.strip()
        self.data_type._clean()
        self.default_value = self.default_value.strip()
        if self.allowed_value_range is not None:
            self.allowed_value_range._clean()
        self.allowed_values = [value.strip() for value in self.allowed_values]


def _argument_from(elem: ET.Element) -> Argument:
    return Argument(
        name=_text(elem, "name"),
        direction=_text(elem, "direction"),
        related_state_variable=_text(elem, "relatedStateVariable"),
        retval=_text(elem, "retval"),
    )


def _action_from(elem: ET.Element) -> Action:
    return Action(
        name=_text(elem, "name"),
        arguments=[_argument_from(a) for a in _path(elem, "argumentList", "argument")],
    )


def _state_variable_from(elem: ET.Element) -> StateVariable:
    data_types = _kids(elem, "dataType")
    data_type = DataType()
    if data_types:
        data_type = DataType(_direct_text(data_types[-1]), _attr(data_types[-1], "type"))
    ranges = _kids(elem, "allowedValueRange")
    value_range = None
    if ranges:
        last = ranges[-1]
        value_range = AllowedValueRange(
            _text(last, "minimum"), _text(last, "maximum"), _text(last, "step")
        )
    return StateVariable(
        name=_text(elem, "name"),
        send_events=_attr(elem, "sendEvents"),
        multicast=_attr(elem, "multicast"),
        data_type=data_type,
        default_value=_text(elem, "defaultValue"),
        allowed_value_range=value_range,
        allowed_values=[
            _direct_text(v) for v in _path(elem, "allowedValueList", "allowedValue")
        ],
    )


@dataclass
class SCPD:
    """A service description: its actions and state variables."""

    config_id: str = ""
    spec_version: SpecVersion = field(default_factory=SpecVersion)
    actions: list[Action] = field(default_factory=list)
    state_variables: list[StateVariable] = field(default_factory=list)

    @classmethod
    def from_xml(cls, data: Union[bytes, str]) -> "SCPD":
        """Parse an SCPD document."""
        try:
            root = ET.fromstring(data)
        except ET.ParseError as exc:
            raise ValueError(f"scpd: malformed XML: {exc}") from exc
        if _local(root.tag) != "scpd":
            raise ValueError(
                f"scpd: expected element type <scpd> but have <{_local(root.tag)}>"
            )
        versions = _kids(root, "specVersion")
        spec_version = SpecVersion()
        if versions:
            spec_version = SpecVersion(
                _int32(versions[-1], "major"), _int32(versions[-1], "minor")
            )
        return cls(
            config_id=_attr(root, "configId"),
            spec_version=spec_version,
            actions=[_action_from(a) for a in _path(root, "actionList", "action")],
            state_variables=[
                _state_variable_from(v)
                for v in _path(root, "serviceStateTable", "stateVariable")
            ],
        )

    def clean(self) -> None:
        """Strip the stray whitespace common in SCPD documents, in place."""
        self.config_id = self.config_id.strip()
        for action in self.actions:
            action._clean()
        for variable in self.state_variables:
            variable._clean()

    def ordered_actions(self) -> list[Action]:
        """The actions sorted by name, keeping document order for ties."""
        return sorted(self.actions, key=lambda action: action.name)

    def get_state_variable(self, name: str) -> Optional[StateVariable]:
        return next((v for v in self.state_variables if v.name == name), None)

    def get_action(self, name: str) -> Optional[Action]:
        return next((a for a in self.actions if a.name == name), None)