"""Conversions between Python values and the UPnP SOAP data types."""

from __future__ import annotations

import base64
import binascii
import math
import re
import struct
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from decimal import Decimal
from typing import Optional, Union
from urllib.parse import ParseResult, SplitResult, urlsplit


class SoapTypeError(ValueError):
    """Raised when a value cannot be converted to or from a SOAP type."""


# --- integers -------------------------------------------------------------

_UNSIGNED_RX = re.compile(r"[0-9]+")
_SIGNED_RX = re.compile(r"[+-]?[0-9]+")


def _format_int(value: int, low: int, high: int, kind: str) -> str:
    if isinstance(value, bool) or not isinstance(value, int):
        raise SoapTypeError(f"soap {kind}: value {value!r} is not an integer")
    if not low <= value <= high:
        raise SoapTypeError(f"soap {kind}: value {value} out of range")
    return str(value)


def _parse_int(text: str, low: int, high: int, kind: str) -> int:
    pattern = _SIGNED_RX if low < 0 else _UNSIGNED_RX
    if pattern.fullmatch(text) is None:
        raise SoapTypeError(f"soap {kind}: invalid syntax in {text!r}")
    value = int(text)
    if not low <= value <= high:
        raise SoapTypeError(f"soap {kind}: value {text!r} out of range")
    return value


_UI1 = (0, 2**8 - 1)
_UI2 = (0, 2**16 - 1)
_UI4 = (0, 2**32 - 1)
_UI8 = (0, 2**64 - 1)
_I1 = (-(2**7), 2**7 - 1)
_I2 = (-(2**15), 2**15 - 1)
_I4 = (-(2**31), 2**31 - 1)
_I8 = (-(2**63), 2**63 - 1)


def marshal_ui1(value: int) -> str:
    return _format_int(value, *_UI1, "ui1")


def unmarshal_ui1(text: str) -> int:
    return _parse_int(text, *_UI1, "ui1")


def marshal_ui2(value: int) -> str:
    return _format_int(value, *_UI2, "ui2")


def unmarshal_ui2(text: str) -> int:
    return _parse_int(text, *_UI2, "ui2")


def marshal_ui4(value: int) -> str:
    return _format_int(value, *_UI4, "ui4")


def unmarshal_ui4(text: str) -> int:
    return _parse_int(text, *_UI4, "ui4")


def marshal_ui8(value: int) -> str:
    return _format_int(value, *_UI8, "ui8")


def unmarshal_ui8(text: str) -> int:
    return _parse_int(text, *_UI8, "ui8")


def marshal_i1(value: int) -> str:
    return _format_int(value, *_I1, "i1")


def unmarshal_i1(text: str) -> int:
    return _parse_int(text, *_I1, "i1")


def marshal_i2(value: int) -> str:
    return _format_int(value, *_I2, "i2")


def unmarshal_i2(text: str) -> int:
    return _parse_int(text, *_I2, "i2")


def marshal_i4(value: int) -> str:
    return _format_int(value, *_I4, "i4")


def unmarshal_i4(text: str) -> int:
    return _parse_int(text, *_I4, "i4")


def marshal_int(value: int) -> str:
    return _format_int(value, *_I8, "int")


def unmarshal_int(text: str) -> int:
    return _parse_int(text, *_I8, "int")


# --- floating point -------------------------------------------------------

_FLOAT_RX = re.compile(
    r"[+-]?(?:(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?|inf(?:inity)?|nan)",
    re.IGNORECASE,
)


def _parse_float(text: str, kind: str) -> float:
    if _FLOAT_RX.fullmatch(text) is None:
        raise SoapTypeError(f"soap {kind}: invalid syntax in {text!r}")
    value = float(text)
    if math.isinf(value) and not text.lstrip("+-").lower().startswith("inf"):
        raise SoapTypeError(f"soap {kind}: value {text!r} out of range")
    return value


def _to_float32(value: float) -> float:
    try:
        return struct.unpack("<f", struct.pack("<f", value))[0]
    except OverflowError as exc:
        raise SoapTypeError(f"soap r4: value {value!r} out of range") from exc


def _shortest_float32_text(value: float) -> str:
    for precision in range(1, 10):
        text = f"{value:.{precision - 1}e}"
        try:
            if struct.unpack("<f", struct.pack("<f", float(text)))[0] == value:
                return text
        except OverflowError:
            continue
    return repr(value)


def _format_general(value: float, digits_text: str) -> str:
    """Format like a shortest-digit %G: exponent form outside [1e-4, 1e6)."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    sign = "-" if math.copysign(1.0, value) < 0 else ""
    if value == 0:
        return sign + "0"
    _, digit_tuple, exponent = Decimal(digits_text).normalize().as_tuple()
    digits = "".join(str(d) for d in digit_tuple)
    point = len(digits) + exponent
    exp = point - 1
    if exp < -4 or exp >= 6:
        mantissa = digits[0] + ("." + digits[1:] if len(digits) > 1 else "")
        exp_sign = "-" if exp < 0 else "+"
        return f"{sign}{mantissa}E{exp_sign}{abs(exp):02d}"
    if point <= 0:
        return f"{sign}0.{'0' * -point}{digits}"
    if point >= len(digits):
        return sign + digits + "0" * (point - len(digits))
    return f"{sign}{digits[:point]}.{digits[point:]}"


def marshal_r4(value: float) -> str:
    single = _to_float32(float(value))
    if math.isfinite(single) and single != 0:
        return _format_general(single, _shortest_float32_text(abs(single)))
    return _format_general(single, "0")


def unmarshal_r4(text: str) -> float:
    return _to_float32(_parse_float(text, "r4"))


def marshal_r8(value: float) -> str:
    value = float(value)
    if math.isfinite(value) and value != 0:
        return _format_general(value, repr(abs(value)))
    return _format_general(value, "0")


def unmarshal_r8(text: str) -> float:
    return _parse_float(text, "r8")


def marshal_fixed14_4(value: float) -> str:
    """Marshal a float to the "fixed.14.4" type."""
    if value >= 1e14 or value <= -1e14:
        raise SoapTypeError(f"soap fixed14.4: value {value} out of bounds")
    return f"{value:.4f}"


def unmarshal_fixed14_4(text: str) -> float:
    """Unmarshal a float from the "fixed.14.4" type."""
    value = _parse_float(text, "fixed14.4")
    if value >= 1e14 or value <= -1e14:
        raise SoapTypeError(f"soap fixed14.4: value {text!r} out of bounds")
    return value


# --- characters and strings -----------------------------------------------


def marshal_char(value: str) -> str:
    """Marshal a single character to the "char" type."""
    if not isinstance(value, str) or len(value) != 1:
        raise SoapTypeError(f"soap char: value {value!r} is not a single character")
    if value == "\x00":
        raise SoapTypeError("soap char: rune 0 is not allowed")
    return value


def unmarshal_char(text: str) -> str:
    """Unmarshal a single character from the "char" type."""
    if not text:
        raise SoapTypeError("soap char: got empty string")
    if len(text) != 1:
        raise SoapTypeError(f"soap char: value {text!r} is not a single rune")
    return text


def marshal_string(value: str) -> str:
    return value


def unmarshal_string(text: str) -> str:
    return text


# --- dates and times ------------------------------------------------------

_DATE_RXS = (
    re.compile(r"([0-9]{4})(?:-([0-9]{2})(?:-([0-9]{2}))?)?"),
    re.compile(r"([0-9]{4})(?:([0-9]{2})(?:([0-9]{2}))?)?"),
)
_TIME_RXS = (
    re.compile(r"([0-9]{2})(?::([0-9]{2})(?::([0-9]{2}))?)?"),
    re.compile(r"([0-9]{2})(?:([0-9]{2})(?:([0-9]{2}))?)?"),
)
_TIMEZONE_RX = re.compile(r"([+-])([0-9]{2})(?::?([0-9]{2}))?")
_DATETIME_ZONE_RX = re.compile(r"([^T]+)(?:T([^-+Z]+)(.+)?)?")


def _first_match(patterns, text: str) -> Optional[re.Match]:
    for pattern in patterns:
        match = pattern.fullmatch(text)
        if match is not None:
            return match
    return None


def _parse_date_parts(text: str) -> tuple[int, int, int]:
    match = _first_match(_DATE_RXS, text)
    if match is None:
        raise SoapTypeError(
            f"soap date: value {text!r} is not in a recognized ISO8601 date format"
        )
    year, month, day = match.groups()
    return int(year), int(month) if month else 1, int(day) if day else 1


def _parse_time_parts(text: str) -> tuple[int, int, int]:
    match = _first_match(_TIME_RXS, text)
    if match is None:
        raise SoapTypeError(f"soap time: value {text!r} is not in ISO8601 time format")
    hour, minute, second = match.groups()
    return int(hour), int(minute) if minute else 0, int(second) if second else 0


def _parse_timezone(text: str) -> int:
    """Return the UTC offset in seconds for an ISO8601 zone designator."""
    if text == "Z":
        return 0
    match = _TIMEZONE_RX.fullmatch(text)
    if match is None:
        raise SoapTypeError(
            f"soap timezone: value {text!r} is not in ISO8601 timezone format"
        )
    sign, hours, minutes = match.groups()
    offset = int(hours) * 3600 + (int(minutes) * 60 if minutes else 0)
    return -offset if sign == "-" else offset


def _split_datetime_zone(text: str) -> tuple[str, str, str]:
    match = _DATETIME_ZONE_RX.fullmatch(text)
    if match is None:
        raise SoapTypeError(
            f"soap date/time/zone: value {text!r} is not in ISO8601 datetime format"
        )
    date_str, time_str, zone_str = match.groups()
    return date_str, time_str or "", zone_str or ""


def _fixed_zone(offset: int) -> tzinfo:
    try:
        return timezone(timedelta(seconds=offset))
    except ValueError as exc:
        raise SoapTypeError(f"soap timezone: offset {offset}s out of range") from exc


def _build_datetime(
    year: int,
    month: int,
    day: int,
    hour: int = 0,
    minute: int = 0,
    second: int = 0,
    tz: Optional[tzinfo] = None,
) -> datetime:
    """Build a datetime, carrying out-of-range fields into larger units."""
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    try:
        naive = datetime(year, month, 1) + timedelta(
            days=day - 1, hours=hour, minutes=minute, seconds=second
        )
    except (ValueError, OverflowError) as exc:
        raise SoapTypeError(f"soap date: {exc}") from exc
    if tz is None:
        return naive.astimezone()
    return naive.replace(tzinfo=tz)


def _in_zone(value: datetime, tz: Optional[tzinfo]) -> datetime:
    return value.astimezone() if tz is None else value.astimezone(tz)


def marshal_date(value: Union[date, datetime], tz: Optional[tzinfo] = None) -> str:
    """Marshal to the "date" type, converting to ``tz`` (local time by default)."""
    if isinstance(value, datetime):
        value = _in_zone(value, tz)
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def unmarshal_date(text: str, tz: Optional[tzinfo] = None) -> datetime:
    """Unmarshal the "date" type as midnight in ``tz`` (local time by default)."""
    year, month, day = _parse_date_parts(text)
    return _build_datetime(year, month, day, tz=tz)


@dataclass(frozen=True)
class TimeOfDay:
    """A value of the SOAP "time" or "time.tz" type."""

    from_midnight: timedelta = timedelta(0)
    has_offset: bool = False
    # UTC offset in seconds; only meaningful when has_offset is set.
    offset: int = 0


def _clock_fields(from_midnight: timedelta) -> tuple[int, int, int]:
    total = int(from_midnight.total_seconds())
    sign = -1 if total < 0 else 1
    hours, rest = divmod(abs(total), 3600)
    minutes, seconds = divmod(rest, 60)
    return sign * hours, sign * minutes, sign * seconds


def marshal_time_of_day(value: TimeOfDay) -> str:
    hour, minute, second = _clock_fields(value.from_midnight)
    return f"{hour:02d}:{minute:02d}:{second:02d}"


def unmarshal_time_of_day(text: str) -> TimeOfDay:
    result = unmarshal_time_of_day_tz(text)
    if result.has_offset:
        raise SoapTypeError(f"soap time: value {text!r} contains unexpected timezone")
    return result


def marshal_time_of_day_tz(value: TimeOfDay) -> str:
    hour, minute, second = _clock_fields(value.from_midnight)
    zone = ""
    if value.has_offset:
        if value.offset == 0:
            zone = "Z"
        else:
            offset_mins = abs(value.offset) // 60 * (-1 if value.offset < 0 else 1)
            sign = "+"
            if offset_mins < 1:
                offset_mins = -offset_mins
                sign = "-"
            zone = f"{sign}{offset_mins // 60:02d}:{offset_mins % 60:02d}"
    return f"{hour:02d}:{minute:02d}:{second:02d}{zone}"


def unmarshal_time_of_day_tz(text: str) -> TimeOfDay:
    zone_match = re.search(r"[Z+-]", text)
    if zone_match is None:
        time_part, has_offset, offset = text, False, 0
    else:
        time_part = text[: zone_match.start()]
        has_offset = True
        offset = _parse_timezone(text[zone_match.start():])

    hour, minute, second = _parse_time_parts(time_part)
    from_midnight = timedelta(hours=hour, minutes=minute, seconds=second)
    # ISO8601 allows 24:00:00, hence strictly greater-than.
    if from_midnight > timedelta(hours=24) or minute >= 60 or second >= 60:
        raise SoapTypeError(f"soap time.tz: value {text!r} has value(s) out of range")
    return TimeOfDay(from_midnight, has_offset, offset)


def marshal_datetime(value: datetime, tz: Optional[tzinfo] = None) -> str:
    """Marshal to the "dateTime" type in ``tz`` (local time by default)."""
    value = _in_zone(value, tz)
    return (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d}"
        f"T{value.hour:02d}:{value.minute:02d}:{value.second:02d}"
    )


def unmarshal_datetime(text: str, tz: Optional[tzinfo] = None) -> datetime:
    """Unmarshal the "dateTime" type into ``tz`` (local time by default)."""
    date_str, time_str, zone_str = _split_datetime_zone(text)
    if zone_str:
        raise SoapTypeError(f"soap datetime: unexpected timezone in {text!r}")
    year, month, day = _parse_date_parts(date_str)
    hour = minute = second = 0
    if time_str:
        hour, minute, second = _parse_time_parts(time_str)
    return _build_datetime(year, month, day, hour, minute, second, tz)


def marshal_datetime_tz(value: datetime) -> str:
    """Marshal to the "dateTime.tz" type, in the value's own zone."""
    if value.tzinfo is None:
        value = value.astimezone()
    offset = int(value.utcoffset().total_seconds()) // 60 if value.utcoffset() else 0
    sign = "-" if offset < 0 else "+"
    offset = abs(offset)
    return (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d}"
        f"T{value.hour:02d}:{value.minute:02d}:{value.second:02d}"
        f"{sign}{offset // 60:02d}:{offset % 60:02d}"
    )


def unmarshal_datetime_tz(text: str, tz: Optional[tzinfo] = None) -> datetime:
    """Unmarshal the "dateTime.tz" type; without a zone, ``tz`` is used."""
    date_str, time_str, zone_str = _split_datetime_zone(text)
    year, month, day = _parse_date_parts(date_str)
    hour = minute = second = 0
    zone = tz
    if time_str:
        hour, minute, second = _parse_time_parts(time_str)
        if zone_str:
            offset = _parse_timezone(zone_str)
            zone = timezone.utc if offset == 0 else _fixed_zone(offset)
    return _build_datetime(year, month, day, hour, minute, second, zone)


# --- booleans, binary and URIs --------------------------------------------


def marshal_boolean(value: bool) -> str:
    return "1" if value else "0"


def unmarshal_boolean(text: str) -> bool:
    if text in ("0", "false", "no"):
        return False
    if text in ("1", "true", "yes"):
        return True
    raise SoapTypeError(f"soap boolean: {text!r} is not a valid boolean value")


def marshal_bin_base64(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


def unmarshal_bin_base64(text: str) -> bytes:
    try:
        return base64.b64decode(text.replace("\r", "").replace("\n", ""), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise SoapTypeError(f"soap bin.base64: {exc}") from exc


def marshal_bin_hex(value: bytes) -> str:
    return value.hex()


def unmarshal_bin_hex(text: str) -> bytes:
    try:
        return binascii.unhexlify(text)
    except (binascii.Error, ValueError) as exc:
        raise SoapTypeError(f"soap bin.hex: {exc}") from exc


def marshal_uri(value: Union[SplitResult, ParseResult, str]) -> str:
    if isinstance(value, str):
        return value
    return value.geturl()


def unmarshal_uri(text: str) -> SplitResult:
    if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in text):
        raise SoapTypeError(f"soap uri: invalid control character in {text!r}")
    try:
        return urlsplit(text)
    except ValueError as exc:
        raise SoapTypeError(f"soap uri: {exc}") from exc


# --- type metadata --------------------------------------------------------


@dataclass(frozen=True)
class TypeData:
    """How a SOAP type is represented and converted in Python."""

    func_suffix: str
    python_type: str

    def marshal_func(self) -> str:
        """Name of the function that marshals the type."""
        return f"marshal_{self.func_suffix}"

    def unmarshal_func(self) -> str:
        """Name of the function that unmarshals the type."""
        return f"unmarshal_{self.func_suffix}"


TYPE_DATA_MAP: dict[str, TypeData] = {
    "ui1": TypeData("ui1", "int"),
    "ui2": TypeData("ui2", "int"),
    "ui4": TypeData("ui4", "int"),
    "ui8": TypeData("ui8", "int"),
    "i1": TypeData("i1", "int"),
    "i2": TypeData("i2", "int"),
    "i4": TypeData("i4", "int"),
    "int": TypeData("int", "int"),
    "r4": TypeData("r4", "float"),
    "r8": TypeData("r8", "float"),
    "number": TypeData("r8", "float"),
    "fixed.14.4": TypeData("fixed14_4", "float"),
    "float": TypeData("r8", "float"),
    "char": TypeData("char", "str"),
    "string": TypeData("string", "str"),
    "date": TypeData("date", "datetime.datetime"),
    "dateTime": TypeData("datetime", "datetime.datetime"),
    "dateTime.tz": TypeData("datetime_tz", "datetime.datetime"),
    "time": TypeData("time_of_day", "TimeOfDay"),
    "time.tz": TypeData("time_of_day_tz", "TimeOfDay"),
    "boolean": TypeData("boolean", "bool"),
    "bin.base64": TypeData("bin_base64", "bytes"),
    "bin.hex": TypeData("bin_hex", "bytes"),
    "uri": TypeData("uri", "urllib.parse.SplitResult"),
}