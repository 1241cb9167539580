from __future__ import annotations  # noqa: D100

from dataclasses import dataclass, field

from georules.wire import LENGTH_DELIMITED, VARINT, Cursor, expect

# Domain.Type
PLAIN = 0
REGEX = 1
DOMAIN = 2
FULL = 3


@dataclass
class AttributeRecord:  # noqa: D101
    key: str = ""
    bool_value: bool | None = None
    int_value: int | None = None


@dataclass
class DomainRecord:  # noqa: D101
    type: int = PLAIN
    value: str = ""
    attributes: list[AttributeRecord] = field(default_factory=list)


@dataclass
class SiteEntry:  # noqa: D101
    country_code: str = ""
    domains: list[DomainRecord] = field(default_factory=list)


@dataclass
class CIDRRecord:  # noqa: D101
    ip: bytes = b""
    prefix: int = 0


@dataclass
class IPEntry:  # noqa: D101
    country_code: str = ""
    cidrs: list[CIDRRecord] = field(default_factory=list)


def _decode_attribute(cursor: Cursor) -> AttributeRecord:
    record = AttributeRecord()
    for number, wire_type in cursor.fields():
        match number:
            case 1:
                expect(wire_type, LENGTH_DELIMITED, number, cursor)
                record.key = cursor.read_string()
            case 2:
                expect(wire_type, VARINT, number, cursor)
                record.bool_value, record.int_value = cursor.read_bool(), None
            case 3:
                expect(wire_type, VARINT, number, cursor)
                record.int_value, record.bool_value = cursor.read_int64(), None
            case _:
                cursor.skip(wire_type)
    return record


def _decode_domain(cursor: Cursor) -> DomainRecord:
    record = DomainRecord()
    for number, wire_type in cursor.fields():
        match number:
            case 1:
                expect(wire_type, VARINT, number, cursor)
                record.type = cursor.read_int64()
            case 2:
                expect(wire_type, LENGTH_DELIMITED, number, cursor)
                record.value = cursor.read_string()
            case 3:
                expect(wire_type, LENGTH_DELIMITED, number, cursor)
                record.attributes.append(
                    _decode_attribute(cursor.read_length_delimited())
                )
            case _:
                cursor.skip(wire_type)
    return record


def _decode_site(cursor: Cursor) -> SiteEntry:
    entry = SiteEntry()
    for number, wire_type in cursor.fields():
        match number:
            case 1:
                expect(wire_type, LENGTH_DELIMITED, number, cursor)
                entry.country_code = cursor.read_string()
            case 2:
                expect(wire_type, LENGTH_DELIMITED, number, cursor)
                entry.domains.append(_decode_domain(cursor.read_length_delimited()))
            case _:
                cursor.skip(wire_type)
    return entry


def _decode_cidr(cursor: Cursor) -> CIDRRecord:
    record = CIDRRecord()
    for number, wire_type in cursor.fields():
        match number:
            case 1:
                expect(wire_type, LENGTH_DELIMITED, number, cursor)
                record.ip = cursor.read_bytes()
            case 2:
                expect(wire_type, VARINT, number, cursor)
                record.prefix = cursor.read_varint() & 0xFFFFFFFF
            case _:
                cursor.skip(wire_type)
    return record


def _decode_ip(cursor: Cursor) -> IPEntry:
    entry = IPEntry()
    for number, wire_type in cursor.fields():
        match number:
            case 1:
                expect(wire_type, LENGTH_DELIMITED, number, cursor)
                entry.country_code = cursor.read_string()
            case 2:
                expect(wire_type, LENGTH_DELIMITED, number, cursor)
                entry.cidrs.append(_decode_cidr(cursor.read_length_delimited()))
            case _:
                cursor.skip(wire_type)
    return entry


def decode_geosite(data: bytes) -> list[SiteEntry]:
    """Decode a whole ``GeoSiteList``. Raises ``MalformedInput``; never returns partial data."""
    cursor = Cursor(data)
    entries: list[SiteEntry] = []
    for number, wire_type in cursor.fields():
        if number == 1:
            expect(wire_type, LENGTH_DELIMITED, number, cursor)
            entries.append(_decode_site(cursor.read_length_delimited()))
        else:
            cursor.skip(wire_type)
    return entries


def decode_geoip(data: bytes) -> list[IPEntry]:
    """Decode a whole ``GeoIPList``. Raises ``MalformedInput``; never returns partial data."""
    cursor = Cursor(data)
    entries: list[IPEntry] = []
    for number, wire_type in cursor.fields():
        if number == 1:
            expect(wire_type, LENGTH_DELIMITED, number, cursor)
            entries.append(_decode_ip(cursor.read_length_delimited()))
        else:
            cursor.skip(wire_type)
    return entries
