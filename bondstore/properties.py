# Copyright 2021-2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#      https://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

# -----------------------------------------------------------------------------
# Adapter and remote device properties
#
# Each property kind is a dataclass registered under its PropertyType. A property
# has a byte payload form (what a HAL property buffer carries) and, for the kinds
# that are persisted, a mapping to one or more entries of a configuration section.
# -----------------------------------------------------------------------------

# -----------------------------------------------------------------------------
# Imports
# -----------------------------------------------------------------------------
from __future__ import annotations

import dataclasses
import enum
import logging
import struct
from typing import ClassVar, List, Optional, TypeVar

from bondstore.address import ADDRESS_SIZE, Address
from bondstore.core import (
    ADAPTER_SECTION,
    MAX_NAME_LENGTH,
    MAX_PROPERTY_VALUE_LENGTH,
    MAX_UUIDS,
    UUID,
    DeviceType,
    InvalidArgumentError,
    ScanMode,
)
from bondstore.store import ConfigStore

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------
UUID_SIZE = 16


class PropertyType(enum.IntEnum):
    BDNAME = 0x01
    BDADDR = 0x02
    UUIDS = 0x03
    CLASS_OF_DEVICE = 0x04
    TYPE_OF_DEVICE = 0x05
    ADAPTER_SCAN_MODE = 0x07
    ADAPTER_BONDED_DEVICES = 0x08
    ADAPTER_DISCOVERY_TIMEOUT = 0x09
    REMOTE_FRIENDLY_NAME = 0x0A
    REMOTE_RSSI = 0x0B
    REMOTE_VERSION_INFO = 0x0C
    REMOTE_DEVICE_TIMESTAMP = 0xFF


class Scope(enum.Flag):
    ADAPTER = enum.auto()
    DEVICE = enum.auto()
    ANY = ADAPTER | DEVICE


# -----------------------------------------------------------------------------
def split_uuids_string(value: str, max_uuids: int = MAX_UUIDS) -> List[UUID]:
    '''
    Parse a space-separated list of 128-bit UUID strings.

    Parsing stops at the first token that isn't a UUID; the UUIDs parsed before
    that point are returned.
    '''
    uuids: List[UUID] = []
    for token in value.split():
        if len(uuids) >= max_uuids:
            break
        if len(token) != UUID.STRING_LENGTH:
            logger.debug(f'stopping at malformed UUID {token!r}')
            break
        try:
            uuids.append(UUID(token))
        except InvalidArgumentError:
            logger.debug(f'stopping at malformed UUID {token!r}')
            break

    return uuids


def join_uuids(uuids: List[UUID]) -> str:
    return ''.join(f'{uuid.to_canonical_string()} ' for uuid in uuids)


def _truncate_utf8(text: str, max_size: int) -> str:
    return text.encode('utf-8')[:max_size].decode('utf-8', errors='ignore')


# -----------------------------------------------------------------------------
class Property:
    '''
    Base class for all property kinds.

    Subclasses set `property_type`, `minimum_size` (the smallest valid payload, in
    bytes) and, when the kind is persisted, `scope` and the `write`/`read` methods.
    '''

    property_type: ClassVar[PropertyType]
    minimum_size: ClassVar[int] = 1
    scope: ClassVar[Optional[Scope]] = None

    subclasses: ClassVar[dict[PropertyType, type[Property]]] = {}

    _Property = TypeVar('_Property', bound='Property')

    @classmethod
    def property(cls, subclass: type[_Property]) -> type[_Property]:
        cls.subclasses[subclass.property_type] = subclass
        return subclass

    @classmethod
    def subclass_for(cls, property_type: int) -> type[Property]:
        try:
            subclass = cls.subclasses[PropertyType(property_type)]
        except (ValueError, KeyError) as error:
            raise InvalidArgumentError(
                f'unknown property type {property_type}'
            ) from error

        return subclass

    @classmethod
    def from_bytes(cls, property_type: int, data: bytes) -> Property:
        subclass = cls.subclass_for(property_type)
        if len(data) < subclass.minimum_size:
            raise InvalidArgumentError(
                f'{subclass.property_type.name}: payload too short '
                f'({len(data)} < {subclass.minimum_size})'
            )

        return subclass.parse(bytes(data))

    @classmethod
    def parse(cls: type[_Property], data: bytes) -> _Property:
        raise NotImplementedError

    def __bytes__(self) -> bytes:
        raise NotImplementedError

    def payload_size(self) -> int:
        return len(bytes(self))

    def write(self, store: ConfigStore, section: str) -> None:
        raise InvalidArgumentError(f'{self.property_type.name} is not stored')

    @classmethod
    def read(
        cls, store: ConfigStore, section: str, max_length: Optional[int]
    ) -> Optional[Property]:
        raise InvalidArgumentError(f'{cls.property_type.name} is not stored')


# -----------------------------------------------------------------------------
@dataclasses.dataclass
class IntegerProperty(Property):
    '''
    A property holding a single 32-bit value, stored as one integer entry.
    '''

    value: int

    minimum_size = 4
    storage_key: ClassVar[str]

    @classmethod
    def from_value(cls, value: int) -> IntegerProperty:
        return cls(value)

    @classmethod
    def parse(cls, data: bytes) -> IntegerProperty:
        return cls.from_value(struct.unpack_from('<I', data)[0])

    def __bytes__(self) -> bytes:
        return struct.pack('<I', self.value & 0xFFFFFFFF)

    def write(self, store: ConfigStore, section: str) -> None:
        store.set_int(section, self.storage_key, self.value)

    @classmethod
    def read(
        cls, store: ConfigStore, section: str, max_length: Optional[int]
    ) -> Optional[Property]:
        value = store.get_int(section, cls.storage_key)
        if value is None:
            return None
        return cls.from_value(value)


@Property.property
@dataclasses.dataclass
class ClassOfDeviceProperty(IntegerProperty):
    property_type = PropertyType.CLASS_OF_DEVICE
    scope = Scope.DEVICE
    storage_key = 'DevClass'


@Property.property
@dataclasses.dataclass
class DeviceTypeProperty(IntegerProperty):
    property_type = PropertyType.TYPE_OF_DEVICE
    scope = Scope.DEVICE
    storage_key = 'DevType'

    @classmethod
    def from_value(cls, value: int) -> DeviceTypeProperty:
        return cls(DeviceType(value))


@Property.property
@dataclasses.dataclass
class ScanModeProperty(IntegerProperty):
    property_type = PropertyType.ADAPTER_SCAN_MODE
    scope = Scope.ADAPTER
    storage_key = 'ScanMode'

    @classmethod
    def from_value(cls, value: int) -> ScanModeProperty:
        return cls(ScanMode(value))


@Property.property
@dataclasses.dataclass
class DiscoveryTimeoutProperty(IntegerProperty):
    property_type = PropertyType.ADAPTER_DISCOVERY_TIMEOUT
    scope = Scope.ADAPTER
    storage_key = 'DiscoveryTimeout'


@Property.property
@dataclasses.dataclass
class TimestampProperty(IntegerProperty):
    '''
    Time, in seconds since the epoch, at which a device was last seen.
    '''

    property_type = PropertyType.REMOTE_DEVICE_TIMESTAMP
    scope = Scope.DEVICE
    storage_key = 'Timestamp'


# -----------------------------------------------------------------------------
@dataclasses.dataclass
class TextProperty(Property):
    '''
    A UTF-8 string property. The payload is the encoded string, without a
    terminator.
    '''

    value: str

    storage_key: ClassVar[str]
    max_size: ClassVar[int] = MAX_PROPERTY_VALUE_LENGTH

    @classmethod
    def parse(cls, data: bytes) -> TextProperty:
        return cls(data.decode('utf-8', errors='replace'))

    def __bytes__(self) -> bytes:
        return self.value.encode('utf-8')

    def write(self, store: ConfigStore, section: str) -> None:
        store.set_str(
            section, self.storage_key, _truncate_utf8(self.value, self.max_size)
        )

    @classmethod
    def read(
        cls, store: ConfigStore, section: str, max_length: Optional[int]
    ) -> Optional[Property]:
        value = store.get_str(section, cls.storage_key)
        if value is None:
            return None
        if max_length is not None and len(value.encode('utf-8')) > max_length:
            logger.debug(
                f'[{section}] {cls.storage_key} does not fit in {max_length} bytes'
            )
            return None
        return cls(value)


@Property.property
@dataclasses.dataclass
class NameProperty(TextProperty):
    property_type = PropertyType.BDNAME
    scope = Scope.ANY
    storage_key = 'Name'
    max_size = MAX_NAME_LENGTH


@Property.property
@dataclasses.dataclass
class FriendlyNameProperty(TextProperty):
    property_type = PropertyType.REMOTE_FRIENDLY_NAME
    scope = Scope.DEVICE
    storage_key = 'Aliase'


# -----------------------------------------------------------------------------
@Property.property
@dataclasses.dataclass
class UuidsProperty(Property):
    '''
    List of 128-bit service UUIDs. The payload is the concatenation of the
    big-endian UUIDs; the stored value is a space-separated list of UUID strings.
    '''

    uuids: List[UUID] = dataclasses.field(default_factory=list)

    property_type = PropertyType.UUIDS
    minimum_size = UUID_SIZE
    scope = Scope.DEVICE
    storage_key: ClassVar[str] = 'Service'

    @classmethod
    def parse(cls, data: bytes) -> UuidsProperty:
        return cls(
            [
                UUID.from_big_endian_bytes(data[offset : offset + UUID_SIZE])
                for offset in range(0, len(data) - UUID_SIZE + 1, UUID_SIZE)
            ]
        )

    def __bytes__(self) -> bytes:
        return b''.join(uuid.to_big_endian_bytes() for uuid in self.uuids)

    def payload_size(self) -> int:
        return min(len(self.uuids), MAX_UUIDS) * UUID_SIZE

    def write(self, store: ConfigStore, section: str) -> None:
        store.set_str(section, self.storage_key, join_uuids(self.uuids[:MAX_UUIDS]))

    @classmethod
    def read(
        cls, store: ConfigStore, section: str, max_length: Optional[int]
    ) -> Optional[Property]:
        value = store.get_str(section, cls.storage_key)
        if value is None:
            return None

        max_uuids = MAX_UUIDS
        if max_length is not None:
            max_uuids = min(max_uuids, max_length // UUID_SIZE)
        return cls(split_uuids_string(value, max_uuids))


# -----------------------------------------------------------------------------
@Property.property
@dataclasses.dataclass
class RemoteVersionInfoProperty(Property):
    version: int
    sub_version: int
    manufacturer: int

    property_type = PropertyType.REMOTE_VERSION_INFO
    minimum_size = 12
    scope = Scope.DEVICE

    @classmethod
    def parse(cls, data: bytes) -> RemoteVersionInfoProperty:
        return cls(*struct.unpack_from('<III', data))

    def __bytes__(self) -> bytes:
        return struct.pack('<III', self.version, self.sub_version, self.manufacturer)

    def write(self, store: ConfigStore, section: str) -> None:
        store.set_int(section, 'Manufacturer', self.manufacturer)
        store.set_int(section, 'LmpVer', self.version)
        store.set_int(section, 'LmpSubVer', self.sub_version)

    @classmethod
    def read(
        cls, store: ConfigStore, section: str, max_length: Optional[int]
    ) -> Optional[Property]:
        manufacturer = store.get_int(section, 'Manufacturer')
        version = store.get_int(section, 'LmpVer')
        sub_version = store.get_int(section, 'LmpSubVer')
        if manufacturer is None or version is None or sub_version is None:
            return None
        return cls(version, sub_version, manufacturer)


# -----------------------------------------------------------------------------
# Properties that are synthesized rather than stored
# -----------------------------------------------------------------------------
@Property.property
@dataclasses.dataclass
class AddressProperty(Property):
    address: Address

    property_type = PropertyType.BDADDR
    minimum_size = ADDRESS_SIZE

    @classmethod
    def parse(cls, data: bytes) -> AddressProperty:
        return cls(Address.from_big_endian_bytes(data[:ADDRESS_SIZE]))

    def __bytes__(self) -> bytes:
        return self.address.to_big_endian_bytes()


@Property.property
@dataclasses.dataclass
class BondedDevicesProperty(Property):
    addresses: List[Address] = dataclasses.field(default_factory=list)

    property_type = PropertyType.ADAPTER_BONDED_DEVICES
    minimum_size = 0

    @classmethod
    def parse(cls, data: bytes) -> BondedDevicesProperty:
        return cls(
            [
                Address.from_big_endian_bytes(data[offset : offset + ADDRESS_SIZE])
                for offset in range(0, len(data) - ADDRESS_SIZE + 1, ADDRESS_SIZE)
            ]
        )

    def __bytes__(self) -> bytes:
        return b''.join(address.to_big_endian_bytes() for address in self.addresses)


@Property.property
@dataclasses.dataclass
class RssiProperty(Property):
    rssi: int

    property_type = PropertyType.REMOTE_RSSI

    @classmethod
    def parse(cls, data: bytes) -> RssiProperty:
        return cls(struct.unpack_from('<b', data)[0])

    def __bytes__(self) -> bytes:
        return struct.pack('<b', self.rssi)


# -----------------------------------------------------------------------------
class PropertyCodec:
    '''
    Maps properties to and from the entries of a configuration store.

    Device properties live in the section named after the device address, adapter
    properties in the adapter section.
    '''

    def __init__(self, store: ConfigStore) -> None:
        self.store = store

    def section_for(
        self, address: Optional[Address], property_class: type[Property]
    ) -> str:
        scope = property_class.scope
        if scope is None:
            raise InvalidArgumentError(
                f'{property_class.property_type.name} is not stored'
            )

        if address is None or scope == Scope.ADAPTER:
            if Scope.ADAPTER not in scope:
                raise InvalidArgumentError(
                    f'{property_class.property_type.name} needs a device address'
                )
            return ADAPTER_SECTION

        return self.store.device_section(address)

    @staticmethod
    def check_capacity(
        property_class: type[Property], max_length: Optional[int]
    ) -> None:
        if max_length is not None and max_length < max(property_class.minimum_size, 1):
            raise InvalidArgumentError(
                f'{property_class.property_type.name}: capacity {max_length} '
                f'is less than {property_class.minimum_size}'
            )

    def encode(self, address: Optional[Address], prop: Property) -> None:
        section = self.section_for(address, type(prop))

        size = prop.payload_size()
        if size == 0 or size > MAX_PROPERTY_VALUE_LENGTH:
            raise InvalidArgumentError(
                f'{prop.property_type.name}: invalid payload size {size}'
            )

        logger.debug(f'[{section}] store {prop.property_type.name} ({size} bytes)')
        prop.write(self.store, section)

    def decode(
        self,
        address: Optional[Address],
        property_type: int,
        max_length: Optional[int] = None,
    ) -> Optional[Property]:
        property_class = Property.subclass_for(property_type)
        self.check_capacity(property_class, max_length)

        # Kinds with no adapter entry are simply not found at adapter scope
        scope = property_class.scope
        if address is None and (scope is None or Scope.ADAPTER not in scope):
            return None

        section = self.section_for(address, property_class)
        return property_class.read(self.store, section, max_length)
