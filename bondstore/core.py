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
# Imports
# -----------------------------------------------------------------------------
from __future__ import annotations

import struct
from typing import Optional, Union

from bondstore import utils


# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------
# fmt: off

ADAPTER_SECTION = 'Adapter'

MAX_NAME_LENGTH           = 248   # Longest device name stored, in bytes
MAX_PROPERTY_VALUE_LENGTH = 1023  # Longest property payload accepted for storage
MAX_UUIDS                 = 32    # Most UUIDs kept in a UUID list property
MAX_DEVICE_RECORDS        = 100   # Most bonded devices reported
LINK_KEY_SIZE             = 16

# fmt: on


class DeviceType(utils.OpenIntEnum):
    BREDR = 0x01
    BLE = 0x02
    DUMO = 0x03

    @property
    def is_dual_mode(self) -> bool:
        return self & DeviceType.DUMO == DeviceType.DUMO


class AddressType(utils.OpenIntEnum):
    PUBLIC = 0x00
    RANDOM = 0x01


class ScanMode(utils.OpenIntEnum):
    NONE = 0x00
    CONNECTABLE = 0x01
    CONNECTABLE_DISCOVERABLE = 0x02


# -----------------------------------------------------------------------------
# Exceptions
# -----------------------------------------------------------------------------


class BaseBondStoreError(Exception):
    """Base Error raised by the bond store."""


class InvalidArgumentError(BaseBondStoreError, ValueError):
    """Invalid Argument Error"""


class StoreError(BaseBondStoreError):
    """Error reported by a backing configuration store"""


# -----------------------------------------------------------------------------
# UUID
#
# NOTE: the internal byte representation is in little-endian byte order
#
# Base UUID: 00000000-0000-1000-8000- 00805F9B34FB
# -----------------------------------------------------------------------------
class UUID:
    '''
    Bluetooth UUID (16, 32 or 128 bits).

    This class works in little-endian byte-order internally. Strings are in
    big-endian byte-order.
    '''

    BASE_UUID = bytes.fromhex('00001000800000805F9B34FB')[::-1]  # little-endian
    STRING_LENGTH = 36

    uuid_bytes: bytes
    name: Optional[str]

    def __init__(
        self, uuid_str_or_int: Union[str, int], name: Optional[str] = None
    ) -> None:
        if isinstance(uuid_str_or_int, int):
            self.uuid_bytes = struct.pack('<H', uuid_str_or_int)
        else:
            if len(uuid_str_or_int) == self.STRING_LENGTH:
                if (
                    uuid_str_or_int[8] != '-'
                    or uuid_str_or_int[13] != '-'
                    or uuid_str_or_int[18] != '-'
                    or uuid_str_or_int[23] != '-'
                ):
                    raise InvalidArgumentError('invalid UUID format')
                uuid_str = uuid_str_or_int.replace('-', '')
            else:
                uuid_str = uuid_str_or_int
            if len(uuid_str) not in (32, 8, 4):
                raise InvalidArgumentError(f'invalid UUID format: {uuid_str}')
            try:
                self.uuid_bytes = bytes(reversed(bytes.fromhex(uuid_str)))
            except ValueError as error:
                raise InvalidArgumentError(f'invalid UUID format: {uuid_str}') from error
        self.name = name

    @classmethod
    def from_bytes(cls, uuid_bytes: bytes, name: Optional[str] = None) -> UUID:
        if len(uuid_bytes) not in (2, 4, 16):
            raise InvalidArgumentError('only 2, 4 and 16 bytes are allowed')

        self = cls.__new__(cls)
        self.uuid_bytes = bytes(uuid_bytes)
        self.name = name
        return self

    @classmethod
    def from_16_bits(cls, uuid_16: int, name: Optional[str] = None) -> UUID:
        return cls.from_bytes(struct.pack('<H', uuid_16), name)

    @classmethod
    def from_32_bits(cls, uuid_32: int, name: Optional[str] = None) -> UUID:
        return cls.from_bytes(struct.pack('<I', uuid_32), name)

    @classmethod
    def from_big_endian_bytes(cls, uuid_bytes: bytes) -> UUID:
        '''
        Parse a UUID from its 128-bit big-endian form, as found in property
        payloads.
        '''
        if len(uuid_bytes) != 16:
            raise InvalidArgumentError('a 128-bit UUID is 16 bytes')
        return cls.from_bytes(bytes(reversed(uuid_bytes)))

    def to_bytes(self, force_128: bool = False) -> bytes:
        '''
        Serialize UUID in little-endian byte-order
        '''
        if not force_128:
            return self.uuid_bytes

        if len(self.uuid_bytes) == 2:
            return self.BASE_UUID + self.uuid_bytes + bytes([0, 0])
        if len(self.uuid_bytes) == 4:
            return self.BASE_UUID + self.uuid_bytes
        return self.uuid_bytes

    def to_big_endian_bytes(self) -> bytes:
        return bytes(reversed(self.to_bytes(force_128=True)))

    def to_hex_str(self, separator: str = '') -> str:
        if len(self.uuid_bytes) == 2 or len(self.uuid_bytes) == 4:
            return bytes(reversed(self.uuid_bytes)).hex().upper()

        return separator.join(
            [
                bytes(reversed(self.uuid_bytes[12:16])).hex(),
                bytes(reversed(self.uuid_bytes[10:12])).hex(),
                bytes(reversed(self.uuid_bytes[8:10])).hex(),
                bytes(reversed(self.uuid_bytes[6:8])).hex(),
                bytes(reversed(self.uuid_bytes[0:6])).hex(),
            ]
        ).upper()

    def to_canonical_string(self) -> str:
        '''
        The 36-character, lowercase, 128-bit form used in stored UUID lists.
        '''
        return UUID.from_bytes(self.to_bytes(force_128=True)).to_hex_str('-').lower()

    def __bytes__(self) -> bytes:
        return self.to_bytes()

    def __eq__(self, other: object) -> bool:
        if isinstance(other, UUID):
            return self.to_bytes(force_128=True) == other.to_bytes(force_128=True)

        if isinstance(other, str):
            return UUID(other) == self

        return False

    def __hash__(self) -> int:
        return hash(self.to_bytes(force_128=True))

    def __repr__(self) -> str:
        return f'UUID({self.to_canonical_string()!r})'

    def __str__(self) -> str:
        result = self.to_hex_str(separator='-')
        if len(self.uuid_bytes) == 2:
            result = 'UUID-16:' + result
        elif len(self.uuid_bytes) == 4:
            result = 'UUID-32:' + result
        if self.name is not None:
            result += f' ({self.name})'
        return result


# -----------------------------------------------------------------------------
# Common UUID constants
# -----------------------------------------------------------------------------
# fmt: off
# pylint: disable=line-too-long

BT_SERIAL_PORT_SERVICE               = UUID.from_16_bits(0x1101, 'SerialPort')
BT_AUDIO_SOURCE_SERVICE              = UUID.from_16_bits(0x110A, 'AudioSource')
BT_AUDIO_SINK_SERVICE                = UUID.from_16_bits(0x110B, 'AudioSink')
BT_HEADSET_AUDIO_GATEWAY_SERVICE     = UUID.from_16_bits(0x1112, 'Headset - Audio Gateway')
BT_HANDSFREE_SERVICE                 = UUID.from_16_bits(0x111E, 'Handsfree')
BT_HANDSFREE_AUDIO_GATEWAY_SERVICE   = UUID.from_16_bits(0x111F, 'HandsfreeAudioGateway')
BT_HUMAN_INTERFACE_DEVICE_SERVICE    = UUID.from_16_bits(0x1124, 'HumanInterfaceDeviceService')

# fmt: on
# pylint: enable=line-too-long
