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

import re
from typing import Union

from bondstore.core import InvalidArgumentError


# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------
ADDRESS_SIZE = 6
ADDRESS_STRING_LENGTH = 17

_ADDRESS_PATTERN = re.compile(r'[0-9A-Fa-f]{2}(:[0-9A-Fa-f]{2}){5}')


# -----------------------------------------------------------------------------
def is_address_string(string: str) -> bool:
    '''
    True if `string` is an address in `XX:XX:XX:XX:XX:XX` form (either case).
    '''
    return len(string) == ADDRESS_STRING_LENGTH and bool(
        _ADDRESS_PATTERN.fullmatch(string)
    )


# -----------------------------------------------------------------------------
class Address:
    '''
    Bluetooth Device Address (see Bluetooth spec Vol 6, Part B - 1.3 DEVICE ADDRESS)
    NOTE: the address bytes are stored in little-endian byte order here, so
    address[0] is the LSB of the address, address[5] is the MSB.

    The canonical string form, MSB first with uppercase hex digits, is the name of
    the configuration section holding everything stored about that device.
    '''

    # Type declarations
    ANY: Address

    def __init__(self, address: Union[bytes, str, Address]) -> None:
        '''
        Initialize an instance. `address` may be a byte array in little-endian
        format, or a string in big-endian `XX:XX:XX:XX:XX:XX` format.
        '''
        if isinstance(address, Address):
            self.address_bytes = address.address_bytes
        elif isinstance(address, (bytes, bytearray)):
            if len(address) != ADDRESS_SIZE:
                raise InvalidArgumentError('invalid address length')
            self.address_bytes = bytes(address)
        elif isinstance(address, str):
            if not is_address_string(address):
                raise InvalidArgumentError(f'invalid address: {address!r}')
            self.address_bytes = bytes(
                reversed(bytes.fromhex(address.replace(':', '')))
            )
        else:
            raise InvalidArgumentError(f'cannot make an address from {address!r}')

    @classmethod
    def from_big_endian_bytes(cls, address_bytes: bytes) -> Address:
        '''
        Parse an address in MSB-first order, as found in property payloads.
        '''
        if len(address_bytes) != ADDRESS_SIZE:
            raise InvalidArgumentError('invalid address length')
        return cls(bytes(reversed(address_bytes)))

    def to_bytes(self) -> bytes:
        return self.address_bytes

    def to_big_endian_bytes(self) -> bytes:
        return bytes(reversed(self.address_bytes))

    def to_string(self) -> str:
        '''
        String representation of the address, MSB first.
        '''
        return ':'.join([f'{x:02X}' for x in reversed(self.address_bytes)])

    @property
    def section(self) -> str:
        return self.to_string()

    def __bytes__(self) -> bytes:
        return self.to_bytes()

    def __hash__(self) -> int:
        return hash(self.address_bytes)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Address):
            return self.address_bytes == other.address_bytes
        if isinstance(other, str) and is_address_string(other):
            return self == Address(other)
        return False

    def __repr__(self) -> str:
        return f'Address({self.to_string()!r})'

    def __str__(self) -> str:
        return self.to_string()


# Predefined address values
Address.ANY = Address(b"\x00\x00\x00\x00\x00\x00")
