# Copyright 2021-2022 Google LLC
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
# Keys and Key Storage
#
# Classic link keys and LE keys are stored as binary entries of the peer's
# section. The adapter's own LE keys are stored in the adapter section.
# -----------------------------------------------------------------------------

# -----------------------------------------------------------------------------
# Imports
# -----------------------------------------------------------------------------
from __future__ import annotations
import dataclasses
import enum
import logging
import struct
from typing import ClassVar, List, Optional, Tuple, Union

from bondstore import utils
from bondstore.address import Address, is_address_string
from bondstore.core import (
    ADAPTER_SECTION,
    LINK_KEY_SIZE,
    AddressType,
    InvalidArgumentError,
)
from bondstore.store import ConfigStore

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------
LOCAL_KEY_SIZE = 16

AnyAddress = Union[Address, str]


class LinkKeyType(utils.OpenIntEnum):
    COMBINATION = 0x00
    LOCAL_UNIT = 0x01
    REMOTE_UNIT = 0x02
    DEBUG_COMBINATION = 0x03
    UNAUTHENTICATED_COMBINATION_P_192 = 0x04
    AUTHENTICATED_COMBINATION_P_192 = 0x05
    CHANGED_COMBINATION = 0x06
    UNAUTHENTICATED_COMBINATION_P_256 = 0x07
    AUTHENTICATED_COMBINATION_P_256 = 0x08


# -----------------------------------------------------------------------------
# LE key bundles
# -----------------------------------------------------------------------------
@dataclasses.dataclass
class KeyBundle:
    '''
    Base class for the fixed-layout LE key blobs.
    '''

    FORMAT: ClassVar[str]

    @classmethod
    def size(cls) -> int:
        return struct.calcsize(cls.FORMAT)

    @classmethod
    def from_bytes(cls, data: bytes):
        if len(data) != cls.size():
            raise InvalidArgumentError(
                f'{cls.__name__} is {cls.size()} bytes, not {len(data)}'
            )
        return cls(*struct.unpack(cls.FORMAT, data))

    def __bytes__(self) -> bytes:
        return struct.pack(self.FORMAT, *dataclasses.astuple(self))


@dataclasses.dataclass
class PeerEncryptionKey(KeyBundle):
    FORMAT = '<16s8sHBB'

    ltk: bytes
    rand: bytes = bytes(8)
    ediv: int = 0
    security_level: int = 0
    key_size: int = 16


@dataclasses.dataclass
class PeerIdentityKey(KeyBundle):
    FORMAT = '<16sB6s'

    irk: bytes
    address_type: int = AddressType.PUBLIC
    identity_address: Address = Address.ANY

    @classmethod
    def from_bytes(cls, data: bytes) -> PeerIdentityKey:
        if len(data) != cls.size():
            raise InvalidArgumentError(
                f'{cls.__name__} is {cls.size()} bytes, not {len(data)}'
            )
        irk, address_type, address_bytes = struct.unpack(cls.FORMAT, data)
        return cls(
            irk, AddressType(address_type), Address.from_big_endian_bytes(address_bytes)
        )

    def __bytes__(self) -> bytes:
        return struct.pack(
            self.FORMAT,
            self.irk,
            self.address_type,
            self.identity_address.to_big_endian_bytes(),
        )


@dataclasses.dataclass
class PeerSigningKey(KeyBundle):
    FORMAT = '<I16sB'

    counter: int
    csrk: bytes
    security_level: int = 0


@dataclasses.dataclass
class LocalEncryptionKey(KeyBundle):
    FORMAT = '<16sHBB'

    ltk: bytes
    div: int = 0
    key_size: int = 16
    security_level: int = 0


@dataclasses.dataclass
class LocalSigningKey(KeyBundle):
    FORMAT = '<IHB16s'

    counter: int
    div: int
    security_level: int
    csrk: bytes


class LeKeyType(enum.IntEnum):
    PENC = 0x01
    PID = 0x02
    PCSRK = 0x04
    LENC = 0x08
    LCSRK = 0x10
    LID = 0x20

    @property
    def storage_key(self) -> str:
        return f'LE_KEY_{self.name}'

    @property
    def bundle_class(self) -> type[KeyBundle]:
        return LE_KEY_BUNDLES[self]

    @property
    def size(self) -> int:
        return self.bundle_class.size()


LE_KEY_BUNDLES: dict[LeKeyType, type[KeyBundle]] = {
    LeKeyType.PENC: PeerEncryptionKey,
    LeKeyType.PID: PeerIdentityKey,
    LeKeyType.PCSRK: PeerSigningKey,
    LeKeyType.LENC: LocalEncryptionKey,
    LeKeyType.LCSRK: LocalSigningKey,
    LeKeyType.LID: PeerIdentityKey,
}

# Order in which keys are read back and handed to the runtime stack
LE_KEY_LOAD_ORDER = (
    LeKeyType.PENC,
    LeKeyType.PID,
    LeKeyType.LID,
    LeKeyType.PCSRK,
    LeKeyType.LENC,
    LeKeyType.LCSRK,
)


class LocalLeKeyType(enum.IntEnum):
    IR = 0x01
    IRK = 0x02
    DHK = 0x04
    ER = 0x08

    @property
    def storage_key(self) -> str:
        return f'LE_LOCAL_KEY_{self.name}'


def _le_key_type(key_type: int) -> LeKeyType:
    try:
        return LeKeyType(key_type)
    except ValueError as error:
        raise InvalidArgumentError(f'unknown LE key type {key_type}') from error


def _local_key_type(key_type: int) -> LocalLeKeyType:
    try:
        return LocalLeKeyType(key_type)
    except ValueError as error:
        raise InvalidArgumentError(f'unknown local LE key type {key_type}') from error


# -----------------------------------------------------------------------------
# Classic link keys
# -----------------------------------------------------------------------------
@dataclasses.dataclass
class LinkKey:
    value: bytes
    key_type: LinkKeyType = LinkKeyType.COMBINATION
    pin_length: int = 0

    def __post_init__(self) -> None:
        self.value = bytes(self.value)
        if len(self.value) != LINK_KEY_SIZE:
            raise InvalidArgumentError(
                f'a link key is {LINK_KEY_SIZE} bytes, not {len(self.value)}'
            )
        self.key_type = LinkKeyType(self.key_type)


class LinkKeyStore:
    '''
    Classic link key record: `LinkKey`, `LinkKeyType` and `PinLength`.
    '''

    ENTRIES = ('LinkKeyType', 'PinLength', 'LinkKey')

    def __init__(self, store: ConfigStore) -> None:
        self.store = store

    def put(self, address: AnyAddress, link_key: LinkKey) -> None:
        section = self.store.device_section(address)
        self.store.set_int(section, 'LinkKeyType', link_key.key_type)
        self.store.set_int(section, 'PinLength', link_key.pin_length)
        self.store.set_bin(section, 'LinkKey', link_key.value)

    def get(self, address: AnyAddress) -> Optional[LinkKey]:
        '''
        The link key for a device, or None unless both the key and its type are
        stored. A missing pin length reads as 0.
        '''
        section = self.store.device_section(address)
        value = self.store.get_bin(section, 'LinkKey')
        if value is None:
            return None
        if len(value) != LINK_KEY_SIZE:
            logger.warning(f'[{section}] LinkKey has an invalid size ({len(value)})')
            return None

        key_type = self.store.get_int(section, 'LinkKeyType')
        if key_type is None:
            return None

        pin_length = self.store.get_int(section, 'PinLength') or 0
        return LinkKey(value, LinkKeyType(key_type), pin_length)

    def exists(self, address: AnyAddress) -> bool:
        section = self.store.device_section(address)
        return self.store.exists(section, 'LinkKey') and self.store.exists(
            section, 'LinkKeyType'
        )

    def remove(self, address: AnyAddress) -> bool:
        section = self.store.device_section(address)
        result = True
        for key in self.ENTRIES:
            if self.store.exists(section, key):
                result &= self.store.remove(section, key)
        return result


# -----------------------------------------------------------------------------
# LE keys
# -----------------------------------------------------------------------------
class LeKeyStore:
    '''
    LE keys of remote devices (six slots per device) and of the local adapter
    (four slots). Each slot holds a blob whose size depends on the slot type.
    '''

    def __init__(self, store: ConfigStore) -> None:
        self.store = store

    def put_remote_key(
        self, address: AnyAddress, key_type: int, key: Union[bytes, KeyBundle]
    ) -> None:
        key_type = _le_key_type(key_type)
        key = bytes(key)
        if len(key) != key_type.size:
            raise InvalidArgumentError(
                f'{key_type.name} key is {key_type.size} bytes, not {len(key)}'
            )

        section = self.store.device_section(address)
        self.store.set_bin(section, key_type.storage_key, key)
        self.store.save()

    def get_remote_key(self, address: AnyAddress, key_type: int) -> Optional[bytes]:
        key_type = _le_key_type(key_type)
        section = self.store.device_section(address)
        key = self.store.get_bin(section, key_type.storage_key)
        if key is None:
            return None
        if len(key) != key_type.size:
            logger.warning(
                f'[{section}] {key_type.storage_key} has an invalid size ({len(key)})'
            )
            return None

        return key

    def get_remote_key_bundle(
        self, address: AnyAddress, key_type: int
    ) -> Optional[KeyBundle]:
        key = self.get_remote_key(address, key_type)
        if key is None:
            return None
        return _le_key_type(key_type).bundle_class.from_bytes(key)

    def has_le_keys(self, address: AnyAddress) -> bool:
        '''
        True when the peer encryption key is stored. This is narrower than the
        check used when loading bonded devices, where any LE key counts.
        '''
        section = self.store.device_section(address)
        return self.store.exists(section, LeKeyType.PENC.storage_key)

    def remove_all_remote_keys(self, address: AnyAddress) -> bool:
        section = self.store.device_section(address)
        logger.debug(f'removing LE keys for {section}')
        result = True
        for key_type in LeKeyType:
            if self.store.exists(section, key_type.storage_key):
                result &= self.store.remove(section, key_type.storage_key)
        self.store.save()
        return result

    def put_local_key(self, key_type: int, key: bytes) -> None:
        key_type = _local_key_type(key_type)
        key = bytes(key)
        if len(key) != LOCAL_KEY_SIZE:
            raise InvalidArgumentError(
                f'{key_type.name} key is {LOCAL_KEY_SIZE} bytes, not {len(key)}'
            )

        self.store.set_bin(ADAPTER_SECTION, key_type.storage_key, key)
        self.store.save()

    def get_local_key(self, key_type: int) -> Optional[bytes]:
        key_type = _local_key_type(key_type)
        key = self.store.get_bin(ADAPTER_SECTION, key_type.storage_key)
        if key is None:
            return None
        if len(key) != LOCAL_KEY_SIZE:
            logger.warning(f'{key_type.storage_key} has an invalid size ({len(key)})')
            return None

        return key

    def remove_all_local_keys(self) -> bool:
        result = True
        for key_type in LocalLeKeyType:
            if self.store.exists(ADAPTER_SECTION, key_type.storage_key):
                result &= self.store.remove(ADAPTER_SECTION, key_type.storage_key)
        self.store.save()
        return result

    def get_resolving_keys(self) -> List[Tuple[bytes, Address]]:
        '''
        IRKs of all peers that distributed one, with the peer identity address.
        '''
        resolving_keys = []
        for section in self.store.sections():
            if not is_address_string(section):
                continue

            bundle = self.get_remote_key_bundle(section, LeKeyType.PID)
            if bundle is None:
                continue

            assert isinstance(bundle, PeerIdentityKey)
            if bundle.identity_address == Address.ANY:
                identity_address = Address(section)
            else:
                identity_address = bundle.identity_address
            resolving_keys.append((bundle.irk, identity_address))

        return resolving_keys
