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
# Runtime stack and controller interfaces
#
# The storage layer pushes what it loads into the runtime stack through these
# entry points. The base classes do nothing; applications subclass them.
# -----------------------------------------------------------------------------

# -----------------------------------------------------------------------------
# Imports
# -----------------------------------------------------------------------------
from __future__ import annotations
import logging
from typing import TYPE_CHECKING, List, Optional

from bondstore.address import Address
from bondstore.core import AddressType, DeviceType

if TYPE_CHECKING:
    from bondstore.hid import HidInfo
    from bondstore.keys import LeKeyType, LinkKey
    from bondstore.properties import Property, PropertyType

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
class Controller:
    '''
    Source of the local adapter address.
    '''

    def __init__(self, address: Optional[Address] = None) -> None:
        self._address = address

    @property
    def is_ready(self) -> bool:
        return self._address is not None

    @property
    def address(self) -> Address:
        return self._address if self._address is not None else Address.ANY


# -----------------------------------------------------------------------------
class RuntimeStack:
    def add_classic_device(
        self,
        address: Address,
        class_of_device: int,
        link_key: LinkKey,
    ) -> None:
        logger.debug(f'add classic device {address} (cod=0x{class_of_device:06X})')

    def add_le_device(
        self, address: Address, address_type: AddressType, device_type: DeviceType
    ) -> None:
        logger.debug(f'add LE device {address} ({address_type.name})')

    def add_le_key(self, address: Address, key: bytes, key_type: LeKeyType) -> None:
        logger.debug(f'add LE key {key_type.name} for {address}')

    def add_hid_device(self, address: Address, info: HidInfo) -> None:
        logger.debug(f'add HID device {address}')

    def add_hid_cabled_device(self, address: Address) -> None:
        logger.debug(f'add cabled HID host {address}')

    def notify_gatt_bonded(self, address: Address) -> None:
        logger.debug(f'GATT bonded device {address}')

    def adapter_properties_changed(self, properties: List[Property]) -> None:
        pass

    def remote_properties_changed(
        self, address: Address, properties: List[Property]
    ) -> None:
        pass

    def get_enabled_services_mask(self) -> int:
        return 0

    def get_default_adapter_property(
        self, _property_type: PropertyType
    ) -> Optional[Property]:
        return None
