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
# Bonded devices
#
# A device section describes a bonded device when it holds a classic link key
# (key and key type) or at least one valid LE key. Sections that describe
# neither are left untouched.
# -----------------------------------------------------------------------------

# -----------------------------------------------------------------------------
# Imports
# -----------------------------------------------------------------------------
from __future__ import annotations

import dataclasses
import logging
from typing import Dict, List, Optional, Union

from bondstore.address import Address, is_address_string
from bondstore.core import (
    MAX_DEVICE_RECORDS,
    AddressType,
    BaseBondStoreError,
    DeviceType,
)
from bondstore.keys import (
    LE_KEY_LOAD_ORDER,
    LeKeyStore,
    LeKeyType,
    LinkKey,
    LinkKeyStore,
)
from bondstore.stack import RuntimeStack
from bondstore.store import ConfigStore

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
@dataclasses.dataclass
class BondRecord:
    section: str
    address: Address
    link_key: Optional[LinkKey] = None
    le_keys: Dict[LeKeyType, bytes] = dataclasses.field(default_factory=dict)
    device_type: Optional[DeviceType] = None
    address_type: AddressType = AddressType.PUBLIC

    @property
    def has_classic_key(self) -> bool:
        return self.link_key is not None

    @property
    def has_le_keys(self) -> bool:
        return len(self.le_keys) > 0

    @property
    def is_bonded(self) -> bool:
        return self.has_classic_key or self.has_le_keys


# -----------------------------------------------------------------------------
class BondReconciler:
    def __init__(
        self,
        store: ConfigStore,
        stack: Optional[RuntimeStack] = None,
        max_device_records: int = MAX_DEVICE_RECORDS,
    ) -> None:
        self.store = store
        self.stack = stack if stack is not None else RuntimeStack()
        self.max_device_records = max_device_records
        self.link_keys = LinkKeyStore(store)
        self.le_keys = LeKeyStore(store)

    def classify(self, section: str) -> BondRecord:
        '''
        Read the bonding state of a device section.

        When LE keys are found and no address type is stored, the address type is
        set to public and written back.
        '''
        record = BondRecord(section=section, address=Address(section))
        record.link_key = self.link_keys.get(section)

        device_type = self.store.get_int(section, 'DevType')
        if device_type is not None:
            record.device_type = DeviceType(device_type)

        for key_type in LE_KEY_LOAD_ORDER:
            key = self.le_keys.get_remote_key(section, key_type)
            if key is not None:
                record.le_keys[key_type] = key

        if record.le_keys:
            logger.debug(f'found an LE device: {section}')
            address_type = self.store.get_int(section, 'AddrType')
            if address_type is None:
                address_type = AddressType.PUBLIC
                self.store.set_int(section, 'AddrType', address_type)
            record.address_type = AddressType(address_type)

        return record

    def is_bonded(self, address: Union[Address, str]) -> bool:
        section = self.store.device_section(address)
        if not self.store.has_section(section):
            return False

        try:
            return self.classify(section).is_bonded
        except (BaseBondStoreError, ValueError) as error:
            logger.warning(f'[{section}] cannot read bonding state: {error}')
            return False

    def fetch_bonded_devices(self, apply: bool = False) -> List[BondRecord]:
        '''
        Find all bonded devices, in store order.

        With `apply`, each bonded device is also added to the runtime stack.
        '''
        records: List[BondRecord] = []
        for section in self.store.sections():
            if not is_address_string(section):
                continue

            logger.debug(f'remote device: {section}')
            try:
                record = self.classify(section)
            except (BaseBondStoreError, ValueError) as error:
                logger.warning(f'[{section}] skipped: {error}')
                continue

            if not record.is_bonded:
                logger.debug(f'remote device {section}: no link key or LE key found')
                continue

            if any(other.address == record.address for other in records):
                logger.warning(f'[{section}] duplicate section for {record.address}')
                continue

            if len(records) >= self.max_device_records:
                logger.warning(
                    f'more than {self.max_device_records} bonded devices, '
                    f'ignoring {section}'
                )
                break

            if apply:
                self.apply(record)
            records.append(record)

        return records

    def bonded_addresses(self, apply: bool = False) -> List[Address]:
        return [record.address for record in self.fetch_bonded_devices(apply)]

    def apply(self, record: BondRecord) -> None:
        gatt_bonded = False

        if record.link_key is not None:
            class_of_device = self.store.get_int(record.section, 'DevClass') or 0
            self.stack.add_classic_device(
                record.address, class_of_device, record.link_key
            )
            if record.device_type is not None and record.device_type.is_dual_mode:
                gatt_bonded = True

        if record.le_keys:
            self.stack.add_le_device(
                record.address, record.address_type, DeviceType.BLE
            )
            for key_type, key in record.le_keys.items():
                logger.debug(f'adding {key_type.name} key for {record.address}')
                self.stack.add_le_key(record.address, key, key_type)
            gatt_bonded = True

        if gatt_bonded:
            self.stack.notify_gatt_bonded(record.address)
