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

import dataclasses
import logging
from typing import Optional

from bondstore.address import Address
from bondstore.bonding import BondReconciler
from bondstore.core import BaseBondStoreError, InvalidArgumentError
from bondstore.store import ConfigStore

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------
# fmt: off
HID_DESCRIPTOR_MAX_LENGTH = 2 * 512

HID_ATTR_MASK_KEY       = 'HidAttrMask'
HID_DESCRIPTOR_KEY      = 'HidDescriptor'
HID_DEVICE_CABLED_KEY   = 'HidDeviceCabled'
# fmt: on


# -----------------------------------------------------------------------------
@dataclasses.dataclass
class HidInfo:
    attr_mask: int = 0
    sub_class: int = 0
    app_id: int = 0
    vendor_id: int = 0
    product_id: int = 0
    version: int = 0
    country_code: int = 0
    ssr_max_latency: int = 0
    ssr_min_timeout: int = 0
    descriptor: bytes = b''

    # Fixed fields, with the entry each one is stored under
    FIELDS = (
        ('attr_mask', HID_ATTR_MASK_KEY),
        ('sub_class', 'HidSubClass'),
        ('app_id', 'HidAppId'),
        ('vendor_id', 'HidVendorId'),
        ('product_id', 'HidProductId'),
        ('version', 'HidVersion'),
        ('country_code', 'HidCountryCode'),
        ('ssr_max_latency', 'HidSSRMaxLatency'),
        ('ssr_min_timeout', 'HidSSRMinTimeout'),
    )


# -----------------------------------------------------------------------------
class HidStore:
    '''
    HID information of bonded HID devices (host role), and the cabled-host flag
    used in the HID device role.
    '''

    def __init__(self, store: ConfigStore, reconciler: BondReconciler) -> None:
        self.store = store
        self.reconciler = reconciler

    def put(self, address: Address, info: HidInfo) -> None:
        if len(info.descriptor) > HID_DESCRIPTOR_MAX_LENGTH:
            raise InvalidArgumentError(
                f'HID descriptor too long ({len(info.descriptor)} > '
                f'{HID_DESCRIPTOR_MAX_LENGTH})'
            )

        section = self.store.device_section(address)
        logger.debug(f'[{section}] storing HID info')
        for field_name, key in HidInfo.FIELDS:
            self.store.set_int(section, key, getattr(info, field_name))
        if len(info.descriptor) > 0:
            self.store.set_bin(section, HID_DESCRIPTOR_KEY, info.descriptor)
        self.store.save()

    def get(self, address: Address) -> Optional[HidInfo]:
        section = self.store.device_section(address)
        return self._read(section)

    def _read(self, section: str) -> Optional[HidInfo]:
        attr_mask = self.store.get_int(section, HID_ATTR_MASK_KEY)
        if attr_mask is None:
            return None

        info = HidInfo()
        for field_name, key in HidInfo.FIELDS:
            setattr(info, field_name, self.store.get_int(section, key) or 0)

        descriptor = self.store.get_bin(section, HID_DESCRIPTOR_KEY)
        if descriptor is not None:
            if len(descriptor) > HID_DESCRIPTOR_MAX_LENGTH:
                logger.warning(
                    f'[{section}] HID descriptor too long ({len(descriptor)})'
                )
            else:
                info.descriptor = descriptor

        return info

    def load_all(self) -> int:
        '''
        Hand the HID info of every bonded device to the runtime stack.

        HID info left behind for devices that are no longer bonded is removed.
        Returns the number of devices added.
        '''
        count = 0
        for section in self.store.sections():
            try:
                address = Address(section)
            except InvalidArgumentError:
                continue

            if not self.store.exists(section, HID_ATTR_MASK_KEY):
                continue

            if not self.reconciler.is_bonded(section):
                logger.debug(f'[{section}] removing HID info of unbonded device')
                self._remove(section)
                continue

            try:
                info = self._read(section)
            except (BaseBondStoreError, ValueError) as error:
                logger.warning(f'[{section}] cannot read HID info: {error}')
                continue

            if info is not None:
                self.reconciler.stack.add_hid_device(address, info)
                count += 1

        return count

    def remove(self, address: Address) -> None:
        self._remove(self.store.device_section(address))

    def _remove(self, section: str) -> None:
        for _, key in HidInfo.FIELDS:
            self.store.remove(section, key)
        self.store.remove(section, HID_DESCRIPTOR_KEY)
        self.store.save()

    # HID device role
    def set_cabled(self, address: Address) -> None:
        section = self.store.device_section(address)
        self.store.set_int(section, HID_DEVICE_CABLED_KEY, 1)
        self.store.save()

    def remove_cabled(self, address: Address) -> None:
        section = self.store.device_section(address)
        self.store.remove(section, HID_DEVICE_CABLED_KEY)
        self.store.save()

    def load_cabled(self) -> Optional[Address]:
        '''
        Hand the first bonded host marked as cabled to the runtime stack.
        '''
        for section in self.store.sections():
            try:
                address = Address(section)
            except InvalidArgumentError:
                continue

            if not self.store.exists(section, HID_DEVICE_CABLED_KEY):
                continue

            if self.reconciler.is_bonded(section):
                self.reconciler.stack.add_hid_cabled_device(address)
                return address

        return None
