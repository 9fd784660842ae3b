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

import copy
import dataclasses
import enum
import json
import logging
import time
from typing import Any, Dict, Iterable, List, Optional, Union

from pyee import EventEmitter
from typing_extensions import Self

from bondstore import utils
from bondstore.address import ADDRESS_SIZE, Address
from bondstore.bonding import BondReconciler
from bondstore.core import (
    MAX_DEVICE_RECORDS,
    MAX_UUIDS,
    UUID,
    BT_AUDIO_SINK_SERVICE,
    BT_AUDIO_SOURCE_SERVICE,
    BT_HANDSFREE_AUDIO_GATEWAY_SERVICE,
    BT_HANDSFREE_SERVICE,
    BT_HEADSET_AUDIO_GATEWAY_SERVICE,
    AddressType,
    BaseBondStoreError,
    ScanMode,
)
from bondstore.hid import HidStore
from bondstore.keys import LinkKey
from bondstore.properties import (
    AddressProperty,
    BondedDevicesProperty,
    Property,
    PropertyCodec,
    PropertyType,
    ScanModeProperty,
    TimestampProperty,
    UUID_SIZE,
    UuidsProperty,
)
from bondstore.stack import Controller, RuntimeStack
from bondstore.store import ConfigStore

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------
class ServiceId(enum.IntEnum):
    '''Bit positions in the runtime stack's enabled-services mask.'''

    A2DP_SOURCE = 3
    HSP = 5
    HFP = 6
    A2DP_SINK = 18
    HFP_HS = 24


# fmt: off
# pylint: disable=line-too-long
SERVICE_UUIDS: Dict[ServiceId, List[UUID]] = {
    ServiceId.A2DP_SOURCE: [BT_AUDIO_SOURCE_SERVICE],
    ServiceId.HSP:         [BT_HEADSET_AUDIO_GATEWAY_SERVICE],
    ServiceId.HFP:         [BT_HANDSFREE_AUDIO_GATEWAY_SERVICE, BT_HEADSET_AUDIO_GATEWAY_SERVICE],
    ServiceId.A2DP_SINK:   [BT_AUDIO_SINK_SERVICE],
    ServiceId.HFP_HS:      [BT_HANDSFREE_SERVICE],
}
# fmt: on
# pylint: enable=line-too-long

ADAPTER_PROPERTIES_ON_LOAD = (
    PropertyType.BDADDR,
    PropertyType.BDNAME,
    PropertyType.ADAPTER_SCAN_MODE,
    PropertyType.ADAPTER_DISCOVERY_TIMEOUT,
)

REMOTE_PROPERTIES_ON_LOAD = (
    PropertyType.BDNAME,
    PropertyType.REMOTE_FRIENDLY_NAME,
    PropertyType.CLASS_OF_DEVICE,
    PropertyType.TYPE_OF_DEVICE,
    PropertyType.UUIDS,
)


def uuids_for_services_mask(services_mask: int) -> List[UUID]:
    '''
    The local service UUIDs for an enabled-services mask, in service id order and
    without duplicates.
    '''
    uuids: List[UUID] = []
    for service_id, service_uuids in SERVICE_UUIDS.items():
        if services_mask & (1 << service_id):
            uuids.extend(service_uuids)
    return utils.unique(uuids)


# -----------------------------------------------------------------------------
@dataclasses.dataclass
class StorageConfiguration:
    # Setup defaults
    config_store: Optional[str] = None
    restricted_mode: bool = False
    report_scan_mode_none: bool = True
    max_device_records: int = MAX_DEVICE_RECORDS
    max_uuids: int = MAX_UUIDS

    def load_from_dict(self, config: Dict[str, Any]) -> None:
        config = copy.deepcopy(config)

        # Load data in primitive types.
        for key, value in config.items():
            setattr(self, key, value)

    def load_from_file(self, filename: str) -> None:
        with open(filename, encoding='utf-8') as file:
            self.load_from_dict(json.load(file))

    @classmethod
    def from_file(cls: type[Self], filename: str) -> Self:
        config = cls()
        config.load_from_file(filename)
        return config

    @classmethod
    def from_dict(cls: type[Self], config: Dict[str, Any]) -> Self:
        storage_config = cls()
        storage_config.load_from_dict(config)
        return storage_config


# -----------------------------------------------------------------------------
class Storage(EventEmitter):
    '''
    Adapter and remote device storage.

    Owns the property codec, the bond reconciler, the key stores and the HID
    store, all sharing one configuration store.
    '''

    EVENT_ADAPTER_PROPERTIES = 'adapter_properties'
    EVENT_REMOTE_DEVICE_PROPERTIES = 'remote_device_properties'

    @classmethod
    def from_config_file(cls, filename: str, **kwargs) -> Storage:
        config = StorageConfiguration.from_file(filename)
        return cls(config=config, **kwargs)

    def __init__(
        self,
        store: Optional[ConfigStore] = None,
        controller: Optional[Controller] = None,
        stack: Optional[RuntimeStack] = None,
        config: Optional[StorageConfiguration] = None,
    ) -> None:
        super().__init__()

        # Use the initial config or a default
        self.config = config or StorageConfiguration()

        self.store = (
            store if store is not None else ConfigStore.create(self.config.config_store)
        )
        self.controller = controller or Controller()
        self.stack = stack or RuntimeStack()

        self.codec = PropertyCodec(self.store)
        self.reconciler = BondReconciler(
            self.store, self.stack, self.config.max_device_records
        )
        self.link_keys = self.reconciler.link_keys
        self.le_keys = self.reconciler.le_keys
        self.hid = HidStore(self.store, self.reconciler)

    def close(self) -> None:
        self.store.close()

    def __enter__(self) -> Storage:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Adapter properties
    # -------------------------------------------------------------------------
    def local_uuids(self) -> List[UUID]:
        uuids = uuids_for_services_mask(self.stack.get_enabled_services_mask())
        return uuids[: self.config.max_uuids]

    def get_adapter_property(
        self, property_type: int, max_length: Optional[int] = None
    ) -> Optional[Property]:
        property_class = Property.subclass_for(property_type)
        PropertyCodec.check_capacity(property_class, max_length)
        property_type = property_class.property_type

        if property_type == PropertyType.BDADDR:
            if not self.controller.is_ready:
                logger.error('controller not ready, local address unavailable')
                return None
            return AddressProperty(self.controller.address)

        if property_type == PropertyType.ADAPTER_BONDED_DEVICES:
            addresses = self.reconciler.bonded_addresses()
            if max_length is not None:
                addresses = addresses[: max_length // ADDRESS_SIZE]
            return BondedDevicesProperty(addresses)

        if property_type == PropertyType.UUIDS:
            uuids = self.local_uuids()
            if max_length is not None:
                uuids = uuids[: max_length // UUID_SIZE]
            return UuidsProperty(uuids)

        if (
            property_type == PropertyType.ADAPTER_SCAN_MODE
            and self.config.report_scan_mode_none
        ):
            return ScanModeProperty(ScanMode.NONE)

        prop = self.codec.decode(None, property_type, max_length)
        if prop is None:
            prop = self.stack.get_default_adapter_property(property_type)
        return prop

    def set_adapter_property(self, prop: Property) -> None:
        self.codec.encode(None, prop)
        if prop.property_type == PropertyType.BDNAME:
            self.store.flush()
        else:
            self.store.save()

    # -------------------------------------------------------------------------
    # Remote device properties
    # -------------------------------------------------------------------------
    def get_remote_device_property(
        self,
        address: Union[Address, str],
        property_type: int,
        max_length: Optional[int] = None,
    ) -> Optional[Property]:
        prop = self.codec.decode(Address(address), property_type, max_length)
        if isinstance(prop, UuidsProperty):
            prop.uuids = prop.uuids[: self.config.max_uuids]
        return prop

    def set_remote_device_property(
        self, address: Union[Address, str], prop: Property
    ) -> None:
        address = Address(address)
        self.codec.encode(address, prop)
        self._commit(address)

    def add_remote_device(
        self, address: Union[Address, str], properties: Iterable[Property]
    ) -> int:
        '''
        Store the properties of a discovered device. The address property is
        stored as the time the device was last seen, the RSSI is not stored.

        Returns the number of properties stored.
        '''
        address = Address(address)
        stored = 0
        for prop in properties:
            if prop.property_type == PropertyType.REMOTE_RSSI:
                continue
            if prop.property_type == PropertyType.BDADDR:
                prop = TimestampProperty(int(time.time()))

            try:
                self.codec.encode(address, prop)
                stored += 1
            except (BaseBondStoreError, ValueError) as error:
                logger.warning(
                    f'[{address}] cannot store {prop.property_type.name}: {error}'
                )

        self._commit(address)
        return stored

    def get_stored_remote_name(self, address: Union[Address, str]) -> Optional[str]:
        return self.store.get_str(self.store.device_section(address), 'Name')

    def set_remote_address_type(
        self, address: Union[Address, str], address_type: int
    ) -> None:
        section = self.store.device_section(address)
        self.store.set_int(section, 'AddrType', AddressType(address_type))
        self.store.save()

    def get_remote_address_type(
        self, address: Union[Address, str]
    ) -> Optional[AddressType]:
        section = self.store.device_section(address)
        address_type = self.store.get_int(section, 'AddrType')
        if address_type is None:
            return None
        return AddressType(address_type)

    def _commit(self, address: Address) -> None:
        # Properties of bonded devices are written out right away
        if self.reconciler.is_bonded(address):
            self.store.flush()
        else:
            self.store.save()

    # -------------------------------------------------------------------------
    # Bonding
    # -------------------------------------------------------------------------
    def add_bonded_device(
        self, address: Union[Address, str], link_key: LinkKey
    ) -> None:
        section = self.store.device_section(address)
        logger.debug(f'[{section}] adding bond ({link_key.key_type.name})')
        self.link_keys.put(section, link_key)
        if self.config.restricted_mode:
            logger.debug(f'[{section}] bonded in restricted mode')
            self.store.set_int(section, 'Restricted', 1)
        self.store.flush()

    def remove_bonded_device(self, address: Union[Address, str]) -> bool:
        section = self.store.device_section(address)
        logger.debug(f'[{section}] removing bond')
        result = self.le_keys.remove_all_remote_keys(section)
        result &= self.link_keys.remove(section)
        self.store.flush()
        return result

    def is_device_bonded(self, address: Union[Address, str]) -> bool:
        return self.link_keys.exists(Address(address))

    def is_restricted_device(self, address: Union[Address, str]) -> bool:
        section = self.store.device_section(address)
        return self.store.exists(section, 'Restricted')

    def load_bonded_devices(self) -> List[Address]:
        '''
        Add all bonded devices to the runtime stack, then publish the adapter
        properties and the properties of each bonded device.
        '''
        addresses = self.reconciler.bonded_addresses(apply=True)

        adapter_properties: List[Property] = []
        for property_type in ADAPTER_PROPERTIES_ON_LOAD:
            if property_type == PropertyType.BDADDR and not self.controller.is_ready:
                continue
            prop = self._load_property(None, property_type)
            if prop is not None:
                adapter_properties.append(prop)
        adapter_properties.append(BondedDevicesProperty(addresses))
        adapter_properties.append(UuidsProperty(self.local_uuids()))

        self.stack.adapter_properties_changed(adapter_properties)
        self.emit(self.EVENT_ADAPTER_PROPERTIES, adapter_properties)

        for address in addresses:
            remote_properties: List[Property] = []
            for property_type in REMOTE_PROPERTIES_ON_LOAD:
                prop = self._load_property(address, property_type)
                if prop is not None:
                    remote_properties.append(prop)

            self.stack.remote_properties_changed(address, remote_properties)
            self.emit(self.EVENT_REMOTE_DEVICE_PROPERTIES, address, remote_properties)

        logger.debug(f'loaded {len(addresses)} bonded devices')
        return addresses

    def _load_property(
        self, address: Optional[Address], property_type: PropertyType
    ) -> Optional[Property]:
        try:
            if address is None:
                return self.get_adapter_property(property_type)
            return self.get_remote_device_property(address, property_type)
        except (BaseBondStoreError, ValueError) as error:
            logger.warning(f'cannot load {property_type.name}: {error}')
            return None
