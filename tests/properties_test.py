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
import struct

import pytest

from bondstore.address import Address
from bondstore.core import (
    BT_AUDIO_SINK_SERVICE,
    BT_HANDSFREE_SERVICE,
    BT_SERIAL_PORT_SERVICE,
    MAX_NAME_LENGTH,
    MAX_UUIDS,
    UUID,
    DeviceType,
    InvalidArgumentError,
    ScanMode,
)
from bondstore.properties import (
    AddressProperty,
    BondedDevicesProperty,
    ClassOfDeviceProperty,
    DeviceTypeProperty,
    DiscoveryTimeoutProperty,
    FriendlyNameProperty,
    NameProperty,
    Property,
    PropertyCodec,
    PropertyType,
    RemoteVersionInfoProperty,
    RssiProperty,
    ScanModeProperty,
    TimestampProperty,
    UuidsProperty,
    join_uuids,
    split_uuids_string,
)
from bondstore.store import MemoryConfigStore

# -----------------------------------------------------------------------------
DEVICE = Address('AA:BB:CC:DD:EE:FF')

DEVICE_PROPERTIES = [
    NameProperty('Headphones'),
    FriendlyNameProperty('My Headphones'),
    ClassOfDeviceProperty(0x240404),
    DeviceTypeProperty(DeviceType.DUMO),
    TimestampProperty(1700000000),
    UuidsProperty([BT_SERIAL_PORT_SERVICE, BT_AUDIO_SINK_SERVICE]),
    RemoteVersionInfoProperty(version=10, sub_version=0x1234, manufacturer=29),
]

ADAPTER_PROPERTIES = [
    NameProperty('my adapter'),
    ScanModeProperty(ScanMode.CONNECTABLE_DISCOVERABLE),
    DiscoveryTimeoutProperty(120),
]


# -----------------------------------------------------------------------------
@pytest.mark.parametrize('prop', DEVICE_PROPERTIES)
def test_device_property_round_trip(prop: Property):
    codec = PropertyCodec(MemoryConfigStore())
    codec.encode(DEVICE, prop)
    assert codec.decode(DEVICE, prop.property_type) == prop
    assert codec.store.sections() == [DEVICE.section]


# -----------------------------------------------------------------------------
@pytest.mark.parametrize('prop', ADAPTER_PROPERTIES)
def test_adapter_property_round_trip(prop: Property):
    codec = PropertyCodec(MemoryConfigStore())
    codec.encode(None, prop)
    assert codec.decode(None, prop.property_type) == prop
    assert codec.store.sections() == ['Adapter']


# -----------------------------------------------------------------------------
@pytest.mark.parametrize('prop', DEVICE_PROPERTIES + ADAPTER_PROPERTIES)
def test_payload_round_trip(prop: Property):
    assert Property.from_bytes(prop.property_type, bytes(prop)) == prop


# -----------------------------------------------------------------------------
def test_stored_layout():
    store = MemoryConfigStore()
    codec = PropertyCodec(store)
    codec.encode(DEVICE, ClassOfDeviceProperty(0x240404))
    codec.encode(DEVICE, UuidsProperty([BT_SERIAL_PORT_SERVICE]))
    codec.encode(DEVICE, RemoteVersionInfoProperty(10, 0x1234, 29))

    assert store.all_sections[DEVICE.section] == {
        'DevClass': str(0x240404),
        'Service': '00001101-0000-1000-8000-00805f9b34fb ',
        'LmpVer': '10',
        'LmpSubVer': str(0x1234),
        'Manufacturer': '29',
    }


# -----------------------------------------------------------------------------
@pytest.mark.parametrize(
    'property_type,size',
    (
        (PropertyType.CLASS_OF_DEVICE, 3),
        (PropertyType.TYPE_OF_DEVICE, 0),
        (PropertyType.UUIDS, 15),
        (PropertyType.REMOTE_VERSION_INFO, 11),
        (PropertyType.BDNAME, 0),
        (PropertyType.BDADDR, 5),
    ),
)
def test_short_payload(property_type, size):
    with pytest.raises(InvalidArgumentError):
        Property.from_bytes(property_type, bytes(size))


# -----------------------------------------------------------------------------
def test_unknown_property_type():
    with pytest.raises(InvalidArgumentError):
        Property.from_bytes(0x42, bytes(4))

    codec = PropertyCodec(MemoryConfigStore())
    with pytest.raises(InvalidArgumentError):
        codec.decode(DEVICE, 0x42)


# -----------------------------------------------------------------------------
def test_invalid_encode_writes_nothing():
    store = MemoryConfigStore()
    codec = PropertyCodec(store)

    with pytest.raises(InvalidArgumentError):
        codec.encode(DEVICE, NameProperty(''))
    with pytest.raises(InvalidArgumentError):
        codec.encode(DEVICE, FriendlyNameProperty('x' * 1024))
    with pytest.raises(InvalidArgumentError):
        codec.encode(DEVICE, UuidsProperty([]))

    assert store.sections() == []


# -----------------------------------------------------------------------------
@pytest.mark.parametrize(
    'prop',
    (
        AddressProperty(DEVICE),
        BondedDevicesProperty([DEVICE]),
        RssiProperty(-40),
    ),
)
def test_not_stored(prop: Property):
    codec = PropertyCodec(MemoryConfigStore())
    with pytest.raises(InvalidArgumentError):
        codec.encode(DEVICE, prop)
    with pytest.raises(InvalidArgumentError):
        codec.decode(DEVICE, prop.property_type)


# -----------------------------------------------------------------------------
def test_device_only_property_needs_address():
    codec = PropertyCodec(MemoryConfigStore())
    with pytest.raises(InvalidArgumentError):
        codec.encode(None, ClassOfDeviceProperty(0x240404))

    # Reading at adapter scope finds nothing
    codec.store.set_int('Adapter', 'DevClass', 0x240404)
    assert codec.decode(None, PropertyType.CLASS_OF_DEVICE) is None
    assert codec.decode(None, PropertyType.REMOTE_RSSI) is None


# -----------------------------------------------------------------------------
def test_adapter_property_ignores_address():
    store = MemoryConfigStore()
    codec = PropertyCodec(store)
    codec.encode(DEVICE, ScanModeProperty(ScanMode.CONNECTABLE))
    assert store.sections() == ['Adapter']


# -----------------------------------------------------------------------------
def test_not_found():
    codec = PropertyCodec(MemoryConfigStore())
    assert codec.decode(DEVICE, PropertyType.BDNAME) is None
    assert codec.decode(DEVICE, PropertyType.UUIDS) is None
    assert codec.decode(None, PropertyType.ADAPTER_SCAN_MODE) is None

    # Version info needs all three entries
    codec.store.set_int(DEVICE.section, 'LmpVer', 10)
    codec.store.set_int(DEVICE.section, 'LmpSubVer', 1)
    assert codec.decode(DEVICE, PropertyType.REMOTE_VERSION_INFO) is None


# -----------------------------------------------------------------------------
def test_name_truncation():
    codec = PropertyCodec(MemoryConfigStore())
    codec.encode(DEVICE, NameProperty('n' * 300))
    name = codec.decode(DEVICE, PropertyType.BDNAME)
    assert name == NameProperty('n' * MAX_NAME_LENGTH)

    # Never split a multi-byte character
    codec.encode(DEVICE, NameProperty('n' * 247 + 'é'))
    assert codec.decode(DEVICE, PropertyType.BDNAME) == NameProperty('n' * 247)


# -----------------------------------------------------------------------------
def test_capacity():
    codec = PropertyCodec(MemoryConfigStore())
    codec.encode(DEVICE, NameProperty('Headphones'))
    codec.encode(
        DEVICE,
        UuidsProperty([BT_SERIAL_PORT_SERVICE, BT_AUDIO_SINK_SERVICE]),
    )

    assert codec.decode(DEVICE, PropertyType.BDNAME, 10) == NameProperty('Headphones')
    assert codec.decode(DEVICE, PropertyType.BDNAME, 9) is None

    uuids = codec.decode(DEVICE, PropertyType.UUIDS, 16)
    assert uuids == UuidsProperty([BT_SERIAL_PORT_SERVICE])

    with pytest.raises(InvalidArgumentError):
        codec.decode(DEVICE, PropertyType.UUIDS, 15)
    with pytest.raises(InvalidArgumentError):
        codec.decode(DEVICE, PropertyType.CLASS_OF_DEVICE, 3)
    with pytest.raises(InvalidArgumentError):
        codec.decode(DEVICE, PropertyType.BDNAME, 0)


# -----------------------------------------------------------------------------
def test_uuid_list_partial_decode():
    uuids = split_uuids_string('00001101-0000-1000-8000-00805f9b34fb garbage')
    assert uuids == [BT_SERIAL_PORT_SERVICE]

    uuids = split_uuids_string(
        '00001101-0000-1000-8000-00805f9b34fb '
        '0000111e-0000-1000-8000-00805f9b3zzz '
        '0000110b-0000-1000-8000-00805f9b34fb'
    )
    assert uuids == [BT_SERIAL_PORT_SERVICE]

    assert split_uuids_string('') == []
    assert split_uuids_string('garbage') == []


# -----------------------------------------------------------------------------
def test_uuid_list_partial_decode_from_store():
    codec = PropertyCodec(MemoryConfigStore())
    codec.store.set_str(
        DEVICE.section, 'Service', '00001101-0000-1000-8000-00805f9b34fb garbage'
    )
    assert codec.decode(DEVICE, PropertyType.UUIDS) == UuidsProperty(
        [BT_SERIAL_PORT_SERVICE]
    )


# -----------------------------------------------------------------------------
def test_uuid_list_limit():
    uuids = [UUID.from_16_bits(0x1800 + i) for i in range(MAX_UUIDS + 8)]

    codec = PropertyCodec(MemoryConfigStore())
    codec.encode(DEVICE, UuidsProperty(uuids))
    decoded = codec.decode(DEVICE, PropertyType.UUIDS)
    assert decoded == UuidsProperty(uuids[:MAX_UUIDS])

    assert len(split_uuids_string(join_uuids(uuids))) == MAX_UUIDS


# -----------------------------------------------------------------------------
def test_join_uuids():
    assert join_uuids([BT_SERIAL_PORT_SERVICE, BT_HANDSFREE_SERVICE]) == (
        '00001101-0000-1000-8000-00805f9b34fb '
        '0000111e-0000-1000-8000-00805f9b34fb '
    )
    assert join_uuids([]) == ''


# -----------------------------------------------------------------------------
def test_payloads():
    assert bytes(ClassOfDeviceProperty(0x240404)) == struct.pack('<I', 0x240404)
    assert bytes(AddressProperty(DEVICE)) == bytes.fromhex('AABBCCDDEEFF')
    assert bytes(UuidsProperty([BT_SERIAL_PORT_SERVICE])) == bytes.fromhex(
        '0000110100001000800000805f9b34fb'
    )

    bonded = Property.from_bytes(
        PropertyType.ADAPTER_BONDED_DEVICES,
        bytes.fromhex('AABBCCDDEEFF112233445566'),
    )
    assert bonded == BondedDevicesProperty([DEVICE, Address('11:22:33:44:55:66')])

    assert Property.from_bytes(PropertyType.REMOTE_RSSI, b'\xd8') == RssiProperty(-40)
    assert Property.from_bytes(
        PropertyType.TYPE_OF_DEVICE, struct.pack('<I', 2)
    ) == DeviceTypeProperty(DeviceType.BLE)

    version_info = RemoteVersionInfoProperty(0xFFFFFFFF, 0x80000000, 29)
    assert bytes(version_info) == bytes.fromhex('ffffffff000000801d000000')
    assert (
        Property.from_bytes(PropertyType.REMOTE_VERSION_INFO, bytes(version_info))
        == version_info
    )


# -----------------------------------------------------------------------------
if __name__ == '__main__':
    test_stored_layout()
    test_invalid_encode_writes_nothing()
    test_not_found()
    test_name_truncation()
    test_capacity()
    test_uuid_list_partial_decode()
    test_uuid_list_limit()
