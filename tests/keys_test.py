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
import copy
import itertools
import logging
import os

import pytest

from bondstore.address import Address
from bondstore.core import InvalidArgumentError
from bondstore.keys import (
    LeKeyStore,
    LeKeyType,
    LinkKey,
    LinkKeyStore,
    LinkKeyType,
    LocalLeKeyType,
    PeerEncryptionKey,
    PeerIdentityKey,
)
from bondstore.store import JsonConfigStore, MemoryConfigStore

from tests.test_utils import SAMPLE_LE_KEYS, SAMPLE_LINK_KEY

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
DEVICE = Address('AA:BB:CC:DD:EE:FF')


# -----------------------------------------------------------------------------
def test_key_sizes():
    assert {key_type: key_type.size for key_type in LeKeyType} == {
        LeKeyType.PENC: 28,
        LeKeyType.PID: 23,
        LeKeyType.PCSRK: 21,
        LeKeyType.LENC: 20,
        LeKeyType.LCSRK: 23,
        LeKeyType.LID: 23,
    }
    assert LeKeyType.LID.storage_key == 'LE_KEY_LID'
    assert LocalLeKeyType.IRK.storage_key == 'LE_LOCAL_KEY_IRK'


# -----------------------------------------------------------------------------
def test_key_bundles():
    for key_type, bundle in SAMPLE_LE_KEYS.items():
        data = bytes(bundle)
        assert len(data) == key_type.size
        assert key_type.bundle_class.from_bytes(data) == bundle

    pid = PeerIdentityKey.from_bytes(bytes(SAMPLE_LE_KEYS[LeKeyType.PID]))
    assert pid.identity_address == Address('11:22:33:44:55:66')

    with pytest.raises(InvalidArgumentError):
        PeerEncryptionKey.from_bytes(bytes(27))


# -----------------------------------------------------------------------------
def test_link_key():
    store = MemoryConfigStore()
    link_keys = LinkKeyStore(store)
    assert link_keys.get(DEVICE) is None
    assert not link_keys.exists(DEVICE)

    link_keys.put(DEVICE, SAMPLE_LINK_KEY)
    assert link_keys.exists(DEVICE)
    assert link_keys.get(DEVICE) == SAMPLE_LINK_KEY
    assert link_keys.get('AA:BB:CC:DD:EE:FF') == SAMPLE_LINK_KEY
    assert store.get_int(DEVICE.section, 'LinkKeyType') == LinkKeyType.COMBINATION
    assert store.get_int(DEVICE.section, 'PinLength') == 4

    assert link_keys.remove(DEVICE)
    assert link_keys.get(DEVICE) is None
    assert store.all_sections[DEVICE.section] == {}

    # Nothing to remove is not a failure
    assert link_keys.remove(DEVICE)


# -----------------------------------------------------------------------------
def test_link_key_requires_type():
    store = MemoryConfigStore()
    store.set_bin(DEVICE.section, 'LinkKey', bytes(16))
    assert LinkKeyStore(store).get(DEVICE) is None

    store.set_int(DEVICE.section, 'LinkKeyType', 5)
    link_key = LinkKeyStore(store).get(DEVICE)
    assert link_key == LinkKey(
        bytes(16), LinkKeyType.AUTHENTICATED_COMBINATION_P_192, 0
    )

    with pytest.raises(InvalidArgumentError):
        LinkKey(bytes(15))


# -----------------------------------------------------------------------------
def test_remote_keys():
    store = MemoryConfigStore()
    le_keys = LeKeyStore(store)

    for key_type, bundle in SAMPLE_LE_KEYS.items():
        assert le_keys.get_remote_key(DEVICE, key_type) is None
        le_keys.put_remote_key(DEVICE, key_type, bundle)
        assert le_keys.get_remote_key(DEVICE, key_type) == bytes(bundle)
        assert le_keys.get_remote_key_bundle(DEVICE, key_type) == bundle

    assert store.save_count == len(SAMPLE_LE_KEYS)
    assert store.flush_count == 0


# -----------------------------------------------------------------------------
def test_remote_keys_survive_without_close(tmp_path):
    filename = str(tmp_path / 'bt_config.json')
    le_keys = LeKeyStore(JsonConfigStore(filename))
    le_keys.put_remote_key(DEVICE, LeKeyType.PENC, SAMPLE_LE_KEYS[LeKeyType.PENC])

    reopened = LeKeyStore(JsonConfigStore(filename))
    assert reopened.get_remote_key_bundle(DEVICE, LeKeyType.PENC) == (
        SAMPLE_LE_KEYS[LeKeyType.PENC]
    )

    le_keys.remove_all_remote_keys(DEVICE)
    assert not LeKeyStore(JsonConfigStore(filename)).has_le_keys(DEVICE)


# -----------------------------------------------------------------------------
def test_put_remote_key_is_idempotent():
    store = MemoryConfigStore()
    le_keys = LeKeyStore(store)
    key = bytes(SAMPLE_LE_KEYS[LeKeyType.PENC])

    le_keys.put_remote_key(DEVICE, LeKeyType.PENC, key)
    state = copy.deepcopy(store.all_sections)
    le_keys.put_remote_key(DEVICE, LeKeyType.PENC, key)
    assert store.all_sections == state


# -----------------------------------------------------------------------------
def test_remote_key_size_mismatch():
    store = MemoryConfigStore()
    le_keys = LeKeyStore(store)

    with pytest.raises(InvalidArgumentError):
        le_keys.put_remote_key(DEVICE, LeKeyType.PENC, bytes(27))
    with pytest.raises(InvalidArgumentError):
        le_keys.put_remote_key(DEVICE, 0x40, bytes(16))
    assert store.sections() == []

    # A stored blob of the wrong size reads as absent
    store.set_bin(DEVICE.section, 'LE_KEY_PID', bytes(22))
    assert le_keys.get_remote_key(DEVICE, LeKeyType.PID) is None


# -----------------------------------------------------------------------------
def test_has_le_keys():
    store = MemoryConfigStore()
    le_keys = LeKeyStore(store)

    le_keys.put_remote_key(DEVICE, LeKeyType.PID, SAMPLE_LE_KEYS[LeKeyType.PID])
    assert not le_keys.has_le_keys(DEVICE)

    le_keys.put_remote_key(DEVICE, LeKeyType.PENC, SAMPLE_LE_KEYS[LeKeyType.PENC])
    assert le_keys.has_le_keys(DEVICE)


# -----------------------------------------------------------------------------
@pytest.mark.parametrize(
    'key_types',
    [
        key_types
        for count in range(len(LeKeyType) + 1)
        for key_types in itertools.combinations(LeKeyType, count)
    ],
)
def test_remove_all_remote_keys(key_types):
    store = MemoryConfigStore()
    le_keys = LeKeyStore(store)
    for key_type in key_types:
        le_keys.put_remote_key(DEVICE, key_type, SAMPLE_LE_KEYS[key_type])
    store.set_int(DEVICE.section, 'DevClass', 0x240404)

    assert le_keys.remove_all_remote_keys(DEVICE)
    for key_type in LeKeyType:
        assert not store.exists(DEVICE.section, key_type.storage_key)
    assert store.get_int(DEVICE.section, 'DevClass') == 0x240404


# -----------------------------------------------------------------------------
def test_local_keys():
    store = MemoryConfigStore()
    le_keys = LeKeyStore(store)

    for key_type in LocalLeKeyType:
        le_keys.put_local_key(key_type, bytes([key_type] * 16))
    assert store.sections() == ['Adapter']
    assert le_keys.get_local_key(LocalLeKeyType.ER) == bytes([8] * 16)

    with pytest.raises(InvalidArgumentError):
        le_keys.put_local_key(LocalLeKeyType.IR, bytes(15))
    with pytest.raises(InvalidArgumentError):
        le_keys.get_local_key(0x10)

    assert le_keys.remove_all_local_keys()
    for key_type in LocalLeKeyType:
        assert le_keys.get_local_key(key_type) is None
    assert le_keys.remove_all_local_keys()


# -----------------------------------------------------------------------------
def test_resolving_keys():
    store = MemoryConfigStore()
    le_keys = LeKeyStore(store)
    other = Address('01:02:03:04:05:06')

    le_keys.put_remote_key(DEVICE, LeKeyType.PID, SAMPLE_LE_KEYS[LeKeyType.PID])
    le_keys.put_remote_key(other, LeKeyType.PID, PeerIdentityKey(bytes([7] * 16)))
    le_keys.put_remote_key(
        '11:11:11:11:11:11', LeKeyType.PENC, SAMPLE_LE_KEYS[LeKeyType.PENC]
    )

    assert le_keys.get_resolving_keys() == [
        (bytes(range(16, 32)), Address('11:22:33:44:55:66')),
        (bytes([7] * 16), other),
    ]


# -----------------------------------------------------------------------------
if __name__ == '__main__':
    logging.basicConfig(level=os.environ.get('BONDSTORE_LOGLEVEL', 'INFO').upper())
    test_key_sizes()
    test_key_bundles()
    test_link_key()
    test_remote_keys()
    test_local_keys()
    test_resolving_keys()
