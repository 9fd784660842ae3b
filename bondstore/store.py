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
# Configuration Stores
#
# A configuration store holds named sections of string key/value entries. Integers
# are stored in decimal and binary values as lowercase hex, so that a section can
# be read back regardless of which store wrote it.
# -----------------------------------------------------------------------------

# -----------------------------------------------------------------------------
# Imports
# -----------------------------------------------------------------------------
from __future__ import annotations
import abc
import json
import logging
import os
from typing import Dict, List, Optional, Union

from bondstore.address import Address, is_address_string
from bondstore.core import StoreError

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
class ConfigStore(abc.ABC):
    '''
    Section/key/value store. Subclasses provide the string-level accessors, the
    typed accessors are built on top of them.
    '''

    @abc.abstractmethod
    def sections(self) -> List[str]:
        '''Names of all sections, in a stable order.'''

    @abc.abstractmethod
    def has_section(self, section: str) -> bool:
        pass

    @abc.abstractmethod
    def get_str(self, section: str, key: str) -> Optional[str]:
        pass

    @abc.abstractmethod
    def set_str(self, section: str, key: str, value: str) -> None:
        pass

    @abc.abstractmethod
    def remove(self, section: str, key: str) -> bool:
        '''Remove an entry. Returns False if there was no such entry.'''

    @abc.abstractmethod
    def remove_section(self, section: str) -> bool:
        pass

    @abc.abstractmethod
    def save(self) -> None:
        '''Request that pending changes be written, possibly later.'''

    @abc.abstractmethod
    def flush(self) -> None:
        '''Write pending changes now.'''

    def device_section(self, address: Union[Address, str]) -> str:
        '''
        Name of the section holding everything stored about a device.

        Existing sections are matched regardless of the case of their hex digits,
        so files written with lowercase addresses stay usable. A device with no
        section yet gets the canonical (uppercase) name.
        '''
        if isinstance(address, str) and is_address_string(address):
            if self.has_section(address):
                return address

        section = Address(address).section
        if self.has_section(section):
            return section

        for name in self.sections():
            if is_address_string(name) and name.upper() == section:
                return name

        return section

    def exists(self, section: str, key: str) -> bool:
        return self.get_str(section, key) is not None

    def get_int(self, section: str, key: str) -> Optional[int]:
        value = self.get_str(section, key)
        if value is None:
            return None

        try:
            return int(value, 10)
        except ValueError:
            logger.warning(f'[{section}] {key}: not an integer ({value!r})')
            return None

    def set_int(self, section: str, key: str, value: int) -> None:
        self.set_str(section, key, str(int(value)))

    def get_bin(self, section: str, key: str) -> Optional[bytes]:
        value = self.get_str(section, key)
        if value is None:
            return None

        try:
            return bytes.fromhex(value)
        except ValueError:
            logger.warning(f'[{section}] {key}: not a hex string')
            return None

    def set_bin(self, section: str, key: str, value: bytes) -> None:
        self.set_str(section, key, bytes(value).hex())

    def get_bin_length(self, section: str, key: str) -> int:
        value = self.get_bin(section, key)
        return 0 if value is None else len(value)

    def close(self) -> None:
        self.flush()

    def __enter__(self) -> ConfigStore:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    @staticmethod
    def create(spec: Optional[str]) -> ConfigStore:
        '''
        Create a store from a spec string: `MemoryConfigStore` or
        `JsonConfigStore[:<filename>]`.
        '''
        if spec is None:
            return MemoryConfigStore()

        store_type, *params = spec.split(':', 1)
        if store_type == 'JsonConfigStore':
            return JsonConfigStore(params[0] if params else None)
        if store_type == 'MemoryConfigStore':
            return MemoryConfigStore()

        raise StoreError(f'unknown config store type: {store_type}')


# -----------------------------------------------------------------------------
class MemoryConfigStore(ConfigStore):
    all_sections: Dict[str, Dict[str, str]]

    def __init__(self) -> None:
        self.all_sections = {}
        self.dirty = False
        self.save_count = 0
        self.flush_count = 0

    def sections(self) -> List[str]:
        return list(self.all_sections.keys())

    def has_section(self, section: str) -> bool:
        return section in self.all_sections

    def get_str(self, section: str, key: str) -> Optional[str]:
        return self.all_sections.get(section, {}).get(key)

    def set_str(self, section: str, key: str, value: str) -> None:
        self.all_sections.setdefault(section, {})[key] = value
        self.dirty = True

    def remove(self, section: str, key: str) -> bool:
        entries = self.all_sections.get(section)
        if entries is None or key not in entries:
            return False

        del entries[key]
        self.dirty = True
        return True

    def remove_section(self, section: str) -> bool:
        if section not in self.all_sections:
            return False

        del self.all_sections[section]
        self.dirty = True
        return True

    def save(self) -> None:
        self.save_count += 1

    def flush(self) -> None:
        self.flush_count += 1
        self.dirty = False


# -----------------------------------------------------------------------------
class JsonConfigStore(MemoryConfigStore):
    """
    ConfigStore implementation that is backed by a JSON file.

    The JSON object model looks like:
    {
        "Adapter": {
            "Name": "my adapter",
            "LE_LOCAL_KEY_IRK": "hex-encoded-key",
            ...
        },
        "AA:BB:CC:DD:EE:FF": {
            "LinkKey": "hex-encoded-key",
            "LinkKeyType": "4",
            ...
        },
        ... other sections ...
    }

    The file is read once, when the store is created. Pending changes are written
    to the file by `save` and `flush` (and by `close`).
    """

    APP_NAME = 'BondStore'
    APP_AUTHOR = 'Google'
    DEFAULT_BASE_NAME = 'bt_config.json'

    def __init__(self, filename: Optional[str] = None) -> None:
        super().__init__()

        if filename is None:
            # Use a default for the current user

            # Import here because this may not exist on all platforms
            # pylint: disable=import-outside-toplevel
            import appdirs

            self.directory_name = appdirs.user_data_dir(self.APP_NAME, self.APP_AUTHOR)
            self.filename = os.path.join(self.directory_name, self.DEFAULT_BASE_NAME)
        else:
            self.filename = filename
            self.directory_name = os.path.dirname(os.path.abspath(self.filename))

        logger.debug(f'JSON config store: {self.filename}')
        self.load()

    def load(self) -> None:
        # Try to open the file, without failing. If the file does not exist, it
        # will be created upon saving.
        try:
            with open(self.filename, 'r', encoding='utf-8') as json_file:
                db = json.load(json_file)
        except FileNotFoundError:
            db = {}
        except (OSError, json.JSONDecodeError) as error:
            raise StoreError(f'cannot load {self.filename}: {error}') from error

        if not isinstance(db, dict):
            raise StoreError(f'{self.filename}: top level must be an object')

        self.all_sections = {
            str(section): {str(key): str(value) for (key, value) in entries.items()}
            for (section, entries) in db.items()
            if isinstance(entries, dict)
        }
        self.dirty = False

    def save(self) -> None:
        super().save()
        if self.dirty:
            self.write_file()

    def flush(self) -> None:
        self.write_file()
        super().flush()

    def write_file(self) -> None:
        # Create the directory if it doesn't exist
        if not os.path.exists(self.directory_name):
            os.makedirs(self.directory_name, exist_ok=True)

        # Save to a temporary file
        temp_filename = self.filename + '.tmp'
        try:
            with open(temp_filename, 'w', encoding='utf-8') as output:
                json.dump(self.all_sections, output, indent=4)

            # Atomically replace the previous file
            os.replace(temp_filename, self.filename)
        except OSError as error:
            raise StoreError(f'cannot write {self.filename}: {error}') from error

        self.dirty = False

    def close(self) -> None:
        if self.dirty:
            self.flush()
