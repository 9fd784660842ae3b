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
import click

from bondstore.core import BaseBondStoreError
from bondstore.logging import setup_basic_logging
from bondstore.storage import Storage, StorageConfiguration
from bondstore.store import JsonConfigStore


# -----------------------------------------------------------------------------
def print_bonds(storage):
    records = storage.reconciler.fetch_bonded_devices()
    if not records:
        print(click.style('no bonded devices', fg='yellow'))
        return

    for record in records:
        key_kinds = []
        if record.link_key is not None:
            key_kinds.append(f'classic ({record.link_key.key_type.name})')
        key_kinds.extend(key_type.name for key_type in record.le_keys)

        name = storage.get_stored_remote_name(record.address) or ''
        print(
            click.style(str(record.address), fg='yellow'),
            click.style(name, fg='cyan'),
            ', '.join(key_kinds),
        )


# -----------------------------------------------------------------------------
def unbond(storage, address):
    if address is None:
        return print_bonds(storage)

    if not storage.reconciler.is_bonded(address):
        print(click.style('!!! bond not found', fg='red'))
        return

    if storage.remove_bonded_device(address):
        print(click.style(f'removed bond for {address}', fg='green'))
    else:
        print(click.style(f'!!! could not remove all keys for {address}', fg='red'))


# -----------------------------------------------------------------------------
@click.command()
@click.option('--config-file', help='JSON file in which the bonds are stored')
@click.option('--restricted', is_flag=True, help='Open the store in restricted mode')
@click.argument('address', required=False)
def main(config_file, restricted, address):
    """
    Remove the bond with a device, given its address.

    If no config file is specified, the default file for the current user is used.
    If no address is passed, all bonded devices are listed.
    """
    setup_basic_logging('WARNING')

    config = StorageConfiguration(restricted_mode=restricted)
    try:
        with Storage(store=JsonConfigStore(config_file), config=config) as storage:
            unbond(storage, address)
    except BaseBondStoreError as error:
        raise click.ClickException(str(error)) from error


# -----------------------------------------------------------------------------
if __name__ == '__main__':
    main()
