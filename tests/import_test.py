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
# Imports
# -----------------------------------------------------------------------------


# -----------------------------------------------------------------------------
def test_import():
    from bondstore import (
        address,
        bonding,
        core,
        hid,
        keys,
        logging,
        properties,
        stack,
        storage,
        store,
        utils,
    )

    assert address
    assert bonding
    assert core
    assert hid
    assert keys
    assert logging
    assert properties
    assert stack
    assert storage
    assert store
    assert utils


# -----------------------------------------------------------------------------
def test_app_imports():
    from apps.unbond import main

    assert main


# -----------------------------------------------------------------------------
if __name__ == '__main__':
    test_import()
    test_app_imports()
