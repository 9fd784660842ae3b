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
from __future__ import annotations
import enum
import logging
from typing import Any, Callable, Iterable, List, Tuple

from pyee import EventEmitter

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
class OpenIntEnum(enum.IntEnum):
    """
    Subclass of enum.IntEnum that can hold integer values outside the set of
    predefined values. Stored files may contain values written by a newer
    version, and those must survive a read/write cycle.
    """

    @classmethod
    def _missing_(cls, value):
        if not isinstance(value, int):
            return None

        obj = int.__new__(cls, value)
        obj._value_ = value
        obj._name_ = f"{cls.__name__}[{value}]"
        return obj


# -----------------------------------------------------------------------------
class EventWatcher:
    '''A wrapper class to control the lifecycle of event handlers.

    Usage:
    ```
    watcher = EventWatcher()

    @watcher.on(storage, 'adapter_properties')
    def on_adapter_properties(properties):
        ...

    # Close all event handlers watching through this watcher
    watcher.close()
    ```
    '''

    handlers: List[Tuple[EventEmitter, str, Callable[..., Any]]]

    def __init__(self) -> None:
        self.handlers = []

    def on(self, emitter: EventEmitter, event: str, handler=None):
        def wrapper(f):
            self.handlers.append((emitter, event, f))
            emitter.on(event, f)
            return f

        return wrapper if handler is None else wrapper(handler)

    def close(self) -> None:
        for emitter, event, handler in self.handlers:
            if handler in emitter.listeners(event):
                emitter.remove_listener(event, handler)
        self.handlers = []


# -----------------------------------------------------------------------------
def unique(items: Iterable[Any]) -> List[Any]:
    '''Items in their original order, without duplicates.'''
    result: List[Any] = []
    for item in items:
        if item not in result:
            result.append(item)
    return result
