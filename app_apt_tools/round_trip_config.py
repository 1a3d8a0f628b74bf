#!/usr/bin/env python3
#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
YAML/JSON mutable settings file abstraction that preserves round-trip
fidelity for YAML updates (e.g., preserves comments).
"""

from typing import (
    Mapping, MutableMapping, Optional,
    cast, Any, Iterator, ItemsView, ValuesView, KeysView )

import os
import json
import ruamel.yaml # type: ignore[import]
from ruamel.yaml.comments import CommentedMap # type: ignore[import]
from io import StringIO

from .internal_types import JsonableDict
from .exceptions import YnhAptError

from .util import (
    file_contents,
    install_root_file,
  )

class RoundTripConfig(MutableMapping[str, Any]):
  _config_file: str
  _text: str
  """The original text of the document before any unsaved changes are applied"""
  _data: MutableMapping[str, Any]
  _yaml: Optional[ruamel.yaml.YAML] = None
  _mode: int
  _use_sudo: bool

  def __init__(self, config_file: str, create: bool=False, mode: int=0o600, use_sudo: bool=True):
    self._config_file = config_file
    self._mode = mode
    self._use_sudo = use_sudo
    if create and not os.path.exists(config_file):
      text = ''
    else:
      text = file_contents(config_file)
    self._text = text
    data: Any
    if config_file.endswith(('.yaml', '.yml')):
      self._yaml = ruamel.yaml.YAML()
      data = self._yaml.load(text)
      if data is None:
        data = CommentedMap()
    else:
      data = {} if text.strip() == '' else json.loads(text)
    if not isinstance(data, dict):
      raise YnhAptError(f"Settings file {config_file} does not contain a mapping")
    self._data = cast(MutableMapping[str, Any], data)

  @property
  def is_yaml(self) -> bool:
    return not self._yaml is None

  @property
  def data(self) -> MutableMapping[str, Any]:
    return self._data

  @property
  def filename(self) -> str:
    return self._config_file

  def as_text(self) -> str:
    if self._yaml is None:
      text = json.dumps(cast(JsonableDict, self.data), indent=2, sort_keys=True)
    else:
      with StringIO() as output:
        self._yaml.dump(self.data, output)
        text = output.getvalue()
    if not text.endswith('\n'):
      text += '\n'
    return text

  def is_dirty(self) -> bool:
    return self.as_text() != self._text

  def save(self) -> bool:
    text = self.as_text()
    changed = text != self._text
    if changed:
      install_root_file(
          self._config_file,
          text,
          mode=self._mode,
          use_sudo=self._use_sudo,
          sudo_reason=f"Updating settings file {self._config_file}",
        )
      self._text = text
    return changed

  def __setitem__(self, key: str, value: Any):
    self.data[key] = value

  def __getitem__(self, key: str) -> Any:
    return self.data[key]

  def __delitem__(self, key:str) -> None:
    del self.data[key]

  def __iter__(self) -> Iterator[Any]:
    return iter(self.data)

  def __len__(self) -> int:
    return len(self.data)

  def __contains__(self, key: object) -> bool:
    return key in self.data

  def keys(self) -> KeysView[str]:
    return self.data.keys()

  def values(self) -> ValuesView[Any]:
    return self.data.values()

  def items(self) -> ItemsView[str, Any]:
    return self.data.items()

  def update(self, *args, **kwargs) -> None:  # pylint: disable=arguments-differ
    if len(args) > 0:
      assert len(args) == 1
      assert len(kwargs) == 0
      arg = args[0]
      if isinstance(arg, Mapping):
        for k, v in arg.items():
          self.data[k] = v
      else:
        for k, v in arg:
          self.data[k] = v
    else:
      for k, v in kwargs.items():
        self.data[k] = v
