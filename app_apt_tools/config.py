#!/usr/bin/env python3
#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""AptToolsConfig class definition"""

from typing import Optional, Any, Dict

import os

import yaml

from .internal_types import JsonableDict
from .exceptions import YnhAptError

try:
  from yaml import CLoader as YamlLoader
except ImportError:
  from yaml import Loader as YamlLoader  #type: ignore[misc]

class AptToolsConfig:
  """Filesystem locations and tunables used by every operation.

  The defaults match a stock Debian system. Tests and unusual hosts override
  individual attributes, either as keyword arguments or from a YAML file.
  """
  sources_list: str = '/etc/apt/sources.list'
  sources_list_dir: str = '/etc/apt/sources.list.d'
  preferences_dir: str = '/etc/apt/preferences.d'
  trusted_gpg_dir: str = '/etc/apt/trusted.gpg.d'
  dpkg_lock_file: str = '/var/lib/dpkg/lock'
  dpkg_updates_dir: str = '/var/lib/dpkg/updates'
  apps_settings_dir: str = '/etc/yunohost/apps'

  lock_max_attempts: int = 17
  lock_sleep_unit: float = 1.0
  # Exhausting lock_max_attempts only prints a warning unless this is set
  fail_on_lock_timeout: bool = False
  apt_retries: int = 3
  key_fetch_timeout: float = 900.0
  deps_package_suffix: str = '-ynh-deps'
  default_pin_priority: int = 50
  extra_deps_pin_priority: int = 995
  use_sudo: bool = True

  php_package: str = 'php7.4-common'
  php_baseline_version: str = '7.4.33-1+deb11u'
  php_repo_uri: str = 'https://packages.sury.org/php/'
  php_repo_key: str = 'https://packages.sury.org/php/apt.gpg'
  php_repo_name: str = 'extra_php_version'
  php_repo_priority: int = 600
  php_repo_marker: str = 'sury'

  def __init__(self, **kwargs: Any):
    self.update(kwargs)

  def update(self, values: Dict[str, Any]) -> None:
    for key, value in values.items():
      if key.startswith('_') or not hasattr(AptToolsConfig, key) or callable(getattr(AptToolsConfig, key)):
        raise YnhAptError(f"Unknown configuration key '{key}'")
      expected_type = type(getattr(AptToolsConfig, key))
      if expected_type is float and isinstance(value, int) and not isinstance(value, bool):
        value = float(value)
      if not isinstance(value, expected_type):
        raise YnhAptError(
            f"Configuration key '{key}' must be of type {expected_type.__name__}, got {value!r}")
      setattr(self, key, value)

  @classmethod
  def from_file(cls, config_file: str) -> 'AptToolsConfig':
    config_file = os.path.abspath(os.path.normpath(os.path.expanduser(config_file)))
    with open(config_file, encoding='utf-8') as f:
      config_data: Optional[JsonableDict] = yaml.load(f, Loader=YamlLoader)
    if config_data is None:
      config_data = {}
    if not isinstance(config_data, dict):
      raise YnhAptError(f"Config file {config_file} must contain a YAML mapping")
    return cls(**config_data)

  def deps_package_name(self, app: str) -> str:
    """Name of the synthetic package that carries the dependencies of app"""
    return app.replace('_', '-') + self.deps_package_suffix
