#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Per-application key/value settings"""

from typing import Any, Optional

import os

from .context import AppContext
from .round_trip_config import RoundTripConfig

class AppSettings:
  """The settings.yml of one application, e.g. /etc/yunohost/apps/<app>/settings.yml"""
  ctx: AppContext

  def __init__(self, ctx: AppContext):
    self.ctx = ctx

  @property
  def settings_file(self) -> str:
    return os.path.join(self.ctx.config.apps_settings_dir, self.ctx.app, 'settings.yml')

  def _load(self) -> RoundTripConfig:
    return RoundTripConfig(self.settings_file, create=True, use_sudo=self.ctx.use_sudo)

  def get(self, key: str, default: Optional[Any]=None) -> Any:
    if not os.path.exists(self.settings_file):
      return default
    return self._load().get(key, default)

  def set(self, key: str, value: Any) -> None:
    rt = self._load()
    rt[key] = value
    rt.save()

  def delete(self, key: str) -> None:
    if not os.path.exists(self.settings_file):
      return
    rt = self._load()
    if key in rt:
      del rt[key]
      rt.save()
