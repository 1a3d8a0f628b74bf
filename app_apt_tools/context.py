#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""AppContext class definition"""

from typing import Optional, TextIO

import os
import sys

from .config import AptToolsConfig
from .exceptions import YnhAptError

class AppContext:
  """The application on whose behalf packages are managed, plus configuration.

  Passed explicitly to every operation in this package.
  """
  app: str
  app_dir: str
  config: AptToolsConfig
  stderr: TextIO

  def __init__(
        self,
        app: str,
        app_dir: Optional[str]=None,
        config: Optional[AptToolsConfig]=None,
        stderr: Optional[TextIO]=None,
      ):
    if app == '':
      raise YnhAptError("An application id is required")
    self.app = app
    if app_dir is None:
      app_dir = '.'
    self.app_dir = os.path.abspath(os.path.expanduser(app_dir))
    self.config = AptToolsConfig() if config is None else config
    self.stderr = sys.stderr if stderr is None else stderr

  @property
  def deps_package_name(self) -> str:
    return self.config.deps_package_name(self.app)

  @property
  def use_sudo(self) -> bool:
    return self.config.use_sudo

  def log(self, msg: str) -> None:
    print(msg, file=self.stderr)
