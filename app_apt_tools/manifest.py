#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Reading the version of an application from its manifest"""

from typing import Optional, Any, List

import os
import json

import tomlkit
from tomlkit.exceptions import TOMLKitError

from .context import AppContext
from .exceptions import YnhAptError
from .util import file_contents

DEFAULT_APP_VERSION = '1.0'

MANIFEST_FILENAMES = ( 'manifest.json', 'manifest.toml' )

def find_app_manifest(ctx: AppContext) -> Optional[str]:
  """Locates the manifest of an app.

  The manifest normally sits in the app directory; while restoring a backup
  the scripts run one level below it, so the parent directory is checked too.
  """
  search_dirs: List[str] = [ ctx.app_dir, os.path.dirname(ctx.app_dir) ]
  for dirname in search_dirs:
    for filename in MANIFEST_FILENAMES:
      pathname = os.path.join(dirname, filename)
      if os.path.isfile(pathname):
        return pathname
  return None

def load_app_manifest(manifest_file: str) -> Any:
  text = file_contents(manifest_file)
  try:
    if manifest_file.endswith('.toml'):
      return tomlkit.parse(text).unwrap()
    return json.loads(text)
  except (ValueError, TOMLKitError) as ex:
    raise YnhAptError(f"Malformed app manifest {manifest_file}: {ex}") from ex

def get_app_version(ctx: AppContext) -> str:
  """Returns the "version" field of the app manifest, or "1.0" if there is none"""
  manifest_file = find_app_manifest(ctx)
  if manifest_file is None:
    return DEFAULT_APP_VERSION
  manifest = load_app_manifest(manifest_file)
  version = manifest.get('version') if isinstance(manifest, dict) else None
  if version is None or str(version).strip() == '':
    return DEFAULT_APP_VERSION
  return str(version).strip()
