#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Installing and removing the system package dependencies of an application.

All dependencies of an app are declared by a single synthetic package,
"<app>-ynh-deps" (underscores in the app id become hyphens). Installing it
pulls the dependencies in; purging it lets apt autoremove whatever no other
package still needs.
"""

from typing import List

import glob
import os
import re

from .app_settings import AppSettings
from .context import AppContext
from .dependency_spec import merge_dependencies, normalize_dependencies
from .equivs import ControlDescriptor, install_from_equivs
from .exceptions import DependencyResolutionError, YnhAptError
from .extra_repo import install_extra_repo
from .manifest import get_app_version
from .os_packages import (autopurge_os_packages, get_os_package_depends,
                          get_os_package_version, os_package_is_installed)
from .util import get_linux_distro_name

APT_DEPENDENCIES_SETTING = 'apt_dependencies'

def get_app_deps_package_name(ctx: AppContext) -> str:
  return ctx.deps_package_name

def build_app_deps_control(ctx: AppContext, dependencies: str) -> ControlDescriptor:
  return ControlDescriptor(
      get_app_deps_package_name(ctx),
      get_app_version(ctx),
      depends=dependencies,
      description=(
          f"Fake package for {ctx.app} (YunoHost app) dependencies\n"
          " This meta-package is only responsible of installing its dependencies."
        ),
    )

def _apt_source_files(ctx: AppContext) -> List[str]:
  cfg = ctx.config
  result = [ cfg.sources_list ]
  result.extend(sorted(glob.glob(os.path.join(cfg.sources_list_dir, '*.list'))))
  return [ x for x in result if os.path.isfile(x) ]

def apt_sources_mention(ctx: AppContext, marker: str) -> bool:
  """Returns True if an enabled "deb" line in any apt source file contains marker"""
  pattern = re.compile(r'^\s*deb\s.*' + re.escape(marker))
  for filename in _apt_source_files(ctx):
    with open(filename, encoding='utf-8', errors='replace') as f:
      for line in f:
        if pattern.search(line):
          return True
  return False

def _ensure_php_extra_repo(ctx: AppContext, dependencies: str) -> None:
  # Hosts that once had PHP from the sury repository carry PHP packages
  # newer than Debian's. Without that repository apt cannot resolve php-*
  # dependencies against them, so it is added back before installing.
  cfg = ctx.config
  if not 'php' in dependencies:
    return
  installed_version = get_os_package_version(ctx, cfg.php_package)
  if installed_version == '' or installed_version.startswith(cfg.php_baseline_version):
    return
  if apt_sources_mention(ctx, cfg.php_repo_marker):
    return
  ctx.log(f"{cfg.php_package} {installed_version} does not come from Debian; re-adding repository {cfg.php_repo_name}")
  install_extra_repo(
      ctx,
      cfg.php_repo_uri,
      get_linux_distro_name(),
      'main',
      name=cfg.php_repo_name,
      key=cfg.php_repo_key,
      priority=cfg.php_repo_priority,
    )

def install_app_dependencies(ctx: AppContext, dependencies: str) -> str:
  """Installs the dependencies of an app, replacing any it declared before.

  Args:
      ctx:          The calling application context.
      dependencies: Packages in loose or formal syntax, e.g. "nginx php-fpm>=7.4".

  Raises:
      InvalidDependencySpecError: dependencies could not be parsed.
      DependencyResolutionError:  apt could not install them.

  Returns:
      str: The dependencies in Debian relationship syntax, as also recorded in
          the app's "apt_dependencies" setting.
  """
  normalized = normalize_dependencies(dependencies)
  _ensure_php_extra_repo(ctx, normalized)

  control = build_app_deps_control(ctx, normalized)
  if not install_from_equivs(ctx, control):
    raise DependencyResolutionError(f"Unable to install dependencies: {control.package} is not installed")

  AppSettings(ctx).set(APT_DEPENDENCIES_SETTING, normalized)
  return normalized

def get_installed_app_dependencies(ctx: AppContext) -> str:
  return get_os_package_depends(ctx, get_app_deps_package_name(ctx))

def add_app_dependencies(ctx: AppContext, packages: str, replace: bool=False) -> str:
  """Adds dependencies to those an app already has installed.

  With replace=True this is the same as install_app_dependencies.
  """
  current = '' if replace else get_installed_app_dependencies(ctx)
  return install_app_dependencies(ctx, merge_dependencies(current, packages))

def remove_app_dependencies(ctx: AppContext) -> None:
  """Purges the app's synthetic package, then any dependency nothing else needs"""
  package = get_app_deps_package_name(ctx)
  if not os_package_is_installed(ctx, package):
    return
  autopurge_os_packages(ctx, [package])
  if os_package_is_installed(ctx, package):
    raise YnhAptError(f"Unable to remove dependencies: {package} is still installed")
