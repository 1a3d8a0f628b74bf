#!/usr/bin/env python3
#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Querying and installing OS packages with dpkg-query/apt-get"""

import subprocess
from typing import List, Optional, Tuple, Union, overload, Literal

from .context import AppContext
from .dpkg_lock import wait_dpkg_free
from .exceptions import CalledProcessErrorWithStderrMessage
from .internal_types import EnvVars
from .util import sudo_call, sudo_call_output, sudo_check_output_stderr_exception

def _apt_env() -> EnvVars:
  return dict(LC_ALL='C', DEBIAN_FRONTEND='noninteractive')

def _dpkg_query_field(package_name: str, field: str) -> str:
  try:
    stdout_bytes = sudo_check_output_stderr_exception(
        ['dpkg-query', '--show', f'--showformat=${{{field}}}', package_name],
        use_sudo=False
      )
  except subprocess.CalledProcessError:
    return ''
  return stdout_bytes.decode('utf-8').rstrip()

def get_os_package_status(ctx: AppContext, package_name: str) -> str:  # pylint: disable=unused-argument
  return _dpkg_query_field(package_name, 'Status')

def os_package_is_installed(ctx: AppContext, package_name: str) -> bool:
  wait_dpkg_free(ctx)
  return 'ok installed' in get_os_package_status(ctx, package_name)

def get_os_package_version(ctx: AppContext, package_name: str) -> str:
  """Returns the installed version of a package, or '' if it is not installed"""
  if not os_package_is_installed(ctx, package_name):
    return ''
  return _dpkg_query_field(package_name, 'Version')

def get_os_package_depends(ctx: AppContext, package_name: str) -> str:
  """Returns the Depends field of an installed package, or '' if it is not installed"""
  if not os_package_is_installed(ctx, package_name):
    return ''
  return _dpkg_query_field(package_name, 'Depends')

@overload
def apt_get(ctx: AppContext, args: List[str], check: bool=..., capture_output: Literal[False]=...) -> int:
  ...

@overload
def apt_get(ctx: AppContext, args: List[str], check: bool=..., *, capture_output: Literal[True]) -> Tuple[int, str]:
  ...

def apt_get(
      ctx: AppContext,
      args: List[str],
      check: bool=True,
      capture_output: bool=False,
    ) -> Union[int, Tuple[int, str]]:
  """Runs apt-get non-interactively once the dpkg lock is free.

  Args:
      ctx:            The calling application context.
      args:           apt-get subcommand, options and package names.
      check:          Raise on a non-zero exit code.
      capture_output: Return the combined output instead of letting it
                      go to the terminal.

  Raises:
      CalledProcessErrorWithStderrMessage: apt-get failed and check is True.

  Returns:
      The exit code, or (exit code, output) if capture_output is True.
  """
  wait_dpkg_free(ctx)
  cmd = [
      'apt-get', '--assume-yes', '--quiet',
      f'-o=Acquire::Retries={ctx.config.apt_retries}',
      '-o=Dpkg::Use-Pty=0',
    ] + args
  sudo_reason = f"Running apt-get {' '.join(args)}"
  output: Optional[str] = None
  if capture_output:
    exit_code, output = sudo_call_output(cmd, env_vars=_apt_env(), use_sudo=ctx.use_sudo, sudo_reason=sudo_reason)
  else:
    exit_code = sudo_call(cmd, env_vars=_apt_env(), use_sudo=ctx.use_sudo, sudo_reason=sudo_reason)
  if check and exit_code != 0:
    raise CalledProcessErrorWithStderrMessage(exit_code, cmd, stderr=output)
  if capture_output:
    assert output is not None
    return exit_code, output
  return exit_code

def _as_list(package_names: Union[str, List[str]]) -> List[str]:
  if not isinstance(package_names, list):
    package_names = package_names.split()
  return package_names

def update_os_package_list(ctx: AppContext, check: bool=True) -> int:
  return apt_get(ctx, ['update'], check=check)

def install_os_packages(ctx: AppContext, package_names: Union[str, List[str]], check: bool=True) -> int:
  """Installs packages, never removing others and keeping locally modified config files"""
  return apt_get(
      ctx,
      [
          '--no-remove',
          '-o=Dpkg::Options::=--force-confdef',
          '-o=Dpkg::Options::=--force-confold',
          'install',
        ] + _as_list(package_names),
      check=check,
    )

def remove_os_packages(ctx: AppContext, package_names: Union[str, List[str]], check: bool=True) -> int:
  filtered = [ x for x in _as_list(package_names) if os_package_is_installed(ctx, x) ]
  if len(filtered) == 0:
    return 0
  return apt_get(ctx, ['remove'] + filtered, check=check)

def autoremove_os_packages(ctx: AppContext, package_names: Optional[Union[str, List[str]]]=None, check: bool=True) -> int:
  extra = [] if package_names is None else _as_list(package_names)
  return apt_get(ctx, ['autoremove'] + extra, check=check)

def autopurge_os_packages(ctx: AppContext, package_names: Optional[Union[str, List[str]]]=None, check: bool=True) -> int:
  extra = [] if package_names is None else _as_list(package_names)
  return apt_get(ctx, ['autoremove', '--purge'] + extra, check=check)

def dpkg_install_deb(ctx: AppContext, deb_file: str, force_depends: bool=True) -> Tuple[int, str]:
  """Installs a local .deb with dpkg; returns dpkg's exit code and combined output"""
  wait_dpkg_free(ctx)
  cmd = [ 'dpkg' ]
  if force_depends:
    cmd.append('--force-depends')
  cmd.extend(['--install', deb_file])
  return sudo_call_output(cmd, env_vars=dict(LC_ALL='C'), use_sudo=ctx.use_sudo,
                          sudo_reason=f"Installing {deb_file}")
