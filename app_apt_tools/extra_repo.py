#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Adding, pinning and removing third-party apt repositories.

An extra repository named NAME is made of three files that always come and
go together:

  <sources_list_dir>/NAME.list   the "deb URI SUITE COMPONENT" source line
  <preferences_dir>/NAME         a pin on the repository's origin host
  <trusted_gpg_dir>/NAME.gpg     its signing key, in binary keyring format
"""

from typing import Optional, List, Union, Tuple

import os

from .context import AppContext
from .exceptions import RepoKeyError, YnhAptError
from .os_packages import update_os_package_list
from .util import download_url_bytes, install_root_file, secure_remove, sudo_run

class ExtraRepo:
  uri: str
  suite: str
  component: str
  name: Optional[str]
  key: Optional[str]
  priority: Optional[int]

  def __init__(
        self,
        uri: str,
        suite: str,
        component: str,
        name: Optional[str]=None,
        key: Optional[str]=None,
        priority: Optional[int]=None,
      ):
    self.uri = uri
    self.suite = suite
    self.component = component
    self.name = name
    self.key = key
    self.priority = priority

  @classmethod
  def from_repo_line(
        cls,
        repo: str,
        name: Optional[str]=None,
        key: Optional[str]=None,
        priority: Optional[int]=None,
      ) -> 'ExtraRepo':
    """Parses "[deb] URI SUITE COMPONENT..." as found in a sources.list"""
    parts = repo.split()
    if len(parts) > 0 and parts[0] == 'deb':
      parts = parts[1:]
    if len(parts) < 3:
      raise YnhAptError(f"Repository must be given as 'deb URI SUITE COMPONENT', got '{repo}'")
    return cls(parts[0], parts[1], ' '.join(parts[2:]), name=name, key=key, priority=priority)

  @property
  def sources_line(self) -> str:
    return f"deb {self.uri} {self.suite} {self.component}"

  @property
  def pin_origin(self) -> str:
    return get_repo_pin_origin(self.uri)

def get_repo_pin_origin(uri: str) -> str:
  """Returns the host part of a repository URI, e.g. "packages.sury.org" for "https://packages.sury.org/php/" """
  host = uri.split('://', 1)[-1]
  return host.split('/', 1)[0]

def extra_repo_files(ctx: AppContext, name: str) -> Tuple[str, str, str, str]:
  """Returns the (sources list, preferences, binary key, armored key) paths for a repository name"""
  cfg = ctx.config
  return (
      os.path.join(cfg.sources_list_dir, f"{name}.list"),
      os.path.join(cfg.preferences_dir, name),
      os.path.join(cfg.trusted_gpg_dir, f"{name}.gpg"),
      os.path.join(cfg.trusted_gpg_dir, f"{name}.asc"),
    )

def add_repo(
      ctx: AppContext,
      uri: str,
      suite: str,
      component: str,
      name: Optional[str]=None,
      append: bool=False,
    ) -> None:
  if name is None:
    name = ctx.app
  list_file = extra_repo_files(ctx, name)[0]
  install_root_file(
      list_file,
      f"deb {uri} {suite} {component}\n",
      append=append,
      use_sudo=ctx.use_sudo,
      sudo_reason=f"Adding apt repository {name}",
    )

def pin_repo(
      ctx: AppContext,
      pin: str,
      package: str='*',
      priority: Optional[int]=None,
      name: Optional[str]=None,
      append: bool=False,
    ) -> None:
  """Writes an apt preferences stanza for a repository.

  Args:
      pin (str):      The Pin: expression, e.g. 'origin "packages.sury.org"'.
      package (str):  Packages the pin applies to. Default '*'.
      priority (int): Pin-Priority. Defaults to config.default_pin_priority (50),
                      low enough that the repository is never used for upgrades.
  """
  if name is None:
    name = ctx.app
  if priority is None:
    priority = ctx.config.default_pin_priority
  pref_file = extra_repo_files(ctx, name)[1]
  install_root_file(
      pref_file,
      f"Package: {package}\nPin: {pin}\nPin-Priority: {priority}\n\n",
      append=append,
      use_sudo=ctx.use_sudo,
      sudo_reason=f"Pinning apt repository {name}",
    )

def dearmor_gpg_key(key_asc: bytes) -> bytes:
  """Converts an ASCII-armored GPG key to the binary format apt expects in trusted.gpg.d"""
  result = sudo_run(['gpg', '--dearmor'], input=key_asc, capture_output=True, use_sudo=False)
  stderr_s = '' if result.stderr is None else result.stderr.decode('utf-8', errors='replace')
  if result.returncode != 0 or 'no valid OpenPGP data found' in stderr_s or len(result.stdout) == 0:
    raise RepoKeyError(f"Invalid GPG key material: {stderr_s.strip()}")
  return result.stdout

def fetch_repo_key(ctx: AppContext, key_url: str) -> bytes:
  """Downloads a repository signing key and returns it in binary keyring format"""
  try:
    data = download_url_bytes(key_url, timeout=ctx.config.key_fetch_timeout)
  except YnhAptError as ex:
    raise RepoKeyError(f"Unable to download repository key {key_url}: {ex}") from ex
  if len(data) == 0:
    raise RepoKeyError(f"Repository key {key_url} is empty")
  if data.lstrip().startswith(b'-----BEGIN PGP'):
    data = dearmor_gpg_key(data)
  return data

def _remove_files(ctx: AppContext, files: Union[List[str], Tuple[str, ...]]) -> None:
  for filename in files:
    secure_remove(filename, use_sudo=ctx.use_sudo)

def install_extra_repo(
      ctx: AppContext,
      uri: str,
      suite: str,
      component: str,
      name: Optional[str]=None,
      key: Optional[str]=None,
      priority: Optional[int]=None,
      append: bool=False,
    ) -> None:
  """Adds a repository, pins it, installs its key and refreshes the package index.

  Args:
      ctx:       The calling application context.
      uri:       Repository base URI.
      suite:     Distribution suite, e.g. "bookworm".
      component: Component(s), e.g. "main".
      name:      Name for the repository files. Defaults to the app id.
      key:       URL of the signing key, if any.
      priority:  Pin priority. Defaults to config.default_pin_priority.
      append:    Add to existing files for this name instead of replacing them.

  Raises:
      RepoKeyError: The key could not be fetched or converted. Nothing is
          written in that case.
      CalledProcessErrorWithStderrMessage: apt-get update failed, e.g. the
          repository has no Release file for suite. Unless appending, the
          repository files are removed again.
  """
  if name is None:
    name = ctx.app
  list_file, pref_file, gpg_file, asc_file = extra_repo_files(ctx, name)

  key_data: Optional[bytes] = None
  if not key is None:
    key_data = fetch_repo_key(ctx, key)

  try:
    add_repo(ctx, uri, suite, component, name=name, append=append)
    pin_repo(ctx, f'origin "{get_repo_pin_origin(uri)}"', priority=priority, name=name, append=append)
    if key_data is None:
      if not append:
        _remove_files(ctx, [gpg_file, asc_file])
    else:
      install_root_file(gpg_file, key_data, append=append, use_sudo=ctx.use_sudo,
                        sudo_reason=f"Installing signing key for apt repository {name}")
    # a failed refresh rolls the repository back too
    update_os_package_list(ctx)
  except BaseException:
    if not append:
      _remove_files(ctx, [list_file, pref_file, gpg_file, asc_file])
    raise

def remove_extra_repo(ctx: AppContext, name: Optional[str]=None) -> None:
  if name is None:
    name = ctx.app
  _remove_files(ctx, extra_repo_files(ctx, name))
  update_os_package_list(ctx)

def install_extra_app_dependencies(
      ctx: AppContext,
      repo: Union[str, ExtraRepo],
      packages: str,
      key: Optional[str]=None,
      name: Optional[str]=None,
    ) -> str:
  """Installs app dependencies that live in a third-party repository.

  The repository is only registered for the duration of the install and is
  always removed again afterwards, whether or not the install succeeded.

  Returns:
      str: The normalized dependency list of the app.
  """
  # imported here; app_dependencies builds on this module
  from .app_dependencies import add_app_dependencies

  if not isinstance(repo, ExtraRepo):
    repo = ExtraRepo.from_repo_line(repo)
  if name is None:
    name = repo.name if not repo.name is None else ctx.app
  if key is None:
    key = repo.key

  try:
    install_extra_repo(
        ctx,
        repo.uri,
        repo.suite,
        repo.component,
        name=name,
        key=key,
        priority=ctx.config.extra_deps_pin_priority,
      )
    result = add_app_dependencies(ctx, packages)
  finally:
    remove_extra_repo(ctx, name=name)
  return result
