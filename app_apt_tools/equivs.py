#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Building and installing dependency-only packages with equivs"""

from typing import Optional, Union, List, Dict

import os
import tempfile

from .context import AppContext
from .dependency_spec import parse_problematic_dependencies
from .dpkg_lock import wait_dpkg_free
from .exceptions import InvalidControlFileError, EquivsBuildError, DependencyResolutionError
from .os_packages import (apt_get, dpkg_install_deb, install_os_packages,
                          os_package_is_installed, update_os_package_list)
from .util import file_contents, print_lines, sudo_call_output

class ControlDescriptor:
  """The control file of a package whose only content is its Depends field"""
  package: str
  version: str
  depends: str
  description: str
  section: str = 'misc'
  priority: str = 'optional'
  architecture: str = 'all'

  def __init__(self, package: str, version: str, depends: str='', description: Optional[str]=None):
    self.package = package
    self.version = version
    self.depends = depends
    if description is None:
      description = f"Fake package for {package} dependencies\n This meta-package is only responsible of installing its dependencies."
    self.description = description

  def validate(self) -> None:
    if self.package.strip() == '' or self.version.strip() == '':
      raise InvalidControlFileError(
          f"Invalid control file: package name and version are required (Package: '{self.package}', Version: '{self.version}')")

  @property
  def deb_filename(self) -> str:
    # equivs-build names the archive without the epoch
    version = self.version.split(':', 1)[-1]
    return f"{self.package}_{version}_{self.architecture}.deb"

  def to_control_text(self) -> str:
    lines = [
        f"Section: {self.section}",
        f"Priority: {self.priority}",
        f"Package: {self.package}",
        f"Version: {self.version}",
        f"Depends: {self.depends}",
        f"Architecture: {self.architecture}",
        f"Description: {self.description}",
      ]
    return '\n'.join(lines) + '\n'

  @classmethod
  def from_control_text(cls, text: str) -> 'ControlDescriptor':
    fields: Dict[str, str] = {}
    last_key: Optional[str] = None
    for line in text.splitlines():
      if line.startswith((' ', '\t')) and not last_key is None:
        fields[last_key] += '\n' + line
      elif ':' in line:
        key, value = line.split(':', 1)
        last_key = key.strip()
        fields[last_key] = value.strip()
    result = cls(
        fields.get('Package', ''),
        fields.get('Version', ''),
        depends=fields.get('Depends', ''),
        description=fields.get('Description'),
      )
    for key, attr in (('Section', 'section'), ('Priority', 'priority'), ('Architecture', 'architecture')):
      if key in fields:
        setattr(result, attr, fields[key])
    return result

  @classmethod
  def from_file(cls, control_file: str) -> 'ControlDescriptor':
    return cls.from_control_text(file_contents(control_file))

def _build_deb(control: ControlDescriptor, build_dir: str) -> str:
  control_file = os.path.join(build_dir, 'control')
  with open(control_file, 'w', encoding='utf-8') as f:
    f.write(control.to_control_text())
  exit_code, output = sudo_call_output(
      ['equivs-build', './control'],
      cwd=build_dir,
      env_vars=dict(LC_ALL='C'),
      use_sudo=False,
    )
  deb_file = os.path.join(build_dir, control.deb_filename)
  if exit_code != 0:
    raise EquivsBuildError(f"equivs-build failed for {control.package} (exit code {exit_code}): {output.rstrip()}")
  if not os.path.exists(deb_file):
    raise EquivsBuildError(f"equivs-build did not produce {control.deb_filename}")
  return deb_file

def _filter_dry_run_output(output: str) -> List[str]:
  lines = output.splitlines()
  start = next((i for i, x in enumerate(lines) if 'Reading state info' in x), None)
  if start is None:
    return []
  return [ x for x in lines[start:] if not 'fix-broken' in x and not 'Reading state info' in x ]

def explain_dependency_problems(ctx: AppContext, problems: List[str]) -> str:
  """Simulates installing problem packages so apt explains why they cannot be installed"""
  if len(problems) == 0:
    return ''
  _, output = apt_get(
      ctx,
      [
          '--no-remove',
          '-o=Dpkg::Options::=--force-confdef',
          '-o=Dpkg::Options::=--force-confold',
          'install',
        ] + problems + ['--dry-run'],
      check=False,
      capture_output=True,
    )
  return '\n'.join(_filter_dry_run_output(output))

def install_from_equivs(ctx: AppContext, control: Union[str, ControlDescriptor]) -> bool:
  """Builds a dependency-only package and installs it along with its dependencies.

  The package itself is installed with dpkg ignoring its dependencies, then
  apt-get --fix-broken pulls in whatever it declares. If apt cannot do that,
  the problems reported by dpkg are re-run through a simulated install to
  show the reasons, and the error is fatal.

  Args:
      ctx:     The calling application context.
      control: A ControlDescriptor, or the path of a control file.

  Raises:
      InvalidControlFileError:   The control has no package name or version.
      EquivsBuildError:          equivs-build failed.
      DependencyResolutionError: apt could not install the dependencies.

  Returns:
      bool: True if the package is installed afterwards.
  """
  if not isinstance(control, ControlDescriptor):
    control = ControlDescriptor.from_file(control)
  control.validate()

  update_os_package_list(ctx)

  with tempfile.TemporaryDirectory(prefix=f"{control.package}-") as build_dir:
    wait_dpkg_free(ctx)
    deb_file = _build_deb(control, build_dir)
    _, dpkg_log = dpkg_install_deb(ctx, deb_file, force_depends=True)
    print_lines(dpkg_log, stderr=ctx.stderr)

    if install_os_packages(ctx, ['--fix-broken'], check=False) != 0:
      problems = parse_problematic_dependencies(dpkg_log, package_suffix=ctx.config.deps_package_suffix)
      diagnostics = explain_dependency_problems(ctx, problems)
      if diagnostics != '':
        print_lines(diagnostics, stderr=ctx.stderr)
      raise DependencyResolutionError("Unable to install dependencies", problems=problems, diagnostics=diagnostics)

  return os_package_is_installed(ctx, control.package)
