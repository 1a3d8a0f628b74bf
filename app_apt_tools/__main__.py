#!/usr/bin/env python3
#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""app_apt_tools CLI"""

from typing import Optional, Sequence, TextIO

import os
import sys
import json
import argparse
import argcomplete # type: ignore[import]
import colorama # type: ignore[import]
from colorama import Fore, Style

# This module runs as -m -- do NOT use relative imports
from app_apt_tools import (
    __version__ as pkg_version,
    Jsonable,
    AptToolsConfig,
    AppContext,
    ExtraRepo,
    add_app_dependencies,
    add_repo,
    autopurge_os_packages,
    autoremove_os_packages,
    get_os_package_version,
    install_app_dependencies,
    install_extra_app_dependencies,
    install_extra_repo,
    install_from_equivs,
    install_os_packages,
    normalize_dependencies,
    os_package_is_installed,
    pin_repo,
    remove_app_dependencies,
    remove_extra_repo,
    remove_os_packages,
    update_os_package_list,
    wait_dpkg_free,
  )

def is_colorizable(stream: TextIO) -> bool:
  is_a_tty = hasattr(stream, 'isatty') and stream.isatty()
  return is_a_tty

class CmdExitError(RuntimeError):
  exit_code: int

  def __init__(self, exit_code: int, msg: Optional[str]=None):
    if msg is None:
      msg = f"Command exited with return code {exit_code}"
    super().__init__(msg)
    self.exit_code = exit_code

class CommandHandler:
  _argv: Optional[Sequence[str]]
  _parser: argparse.ArgumentParser
  _args: argparse.Namespace

  _ctx: Optional[AppContext] = None
  _raw: bool = False
  _compact: bool = False
  _colorize_stderr: bool = False

  def __init__(self, argv: Optional[Sequence[str]]=None):
    self._argv = argv

  def ecolor(self, codes: str) -> str:
    return codes if self._colorize_stderr else ""

  def get_context(self) -> AppContext:
    if self._ctx is None:
      args = self._args
      config_file: Optional[str] = args.config
      if config_file is None:
        config_file = os.environ.get('APP_APT_TOOLS_CONFIG')
      config = AptToolsConfig() if config_file is None else AptToolsConfig.from_file(config_file)
      app: Optional[str] = args.app
      if app is None:
        raise CmdExitError(1, "An application id is required; use --app")
      self._ctx = AppContext(app, app_dir=args.app_dir, config=config)
    return self._ctx

  def pretty_print(self, value: Jsonable) -> None:
    if self._raw and isinstance(value, str):
      sys.stdout.write(value)
      if not value.endswith('\n'):
        sys.stdout.write('\n')
      return
    if self._compact:
      json.dump(value, sys.stdout, separators=(',', ':'), sort_keys=True)
    else:
      json.dump(value, sys.stdout, indent=2, sort_keys=True)
    sys.stdout.write('\n')

  def cmd_bare(self) -> int:
    print("A command is required", file=sys.stderr)
    return 1

  def cmd_version(self) -> int:
    self.pretty_print(pkg_version)
    return 0

  def cmd_wait_dpkg_free(self) -> int:
    wait_dpkg_free(self.get_context())
    return 0

  def cmd_package_is_installed(self) -> int:
    installed = os_package_is_installed(self.get_context(), self._args.package)
    self.pretty_print(installed)
    return 0 if installed else 1

  def cmd_package_version(self) -> int:
    self.pretty_print(get_os_package_version(self.get_context(), self._args.package))
    return 0

  def cmd_package_update(self) -> int:
    return update_os_package_list(self.get_context(), check=False)

  def cmd_package_install(self) -> int:
    return install_os_packages(self.get_context(), self._args.package, check=False)

  def cmd_package_remove(self) -> int:
    return remove_os_packages(self.get_context(), self._args.package, check=False)

  def cmd_package_autoremove(self) -> int:
    return autoremove_os_packages(self.get_context(), self._args.package, check=False)

  def cmd_package_autopurge(self) -> int:
    return autopurge_os_packages(self.get_context(), self._args.package, check=False)

  def cmd_normalize_dependencies(self) -> int:
    self.pretty_print(normalize_dependencies(self._args.package))
    return 0

  def cmd_install_from_equivs(self) -> int:
    installed = install_from_equivs(self.get_context(), self._args.controlfile)
    return 0 if installed else 1

  def cmd_install_app_dependencies(self) -> int:
    self.pretty_print(install_app_dependencies(self.get_context(), self._args.package))
    return 0

  def cmd_add_app_dependencies(self) -> int:
    self.pretty_print(add_app_dependencies(self.get_context(), self._args.package, replace=self._args.replace))
    return 0

  def cmd_remove_app_dependencies(self) -> int:
    remove_app_dependencies(self.get_context())
    return 0

  def cmd_add_repo(self) -> int:
    args = self._args
    add_repo(self.get_context(), args.uri, args.suite, args.component, name=args.name, append=args.append)
    return 0

  def cmd_pin_repo(self) -> int:
    args = self._args
    pin_repo(self.get_context(), args.pin, package=args.package, priority=args.priority,
             name=args.name, append=args.append)
    return 0

  def cmd_install_extra_repo(self) -> int:
    args = self._args
    repo = ExtraRepo.from_repo_line(args.repo)
    install_extra_repo(
        self.get_context(),
        repo.uri,
        repo.suite,
        repo.component,
        name=args.name,
        key=args.key,
        priority=args.priority,
        append=args.append,
      )
    return 0

  def cmd_remove_extra_repo(self) -> int:
    remove_extra_repo(self.get_context(), name=self._args.name)
    return 0

  def cmd_install_extra_app_dependencies(self) -> int:
    args = self._args
    result = install_extra_app_dependencies(
        self.get_context(),
        args.repo,
        args.package,
        key=args.key,
        name=args.name,
      )
    self.pretty_print(result)
    return 0

  def run(self) -> int:
    """Run the app_apt_tools command-line tool with provided arguments

    Returns:
        int: The exit code that would be returned if this were run as a standalone command.
    """
    parser = argparse.ArgumentParser(description="Manage the Debian package dependencies of applications.")

    # ======================= Main command

    self._parser = parser
    parser.add_argument('--traceback', "--tb", action='store_true', default=False,
                        help='Display detailed exception information')
    parser.add_argument('-M', '--monochrome', action='store_true', default=False,
                        help='Output to stderr in monochrome. Default is to colorize if stream is a compatible terminal')
    parser.add_argument('-c', '--compact', action='store_true', default=False,
                        help='Compact instead of pretty-printed output')
    parser.add_argument('-r', '--raw', action='store_true', default=False,
                        help='Output raw strings directly, not json-encoded.')
    parser.add_argument('--config', default=None,
                        help="YAML configuration file. Default is $APP_APT_TOOLS_CONFIG, or built-in defaults")
    parser.add_argument('--app', default=None,
                        help="The id of the application whose dependencies are managed")
    parser.add_argument('--app-dir', default='.',
                        help="Directory containing the application manifest. Default is the current directory")
    parser.set_defaults(func=self.cmd_bare)

    subparsers = parser.add_subparsers(
                        title='Commands',
                        description='Valid commands',
                        help='Additional help available with "app_apt_tools <command-name> -h"')

    # ======================= version

    parser_version = subparsers.add_parser('version',
                            description='''Display version information. JSON-quoted string. If a raw string is desired, user -r.''')
    parser_version.set_defaults(func=self.cmd_version)

    # ======================= dpkg lock

    parser_wait = subparsers.add_parser('wait-dpkg-free',
                            description='''Wait until no other process uses dpkg. Fails if dpkg was interrupted.''')
    parser_wait.set_defaults(func=self.cmd_wait_dpkg_free)

    # ======================= single packages

    for cmd_name, func, description in (
          ('package-is-installed', self.cmd_package_is_installed, 'Check whether a package is installed. Exit code 1 if not.'),
          ('package-version', self.cmd_package_version, 'Display the installed version of a package, or "" if not installed.'),
        ):
      sub = subparsers.add_parser(cmd_name, description=description)
      sub.add_argument('--package', required=True, help='The package name')
      sub.set_defaults(func=func)

    parser_update = subparsers.add_parser('package-update', description='Refresh the apt package index.')
    parser_update.set_defaults(func=self.cmd_package_update)

    for cmd_name, func, description, required in (
          ('package-install', self.cmd_package_install, 'Install packages without removing others.', True),
          ('package-remove', self.cmd_package_remove, 'Remove packages that are installed.', True),
          ('package-autoremove', self.cmd_package_autoremove, 'Remove packages and dependencies no longer needed.', False),
          ('package-autopurge', self.cmd_package_autopurge, 'Purge packages and dependencies no longer needed.', False),
        ):
      sub = subparsers.add_parser(cmd_name, description=description)
      sub.add_argument('--package', required=required, default=None,
                       help='Space-separated package names')
      sub.set_defaults(func=func)

    # ======================= app dependencies

    parser_normalize = subparsers.add_parser('normalize-dependencies',
                            description='''Display a dependency list in Debian relationship syntax.''')
    parser_normalize.add_argument('--package', required=True,
                        help='Dependencies, e.g. "dep1 dep2|dep3 dep4>=2.0"')
    parser_normalize.set_defaults(func=self.cmd_normalize_dependencies)

    parser_equivs = subparsers.add_parser('install-from-equivs',
                            description='''Build a package from an equivs control file and install it with its dependencies.''')
    parser_equivs.add_argument('--controlfile', required=True, help='Path of the control file')
    parser_equivs.set_defaults(func=self.cmd_install_from_equivs)

    parser_install_deps = subparsers.add_parser('install-app-dependencies',
                            description='''Install the dependencies of the app, replacing those previously declared.''')
    parser_install_deps.add_argument('--package', required=True,
                        help='Dependencies, e.g. "dep1 dep2|dep3 dep4>=2.0"')
    parser_install_deps.set_defaults(func=self.cmd_install_app_dependencies)

    parser_add_deps = subparsers.add_parser('add-app-dependencies',
                            description='''Add dependencies to those the app already has.''')
    parser_add_deps.add_argument('--package', required=True,
                        help='Dependencies, e.g. "dep1 dep2|dep3 dep4>=2.0"')
    parser_add_deps.add_argument('--replace', action='store_true', default=False,
                        help='Replace the current dependencies instead of adding to them')
    parser_add_deps.set_defaults(func=self.cmd_add_app_dependencies)

    parser_remove_deps = subparsers.add_parser('remove-app-dependencies',
                            description='''Purge the dependencies of the app that nothing else needs.''')
    parser_remove_deps.set_defaults(func=self.cmd_remove_app_dependencies)

    # ======================= repositories

    parser_add_repo = subparsers.add_parser('add-repo', description='''Add an apt source list entry.''')
    parser_add_repo.add_argument('--uri', required=True, help='Repository URI')
    parser_add_repo.add_argument('--suite', required=True, help='Suite, e.g. bookworm')
    parser_add_repo.add_argument('--component', required=True, help='Component(s), e.g. main')
    parser_add_repo.add_argument('--name', default=None, help='Name of the list file. Default is the app id')
    parser_add_repo.add_argument('--append', action='store_true', default=False,
                        help='Append to the list file instead of overwriting it')
    parser_add_repo.set_defaults(func=self.cmd_add_repo)

    parser_pin_repo = subparsers.add_parser('pin-repo', description='''Add an apt preferences entry.''')
    parser_pin_repo.add_argument('--pin', required=True, help='Pin expression, e.g. \'origin "packages.sury.org"\'')
    parser_pin_repo.add_argument('--package', default='*', help='Packages to pin. Default is "*"')
    parser_pin_repo.add_argument('--priority', type=int, default=None, help='Pin priority. Default is 50')
    parser_pin_repo.add_argument('--name', default=None, help='Name of the preferences file. Default is the app id')
    parser_pin_repo.add_argument('--append', action='store_true', default=False,
                        help='Append to the preferences file instead of overwriting it')
    parser_pin_repo.set_defaults(func=self.cmd_pin_repo)

    parser_install_repo = subparsers.add_parser('install-extra-repo',
                            description='''Add, pin and trust a third-party repository, then refresh the package index.''')
    parser_install_repo.add_argument('--repo', required=True, help='"deb URI SUITE COMPONENT"')
    parser_install_repo.add_argument('--key', default=None, help='URL of the repository signing key')
    parser_install_repo.add_argument('--priority', type=int, default=None, help='Pin priority. Default is 50')
    parser_install_repo.add_argument('--name', default=None, help='Name of the repository files. Default is the app id')
    parser_install_repo.add_argument('--append', action='store_true', default=False,
                        help='Append to existing repository files instead of overwriting them')
    parser_install_repo.set_defaults(func=self.cmd_install_extra_repo)

    parser_remove_repo = subparsers.add_parser('remove-extra-repo',
                            description='''Remove the source, pin and key of a repository, then refresh the package index.''')
    parser_remove_repo.add_argument('--name', default=None, help='Name of the repository files. Default is the app id')
    parser_remove_repo.set_defaults(func=self.cmd_remove_extra_repo)

    parser_extra_deps = subparsers.add_parser('install-extra-app-dependencies',
                            description='''Install app dependencies from a repository that is registered only during the install.''')
    parser_extra_deps.add_argument('--repo', required=True, help='"deb URI SUITE COMPONENT"')
    parser_extra_deps.add_argument('--package', required=True, help='Dependencies to install from the repository')
    parser_extra_deps.add_argument('--key', default=None, help='URL of the repository signing key')
    parser_extra_deps.add_argument('--name', default=None, help='Name of the repository files. Default is the app id')
    parser_extra_deps.set_defaults(func=self.cmd_install_extra_app_dependencies)

    # =========================================================

    argcomplete.autocomplete(parser)
    args = parser.parse_args(self._argv)
    traceback: bool = args.traceback
    try:
      self._args = args
      self._raw = args.raw
      self._compact = args.compact
      monochrome: bool = args.monochrome
      if not monochrome:
        self._colorize_stderr = is_colorizable(sys.stderr)
        if self._colorize_stderr:
          colorama.init(wrap=False)
          sys.stderr = colorama.AnsiToWin32(sys.stderr)
      rc = args.func()
    except Exception as ex:
      if isinstance(ex, CmdExitError):
        rc = ex.exit_code
      else:
        rc = 1
      if rc != 0:
        if traceback:
          raise

        print(f"{self.ecolor(Fore.RED)}app_apt_tools: error: {ex}{self.ecolor(Style.RESET_ALL)}", file=sys.stderr)
    return rc

def run(argv: Optional[Sequence[str]]=None) -> int:
  try:
    rc = CommandHandler(argv).run()
  except CmdExitError as ex:
    rc = ex.exit_code
  return rc

# allow running with "python3 -m", or as a standalone script
if __name__ == "__main__":
  sys.exit(run())
