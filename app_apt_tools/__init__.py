# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Package app_apt_tools provides helpers for application installers to
install, pin and remove the Debian packages their applications depend on,
including temporary third-party apt repositories.
"""

from .version import __version__

from .internal_types import Jsonable, JsonableDict
from .exceptions import (
    YnhAptError,
    CalledProcessErrorWithStderrMessage,
    DpkgInterruptedError,
    DpkgLockTimeoutError,
    InvalidControlFileError,
    InvalidDependencySpecError,
    EquivsBuildError,
    DependencyResolutionError,
    RepoKeyError,
  )
from .config import AptToolsConfig
from .context import AppContext
from .dpkg_lock import (
    DpkgLockState, dpkg_lock_is_held, dpkg_was_interrupted,
    poll_dpkg_lock, wait_dpkg_free,
  )
from .os_packages import (
    apt_get, autopurge_os_packages, autoremove_os_packages, dpkg_install_deb,
    get_os_package_depends, get_os_package_status, get_os_package_version,
    install_os_packages, os_package_is_installed, remove_os_packages,
    update_os_package_list,
  )
from .dependency_spec import (
    PackageRelation, DependencyGroup, format_dependencies, merge_dependencies,
    normalize_dependencies, parse_dependencies, parse_problematic_dependencies,
  )
from .equivs import ControlDescriptor, install_from_equivs
from .extra_repo import (
    ExtraRepo, add_repo, extra_repo_files, fetch_repo_key, get_repo_pin_origin,
    install_extra_app_dependencies, install_extra_repo, pin_repo,
    remove_extra_repo,
  )
from .manifest import get_app_version
from .round_trip_config import RoundTripConfig
from .app_settings import AppSettings
from .app_dependencies import (
    add_app_dependencies, apt_sources_mention, build_app_deps_control,
    get_app_deps_package_name, get_installed_app_dependencies, install_app_dependencies,
    remove_app_dependencies,
  )
