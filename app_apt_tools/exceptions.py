#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Exceptions defined by this package"""

from typing import List, Optional

from subprocess import CalledProcessError

class YnhAptError(Exception):
  """Base class for all error exceptions defined by this package."""
  #pass

class CalledProcessErrorWithStderrMessage(CalledProcessError):
  def __str__(self):
    return super().__str__() + f": [{self.stderr}]"

class DpkgInterruptedError(YnhAptError):
  """dpkg was interrupted mid-transaction. Requires a manual 'dpkg --configure -a'."""

class DpkgLockTimeoutError(YnhAptError):
  """The dpkg lock was still held after the last polling attempt."""

class InvalidControlFileError(YnhAptError):
  """A control descriptor is missing its package name or version."""

class InvalidDependencySpecError(YnhAptError):
  pass

class EquivsBuildError(YnhAptError):
  pass

class RepoKeyError(YnhAptError):
  pass

class DependencyResolutionError(YnhAptError):
  """apt could not satisfy the dependencies of a synthetic package.

  Attributes:
      problems:    The package names dpkg reported as unsatisfied.
      diagnostics: The filtered output of a simulated install of those packages.
  """
  problems: List[str]
  diagnostics: str

  def __init__(self, msg: str, problems: Optional[List[str]]=None, diagnostics: str=''):
    super().__init__(msg)
    self.problems = [] if problems is None else problems
    self.diagnostics = diagnostics
