#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Waiting for the dpkg database lock"""

from enum import Enum

import os
import re
import subprocess
import time

from .context import AppContext
from .exceptions import DpkgInterruptedError, DpkgLockTimeoutError
from .util import sudo_call

_NUMERIC_RE = re.compile(r'^[0-9]+$')

class DpkgLockState(Enum):
  READY = 'ready'
  INTERRUPTED = 'interrupted'

def dpkg_lock_is_held(ctx: AppContext) -> bool:
  lock_file = ctx.config.dpkg_lock_file
  if not os.path.exists(lock_file):
    return False
  # lsof exits 0 only if some process has the file open
  exit_code = sudo_call(
      ['lsof', lock_file],
      stdout=subprocess.DEVNULL,
      stderr=subprocess.DEVNULL,
      use_sudo=ctx.use_sudo,
      sudo_reason=f"Checking whether {lock_file} is in use",
    )
  return exit_code == 0

def dpkg_was_interrupted(ctx: AppContext) -> bool:
  """Returns True if dpkg left a pending transaction in its updates directory.

  dpkg journals in-progress work as numerically named files; if any remain
  while nobody holds the lock, a previous run died midway.
  See apt-pkg/deb/debsystem.cc in the apt sources.
  """
  updates_dir = ctx.config.dpkg_updates_dir
  if not os.path.isdir(updates_dir):
    return False
  return any(_NUMERIC_RE.match(x) for x in os.listdir(updates_dir))

def poll_dpkg_lock(ctx: AppContext) -> DpkgLockState:
  """Waits until no other process holds the dpkg lock.

  Makes up to config.lock_max_attempts checks, sleeping attempt**2 units
  after each busy check (about 30 minutes in total with the defaults).

  Returns:
      DpkgLockState: INTERRUPTED if the lock is free but dpkg was interrupted,
          otherwise READY. READY is also returned when every attempt found
          the lock busy, unless config.fail_on_lock_timeout is set.

  Raises:
      DpkgLockTimeoutError: The lock stayed busy and fail_on_lock_timeout is set.
  """
  cfg = ctx.config
  for attempt in range(1, cfg.lock_max_attempts + 1):
    if dpkg_lock_is_held(ctx):
      ctx.log("apt is already in use...")
      time.sleep(attempt * attempt * cfg.lock_sleep_unit)
    else:
      if dpkg_was_interrupted(ctx):
        return DpkgLockState.INTERRUPTED
      return DpkgLockState.READY
  if cfg.fail_on_lock_timeout:
    raise DpkgLockTimeoutError(f"{cfg.dpkg_lock_file} is still in use after {cfg.lock_max_attempts} attempts")
  ctx.log("apt still used, but timeout reached !")
  return DpkgLockState.READY

def wait_dpkg_free(ctx: AppContext) -> None:
  if poll_dpkg_lock(ctx) is DpkgLockState.INTERRUPTED:
    raise DpkgInterruptedError(
        "dpkg was interrupted, you must manually run 'sudo dpkg --configure -a' to correct the problem.")
