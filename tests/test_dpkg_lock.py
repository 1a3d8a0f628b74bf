import os
from pathlib import Path

import pytest

from app_apt_tools import (
    DpkgInterruptedError,
    DpkgLockState,
    DpkgLockTimeoutError,
    poll_dpkg_lock,
    wait_dpkg_free,
  )
from app_apt_tools import dpkg_lock

@pytest.fixture
def sleeps(monkeypatch):
  result = []
  monkeypatch.setattr(dpkg_lock.time, "sleep", result.append)
  return result

def test_free_lock_is_ready(ctx, fake_system, sleeps):
  assert poll_dpkg_lock(ctx) is DpkgLockState.READY
  assert len(fake_system.commands("lsof")) == 1
  assert sleeps == []

def test_missing_lock_file_is_ready_without_lsof(ctx, fake_system):
  os.remove(ctx.config.dpkg_lock_file)
  assert poll_dpkg_lock(ctx) is DpkgLockState.READY
  assert fake_system.commands("lsof") == []

def test_busy_lock_backs_off_quadratically(ctx, fake_system, sleeps):
  ctx.config.lock_sleep_unit = 1.0
  fake_system.lock_busy_checks = 3
  assert poll_dpkg_lock(ctx) is DpkgLockState.READY
  assert sleeps == [1.0, 4.0, 9.0]
  assert ctx.stderr.getvalue().count("apt is already in use...") == 3

def test_interrupted_dpkg(ctx, sleeps):
  Path(ctx.config.dpkg_updates_dir, "0001").touch()
  assert poll_dpkg_lock(ctx) is DpkgLockState.INTERRUPTED
  with pytest.raises(DpkgInterruptedError, match="dpkg --configure -a"):
    wait_dpkg_free(ctx)

def test_non_numeric_update_files_are_ignored(ctx, sleeps):
  Path(ctx.config.dpkg_updates_dir, "tmp.i").touch()
  assert poll_dpkg_lock(ctx) is DpkgLockState.READY

def test_timeout_proceeds_with_warning(ctx, fake_system, sleeps):
  ctx.config.lock_sleep_unit = 1.0
  fake_system.lock_busy_checks = 1000
  assert poll_dpkg_lock(ctx) is DpkgLockState.READY
  assert len(sleeps) == 17
  assert sum(sleeps) == sum(i * i for i in range(1, 18))
  assert "apt still used, but timeout reached !" in ctx.stderr.getvalue()

def test_timeout_can_be_fatal(ctx, fake_system, sleeps):
  ctx.config.fail_on_lock_timeout = True
  ctx.config.lock_max_attempts = 2
  fake_system.lock_busy_checks = 1000
  with pytest.raises(DpkgLockTimeoutError):
    poll_dpkg_lock(ctx)
  assert len(sleeps) == 2
