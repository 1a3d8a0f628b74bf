"""Shared test fixtures.

FakeSystem stands in for every external command this package runs
(dpkg-query, apt-get, dpkg, equivs-build, lsof, gpg, lsb_release) and keeps
an in-memory package database, so tests never touch the host.
"""

from __future__ import annotations

import io
import json
import os
import subprocess
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional

import pytest

from app_apt_tools import AppContext, AptToolsConfig, YnhAptError
from app_apt_tools import extra_repo, util


class FakePackage:
  def __init__(self, name: str, version: str, depends: str = "", status: str = "install ok installed"):
    self.name = name
    self.version = version
    self.depends = depends
    self.status = status


class Call(NamedTuple):
  args: List[str]
  env_vars: Optional[Dict[str, str]]
  cwd: Optional[str]


def _control_fields(text: str) -> Dict[str, str]:
  fields: Dict[str, str] = {}
  for line in text.splitlines():
    if ":" in line and not line.startswith(" "):
      key, value = line.split(":", 1)
      fields[key.strip()] = value.strip()
  return fields


def _groups(depends: str) -> List[List[str]]:
  result = []
  for group in depends.split(","):
    if group.strip() == "":
      continue
    result.append([alt.split("(")[0].strip() for alt in group.split("|")])
  return result


class FakeSystem:
  def __init__(self) -> None:
    self.calls: List[Call] = []
    self.installed: Dict[str, FakePackage] = {}
    self.available: Dict[str, str] = {}
    self.lock_busy_checks = 0
    self.equivs_fails = False
    self.keys: Dict[str, bytes] = {}
    self.downloads: List[str] = []
    # apt-get update fails while this directory holds any source list
    self.unusable_sources_dir: Optional[str] = None

  # ---- helpers for tests

  def commands(self, name: str) -> List[List[str]]:
    return [c.args for c in self.calls if c.args[0] == name]

  def apt_subcommands(self) -> List[str]:
    return [[a for a in args[1:] if not a.startswith("-")][0] for args in self.commands("apt-get")]

  def install(self, name: str, version: str = "1.0", depends: str = "") -> None:
    self.installed[name] = FakePackage(name, version, depends)

  def is_installed(self, name: str) -> bool:
    pkg = self.installed.get(name)
    return pkg is not None and pkg.status.endswith("ok installed")

  def download_url_bytes(self, url: str, timeout: Optional[float] = None, pool_manager=None) -> bytes:
    self.downloads.append(url)
    if url not in self.keys:
      raise YnhAptError(f"HTTP GET of {url} failed with status 404")
    return self.keys[url]

  # ---- the sudo_run replacement

  def sudo_run(self, args, *, input=None, cwd=None, env_vars=None, stdout=None, stderr=None,
      capture_output=False, merge_stderr=False, use_sudo=True, sudo_reason=None):
    args = list(args)
    self.calls.append(Call(args, env_vars, cwd))
    handler = getattr(self, "_cmd_" + args[0].replace("-", "_"))
    rc, out, err = handler(args[1:], input=input, cwd=cwd)
    if capture_output:
      if merge_stderr:
        return subprocess.CompletedProcess(args, rc, stdout=out + err, stderr=None)
      return subprocess.CompletedProcess(args, rc, stdout=out, stderr=err)
    return subprocess.CompletedProcess(args, rc)

  def _cmd_lsof(self, args, **kwargs):
    if self.lock_busy_checks > 0:
      self.lock_busy_checks -= 1
      return 0, b"apt-get 1234 root 4uW REG /var/lib/dpkg/lock\n", b""
    return 1, b"", b""

  def _cmd_lsb_release(self, args, **kwargs):
    return 0, b"bookworm\n", b""

  def _cmd_dpkg_query(self, args, **kwargs):
    field = args[1].split("${", 1)[1].rstrip("}")
    name = args[2]
    pkg = self.installed.get(name)
    if pkg is None:
      return 1, b"", f"dpkg-query: no packages found matching {name}\n".encode()
    value = {"Status": pkg.status, "Version": pkg.version, "Depends": pkg.depends}[field]
    return 0, value.encode(), b""

  def _cmd_gpg(self, args, input=None, **kwargs):
    assert args == ["--dearmor"]
    if input is None or not input.startswith(b"-----BEGIN PGP"):
      return 2, b"", b"gpg: no valid OpenPGP data found.\n"
    return 0, b"\x99BINARY" + input[-8:], b""

  def _cmd_equivs_build(self, args, cwd=None, **kwargs):
    assert args == ["./control"]
    if self.equivs_fails:
      return 2, b"dpkg-buildpackage: error: debian/rules binary subprocess returned exit status 2\n", b""
    text = Path(cwd, "control").read_text(encoding="utf-8")
    fields = _control_fields(text)
    version = fields["Version"].split(":", 1)[-1]
    Path(cwd, f"{fields['Package']}_{version}_all.deb").write_text(text, encoding="utf-8")
    return 0, b"The package has been created.\n", b""

  def _missing(self, depends: str) -> List[List[str]]:
    return [g for g in _groups(depends) if not any(self.is_installed(x) for x in g)]

  def _cmd_dpkg(self, args, **kwargs):
    assert "--install" in args
    deb = args[-1]
    fields = _control_fields(Path(deb).read_text(encoding="utf-8"))
    name = fields["Package"]
    depends = fields.get("Depends", "")
    missing = self._missing(depends)
    status = "install ok installed" if len(missing) == 0 else "install ok unpacked"
    self.installed[name] = FakePackage(name, fields["Version"], depends, status)
    out = f"Selecting previously unselected package {name}.\n"
    if missing:
      out += f"dpkg: dependency problems prevent configuration of {name}:\n"
      for group in missing:
        out += f" {name} depends on {' | '.join(group)}; however:\n  Package {group[0]} is not installed.\n"
      return 1, out.encode(), b""
    return 0, out.encode(), b""

  def _fix_broken(self):
    for pkg in list(self.installed.values()):
      if pkg.status.endswith("ok installed"):
        continue
      missing = self._missing(pkg.depends)
      for group in missing:
        candidates = [x for x in group if x in self.available]
        if not candidates:
          return 100, b"E: Unmet dependencies. Try 'apt --fix-broken install' with no packages.\n", b""
      for group in missing:
        candidate = [x for x in group if x in self.available][0]
        self.install(candidate, self.available[candidate])
      pkg.status = "install ok installed"
    return 0, b"", b""

  def _cmd_apt_get(self, args, **kwargs):
    options = [a for a in args if a.startswith("-")]
    words = [a for a in args if not a.startswith("-")]
    sub, packages = words[0], words[1:]
    if sub == "update":
      if self.unusable_sources_dir is not None and os.listdir(self.unusable_sources_dir):
        return 100, b"E: The repository 'https://bad.example.org/debian nosuchsuite Release' does not have a Release file.\n", b""
      return 0, b"Hit:1 http://deb.debian.org/debian bookworm InRelease\n", b""
    if sub == "install":
      if "--dry-run" in options:
        out = "Reading package lists...\nBuilding dependency tree...\nReading state information...\n"
        out += "Some packages could not be installed.\nThe following packages have unmet dependencies:\n"
        for name in packages:
          out += f" {name} : Depends: lib{name} but it is not installable\n"
        out += "E: Unable to correct problems, you have held broken packages.\n"
        return 100, out.encode(), b""
      if "--fix-broken" in options:
        return self._fix_broken()
      for name in packages:
        if name not in self.available:
          return 100, b"", f"E: Unable to locate package {name}\n".encode()
      for name in packages:
        self.install(name, self.available[name])
      return 0, b"", b""
    if sub in ("remove", "autoremove"):
      for name in packages:
        self.installed.pop(name, None)
      return 0, b"", b""
    raise AssertionError(f"unexpected apt-get subcommand {sub}")


@pytest.fixture
def fake_system(monkeypatch: pytest.MonkeyPatch) -> FakeSystem:
  fake = FakeSystem()
  monkeypatch.setattr(util, "sudo_run", fake.sudo_run)
  monkeypatch.setattr(extra_repo, "sudo_run", fake.sudo_run)
  monkeypatch.setattr(extra_repo, "download_url_bytes", fake.download_url_bytes)
  return fake


@pytest.fixture
def config(tmp_path: Path) -> AptToolsConfig:
  root = tmp_path / "root"
  cfg = AptToolsConfig(
    sources_list=str(root / "etc/apt/sources.list"),
    sources_list_dir=str(root / "etc/apt/sources.list.d"),
    preferences_dir=str(root / "etc/apt/preferences.d"),
    trusted_gpg_dir=str(root / "etc/apt/trusted.gpg.d"),
    dpkg_lock_file=str(root / "var/lib/dpkg/lock"),
    dpkg_updates_dir=str(root / "var/lib/dpkg/updates"),
    apps_settings_dir=str(root / "etc/yunohost/apps"),
    lock_sleep_unit=0.0,
    use_sudo=False,
  )
  for dirname in (cfg.sources_list_dir, cfg.preferences_dir, cfg.trusted_gpg_dir, cfg.dpkg_updates_dir):
    os.makedirs(dirname)
  Path(cfg.dpkg_lock_file).touch()
  Path(cfg.sources_list).write_text("deb http://deb.debian.org/debian bookworm main\n", encoding="utf-8")
  return cfg


@pytest.fixture
def app_dir(tmp_path: Path) -> Path:
  result = tmp_path / "my_app"
  (result / "scripts").mkdir(parents=True)
  (result / "manifest.json").write_text(json.dumps({"id": "my_app", "version": "2.3~ynh1"}), encoding="utf-8")
  return result


@pytest.fixture
def ctx(config: AptToolsConfig, app_dir: Path, fake_system: FakeSystem) -> AppContext:
  return AppContext("my_app", app_dir=str(app_dir), config=config, stderr=io.StringIO())
