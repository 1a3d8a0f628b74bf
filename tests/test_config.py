import io

import pytest

from app_apt_tools import AppContext, AptToolsConfig, YnhAptError

def test_defaults():
  cfg = AptToolsConfig()
  assert cfg.sources_list_dir == "/etc/apt/sources.list.d"
  assert cfg.lock_max_attempts == 17
  assert cfg.default_pin_priority == 50
  assert cfg.deps_package_name("nextcloud_2") == "nextcloud-2-ynh-deps"

def test_overrides_and_coercion():
  cfg = AptToolsConfig(lock_sleep_unit=2, deps_package_suffix="-deps")
  assert cfg.lock_sleep_unit == 2.0
  assert isinstance(cfg.lock_sleep_unit, float)
  assert cfg.deps_package_name("foo") == "foo-deps"
  assert AptToolsConfig().deps_package_suffix == "-ynh-deps"

@pytest.mark.parametrize("values", [
    {"no_such_key": 1},
    {"deps_package_name": "x"},
    {"lock_max_attempts": "many"},
    {"use_sudo": "yes"},
  ])
def test_bad_values(values):
  with pytest.raises(YnhAptError):
    AptToolsConfig(**values)

def test_from_file(tmp_path):
  config_file = tmp_path / "config.yml"
  config_file.write_text("lock_max_attempts: 3\nfail_on_lock_timeout: true\nsources_list_dir: /srv/apt/sources.list.d\n")
  cfg = AptToolsConfig.from_file(str(config_file))
  assert cfg.lock_max_attempts == 3
  assert cfg.fail_on_lock_timeout
  assert cfg.sources_list_dir == "/srv/apt/sources.list.d"

def test_from_empty_file(tmp_path):
  config_file = tmp_path / "config.yml"
  config_file.write_text("")
  assert AptToolsConfig.from_file(str(config_file)).lock_max_attempts == 17

def test_context():
  stderr = io.StringIO()
  ctx = AppContext("my_app", app_dir="/srv/my_app", stderr=stderr)
  assert ctx.deps_package_name == "my-app-ynh-deps"
  assert ctx.app_dir == "/srv/my_app"
  ctx.log("hello")
  assert stderr.getvalue() == "hello\n"
  with pytest.raises(YnhAptError):
    AppContext("")
