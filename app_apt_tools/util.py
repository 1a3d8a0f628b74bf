# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Process execution, download and root-owned file helpers"""

from typing import (
    Optional,
    List,
    Union,
    Any,
    Tuple,
    TextIO,
    cast,
  )

from .exceptions import YnhAptError, CalledProcessErrorWithStderrMessage
from .internal_types import EnvVars

import os
import sys
import subprocess
import threading
import tempfile
import shutil
import urllib3

_CMD = Union[str, List[str]]

class _RunOnceState:
  has_run: bool = False
  result: Any = None
  lock: threading.Lock

  def __init__(self):
    self.lock = threading.Lock()

def run_once(func):
  """Function decorator that caches the result of the first call to a function.

  The decorator is thread safe--if multiple threads call the function at the
  same time before the first call has returned, they will block waiting for
  the result. Any arguments provided to the function are ignored after the
  first call.
  """
  state = _RunOnceState()

  def _run_once(*args, **kwargs) -> Any:
    if not state.has_run:
      with state.lock:
        if not state.has_run:
          state.result = func(*args, **kwargs)
          state.has_run = True
    return state.result
  return _run_once

@run_once
def get_tmp_dir() -> str:
  """Returns a temporary directory that is private to this user

  Returns:
      str: A temporary directory that is private to this user
  """
  parent_dir: Optional[str] = os.environ.get("XDG_RUNTIME_DIR")
  if parent_dir is None:
    parent_dir = tempfile.gettempdir()
    tmp_dir = os.path.join(parent_dir, f"user-{os.getuid()}")
  else:
    tmp_dir = os.path.join(parent_dir, 'tmp')
  if not os.path.exists(tmp_dir):
    os.mkdir(tmp_dir, mode=0o700)
  return tmp_dir

def file_contents(filename: str) -> str:
  with open(filename, encoding='utf-8') as f:
    result = f.read()
  return result

def running_as_root() -> bool:
  return os.geteuid() == 0

@run_once
def sudo_warn(
      args: _CMD,
      stderr: Optional[Any] = None,
      sudo_reason: Optional[str] = None,
    ):
  errout = stderr if hasattr(stderr, 'write') else sys.stderr
  if sudo_reason is None:
    sudo_reason = f"command: {args!r}"
  print(f"Sudo required: {sudo_reason}", file=errout)

def _sudo_fix_args(
      args: _CMD,
      stderr: Optional[Any] = None,
      env_vars: Optional[EnvVars] = None,
      use_sudo: bool = True,
      sudo_reason: Optional[str] = None,
    ) -> List[str]:
  if not isinstance(args, list):
    args = [ args ]

  # sudo resets the environment, so variables are passed through env(1)
  if env_vars:
    args = [ 'env' ] + [ f"{k}={v}" for k, v in env_vars.items() ] + args

  if use_sudo and not running_as_root():
    sudo_warn(args, stderr=stderr, sudo_reason=sudo_reason)
    args = [ 'sudo' ] + args
  return args

def sudo_run(
      args: _CMD,
      *,
      input: Optional[bytes] = None,   # pylint: disable=redefined-builtin
      cwd: Optional[str] = None,
      env_vars: Optional[EnvVars] = None,
      stdout: Optional[Any] = None,
      stderr: Optional[Any] = None,
      capture_output: bool = False,
      merge_stderr: bool = False,
      use_sudo: bool = True,
      sudo_reason: Optional[str] = None,
    ) -> subprocess.CompletedProcess:
  """Runs a command, prefixed with sudo if requested and not already root.

  Every command this package runs goes through here.

  Args:
      args:           The command and its arguments.
      input:          Bytes to feed to the command's stdin.
      cwd:            Working directory for the command.
      env_vars:       Extra environment variables, passed through env(1) so
                      that they survive sudo.
      stdout, stderr: Destinations when not capturing.
      capture_output: If True, stdout (and stderr) are collected as bytes.
      merge_stderr:   With capture_output, fold stderr into stdout.
      use_sudo:       Escalate with sudo when not running as root.
      sudo_reason:    Shown to the user the first time sudo is needed.

  Returns:
      subprocess.CompletedProcess: The completed process. Never raises on
          a non-zero exit code.
  """
  args = _sudo_fix_args(
      args,
      stderr=stderr,
      env_vars=env_vars,
      use_sudo=use_sudo,
      sudo_reason=sudo_reason,
    )
  if capture_output:
    stdout = subprocess.PIPE
    stderr = subprocess.STDOUT if merge_stderr else subprocess.PIPE
  result = subprocess.run(  # pylint: disable=subprocess-run-check
      args,
      input=input,
      cwd=cwd,
      stdout=stdout,
      stderr=stderr,
    )
  return result

def sudo_call(
      args: _CMD,
      *,
      cwd: Optional[str] = None,
      env_vars: Optional[EnvVars] = None,
      stdout: Optional[Any] = None,
      stderr: Optional[Any] = None,
      use_sudo: bool = True,
      sudo_reason: Optional[str] = None,
    ) -> int:
  result = sudo_run(
      args,
      cwd=cwd,
      env_vars=env_vars,
      stdout=stdout,
      stderr=stderr,
      use_sudo=use_sudo,
      sudo_reason=sudo_reason,
    )
  return result.returncode

def _decode(data: Optional[bytes]) -> str:
  if data is None:
    return ''
  return data.decode('utf-8', errors='replace')

def sudo_call_output(
      args: _CMD,
      *,
      cwd: Optional[str] = None,
      env_vars: Optional[EnvVars] = None,
      use_sudo: bool = True,
      sudo_reason: Optional[str] = None,
    ) -> Tuple[int, str]:
  """Runs a command and returns its exit code along with its combined stdout/stderr text"""
  result = sudo_run(
      args,
      cwd=cwd,
      env_vars=env_vars,
      capture_output=True,
      merge_stderr=True,
      use_sudo=use_sudo,
      sudo_reason=sudo_reason,
    )
  return result.returncode, _decode(result.stdout)

def sudo_check_output_stderr_exception(
      args: _CMD,
      *,
      input: Optional[bytes] = None,   # pylint: disable=redefined-builtin
      cwd: Optional[str] = None,
      env_vars: Optional[EnvVars] = None,
      use_sudo: bool = True,
      sudo_reason: Optional[str] = None,
    ) -> bytes:
  result = sudo_run(
      args,
      input=input,
      cwd=cwd,
      env_vars=env_vars,
      capture_output=True,
      use_sudo=use_sudo,
      sudo_reason=sudo_reason,
    )
  if result.returncode != 0:
    stderr_s = _decode(result.stderr).rstrip()
    raise CalledProcessErrorWithStderrMessage(result.returncode, args, stderr = stderr_s)
  return cast(bytes, result.stdout)

def chown_root(filename: str, sudo_reason: Optional[str]=None):
  sudo_check_output_stderr_exception(['chown', 'root:root', filename], sudo_reason=sudo_reason)

def unix_mv(source: str, dest: str, use_sudo: bool=False, sudo_reason: Optional[str]=None) -> None:
  """
  Equivalent to the linux "mv" commandline.  Atomic within same volume, and overwrites the destination.

  Args:
      source (str): Source file or directory.
      dest (str): Destination file or directory. Will be overwritten if it exists.
      use_sudo (bool): If True, the move will be done as sudo
      sudo_reason (str, optional): Reason why sudo is needed
  """
  source = os.path.expanduser(source)
  dest = os.path.expanduser(dest)
  sudo_check_output_stderr_exception(['mv', source, dest], use_sudo=use_sudo, sudo_reason=sudo_reason)

@run_once
def get_linux_distro_name() -> str:
  """Returns the distribution codename, e.g. "bookworm" """
  result = sudo_check_output_stderr_exception(['lsb_release', '-cs'], use_sudo=False)
  linux_distro = result.decode('utf-8').rstrip()
  return linux_distro

def download_url_bytes(
      url: str,
      timeout: Optional[float]=None,
      pool_manager: Optional[urllib3.PoolManager]=None,
    ) -> bytes:
  if pool_manager is None:
    pool_manager = urllib3.PoolManager()
  resp = cast(urllib3.HTTPResponse, pool_manager.request(
      'GET',
      url,
      preload_content=False,
      timeout=urllib3.Timeout(total=timeout),
    ))
  try:
    if resp.status >= 400:
      raise YnhAptError(f"HTTP GET of {url} failed with status {resp.status}")
    data = resp.data
  finally:
    resp.release_conn()
  return data

def ensure_root_dir(dirname: str, use_sudo: bool=True, sudo_reason: Optional[str]=None) -> None:
  if os.path.isdir(dirname):
    return
  parent = os.path.dirname(os.path.abspath(dirname))
  while not os.path.exists(parent):
    parent = os.path.dirname(parent)
  if os.access(parent, os.W_OK):
    os.makedirs(dirname, mode=0o755, exist_ok=True)
  else:
    sudo_check_output_stderr_exception(['mkdir', '--parents', dirname], use_sudo=use_sudo, sudo_reason=sudo_reason)

def install_root_file(
      dest_file: str,
      content: Union[str, bytes],
      append: bool=False,
      mode: int=0o644,
      use_sudo: bool=True,
      sudo_reason: Optional[str]=None,
    ) -> bool:
  """Writes or appends to a root-owned system file such as an apt sources list.

  If the destination directory is writable by this process the file is
  replaced directly; otherwise the content is staged in a private temp
  file, chowned to root and moved into place with sudo.

  Args:
      dest_file (str):   The file to create, replace or extend.
      content:           Text or bytes to write.
      append (bool):     If True, content is added after any existing content.
      mode (int):        The mode bits of the resulting file. Default 0o644.
      use_sudo (bool):   Allow sudo if the directory is not writable.
      sudo_reason (str): Shown if sudo is needed.

  Returns:
      bool: False if the file already had exactly the requested content.
  """
  if isinstance(content, str):
    content = content.encode('utf-8')
  dest_file = os.path.abspath(dest_file)
  dest_dir = os.path.dirname(dest_file)
  if sudo_reason is None:
    sudo_reason = f"Writing {dest_file}"
  ensure_root_dir(dest_dir, use_sudo=use_sudo, sudo_reason=sudo_reason)

  if os.path.exists(dest_file):
    with open(dest_file, 'rb') as f:
      old_content = f.read()
    if append:
      content = old_content + content
    elif old_content == content:
      return False

  if os.access(dest_dir, os.W_OK):
    with tempfile.NamedTemporaryFile(dir=dest_dir, prefix='.tmp-', delete=False) as f:
      f.write(content)
      tmp_file = f.name
    try:
      os.chmod(tmp_file, mode)
      os.replace(tmp_file, dest_file)
    except BaseException:
      if os.path.exists(tmp_file):
        os.remove(tmp_file)
      raise
  else:
    with tempfile.NamedTemporaryFile(dir=get_tmp_dir(), delete=False) as f:
      f.write(content)
      tmp_file = f.name
    try:
      os.chmod(tmp_file, mode)
      chown_root(tmp_file, sudo_reason=sudo_reason)
      unix_mv(tmp_file, dest_file, use_sudo=use_sudo, sudo_reason=sudo_reason)
    except BaseException:
      if os.path.exists(tmp_file):
        secure_remove(tmp_file, use_sudo=use_sudo, sudo_reason=sudo_reason)
      raise
  return True

PROTECTED_PATHS = frozenset([
    '/', '/bin', '/boot', '/dev', '/etc', '/home', '/lib', '/lib64', '/opt',
    '/proc', '/root', '/run', '/sbin', '/srv', '/sys', '/tmp', '/usr', '/var',
    '/etc/apt', '/etc/apt/sources.list.d', '/etc/apt/preferences.d',
    '/etc/apt/trusted.gpg.d', '/var/lib/dpkg', '/var/www',
  ])

def secure_remove(path: str, use_sudo: bool=True, sudo_reason: Optional[str]=None) -> bool:
  """Removes a file or directory, refusing to touch well-known system directories.

  A path that does not exist is silently ignored.

  Args:
      path (str): The file or directory to remove.

  Raises:
      YnhAptError: path is empty or a protected system directory.

  Returns:
      bool: True if something was removed.
  """
  if path.strip() == '':
    raise YnhAptError("Refusing to remove an empty path")
  path = os.path.abspath(os.path.expanduser(path))
  if path in PROTECTED_PATHS:
    raise YnhAptError(f"Refusing to remove protected path {path}")
  if not os.path.lexists(path):
    return False
  if os.access(os.path.dirname(path), os.W_OK):
    if os.path.isdir(path) and not os.path.islink(path):
      shutil.rmtree(path)
    else:
      os.remove(path)
  else:
    if sudo_reason is None:
      sudo_reason = f"Removing {path}"
    sudo_check_output_stderr_exception(['rm', '--recursive', '--force', path], use_sudo=use_sudo, sudo_reason=sudo_reason)
  return True

def print_lines(lines: Union[str, List[str]], stderr: Optional[TextIO]=None) -> None:
  if stderr is None:
    stderr = sys.stderr
  if isinstance(lines, str):
    lines = lines.splitlines()
  for line in lines:
    print(line, file=stderr)
