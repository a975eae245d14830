# device_agent/tools/adb/adb_tool.py
import logging
import shutil
import subprocess
from typing import List, Optional, Sequence, Union

from device_agent.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 3.0
SCREENCAP_TIMEOUT = 5.0


class AdbCommandError(RuntimeError):
    def __init__(self, message: str, args: Sequence[str] = (), stderr: str = ""):
        super().__init__(message)
        self.command = list(args)
        self.stderr = stderr


class AdbTool:
    """
    Runs `adb -s <device> ...` commands. Every command has a bounded wait so a
    hung device cannot stall the caller.
    """

    def __init__(self, device_id: str, adb_path: str = "adb", timeout: float = DEFAULT_TIMEOUT):
        self.device_id = device_id
        self.adb_path = adb_path
        self.timeout = timeout

    def _run(self, args: List[str], timeout: Optional[float], text: bool) -> Union[str, bytes]:
        cmd = [self.adb_path, "-s", self.device_id] + args
        logger.debug("[AdbTool] %s", " ".join(cmd))
        try:
            proc = subprocess.run(cmd, capture_output=True, timeout=timeout or self.timeout, text=text)
        except subprocess.TimeoutExpired as e:
            raise AdbCommandError(f"adb command timed out after {e.timeout}s: {' '.join(cmd)}", cmd) from e
        except OSError as e:
            raise AdbCommandError(f"could not start adb: {e}", cmd) from e

        if proc.returncode != 0:
            stderr = proc.stderr if text else proc.stderr.decode("utf-8", "replace")
            raise AdbCommandError(
                f"adb command failed ({proc.returncode}): {' '.join(cmd)}: {stderr.strip()}", cmd, stderr
            )
        return proc.stdout

    def shell(self, *args: str, timeout: Optional[float] = None) -> str:
        """`adb -s <id> shell <args...>`, returning stdout text."""
        return self._run(["shell"] + [str(a) for a in args], timeout, text=True)

    def exec_out(self, *args: str, timeout: Optional[float] = SCREENCAP_TIMEOUT) -> bytes:
        """`adb -s <id> exec-out <args...>`, returning raw stdout bytes."""
        return self._run(["exec-out"] + [str(a) for a in args], timeout, text=False)


def get_android_device_ids(adb_path: str = "adb", timeout: float = DEFAULT_TIMEOUT) -> List[str]:
    """Serials of attached devices in state `device`, as listed by `adb devices`."""
    if shutil.which(adb_path) is None:
        raise ConfigurationError(f"'{adb_path}' was not found on PATH")
    try:
        proc = subprocess.run([adb_path, "devices"], capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired as e:
        raise ConfigurationError(f"'adb devices' timed out after {timeout}s") from e

    devices = []
    # first line is the "List of devices attached" banner
    for line in proc.stdout.splitlines()[1:]:
        parts = line.strip().split("\t")
        if len(parts) >= 2 and parts[1].strip() == "device":
            devices.append(parts[0].strip())
    return devices


def get_android_device_id(adb_path: str = "adb") -> str:
    devices = get_android_device_ids(adb_path)
    if not devices:
        raise ConfigurationError(
            "No Android device found; make sure it is connected and USB debugging is enabled"
        )
    if len(devices) > 1:
        logger.warning("Several Android devices attached (%s); using %s", ", ".join(devices), devices[0])
    return devices[0]
