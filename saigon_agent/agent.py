import argparse
import json
import logging
import os
import platform
import socket
import subprocess
import time

import psutil
from websockets.exceptions import WebSocketException
from websockets.sync.client import connect

from .config import API_TOKEN, API_URL, POLL_INTERVAL_SECONDS, RECONNECT_DELAY_SECONDS

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"

# Window psutil samples CPU time over for one utilisation reading
CPU_SAMPLE_SECONDS = 0.5


def _gib(num_bytes: float) -> str:
    return f"{num_bytes / 1024 ** 3:.2f} GiB"


def os_name() -> str:
    system = platform.system()
    if system == "Linux":
        try:
            release = platform.freedesktop_os_release()
            return release.get("PRETTY_NAME") or release.get("NAME") or system
        except OSError:
            return system
    if system == "Darwin":
        return f"macOS {platform.mac_ver()[0]}".strip()
    if system == "Windows":
        return f"Windows {platform.release()}"
    return system or UNKNOWN


def format_uptime(seconds: int) -> str:
    """
    Human readable uptime, e.g. "3 days, 4:05:06".
    """
    days, rem = divmod(seconds, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, secs = divmod(rem, 60)
    clock = f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{days} days, {clock}" if days else clock


def uptime() -> str:
    return format_uptime(max(int(time.time() - psutil.boot_time()), 0))


def cpu_model() -> str:
    # psutil has no CPU model name
    if platform.system() == "Linux":
        try:
            with open("/proc/cpuinfo", "r") as f:
                for line in f:
                    if line.startswith("model name"):
                        return line.split(":", 1)[1].strip()
        except OSError as e:
            logger.debug("Could not read /proc/cpuinfo: %s", e)
    elif platform.system() == "Darwin":
        try:
            result = subprocess.run(
                ["sysctl", "-n", "machdep.cpu.brand_string"],
                capture_output=True, text=True, check=True
            )
            return result.stdout.strip() or UNKNOWN
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            logger.debug("Could not read CPU model on macOS: %s", e)
    return platform.processor() or UNKNOWN


def cpu_percentage() -> str:
    """
    System-wide CPU utilisation measured over CPU_SAMPLE_SECONDS.
    """
    return f"{psutil.cpu_percent(interval=CPU_SAMPLE_SECONDS):.1f}%"


def memory() -> tuple:
    """
    Returns (mem_stats, ram_percentage).
    """
    vm = psutil.virtual_memory()
    used = vm.total - vm.available
    return f"{_gib(used)} / {_gib(vm.total)}", f"{vm.percent:.1f}%"


def disk_space(path: str = "/") -> tuple:
    """
    Returns (total, free, used) for the filesystem holding `path`.
    """
    try:
        usage = psutil.disk_usage(path)
    except OSError as e:
        logger.debug("Could not stat %s: %s", path, e)
        return UNKNOWN, UNKNOWN, UNKNOWN
    return _gib(usage.total), _gib(usage.free), _gib(usage.used)


def collect_snapshot() -> dict:
    """
    Collects one host metrics snapshot. Every value is a string.
    """
    mem_stats, ram_percentage = memory()
    total_disk, free_disk, used_disk = disk_space()
    return {
        "hostname": socket.gethostname(),
        "os": os_name(),
        "kernel": platform.release() or UNKNOWN,
        "uptime": uptime(),
        "shell": os.environ.get("SHELL") or os.environ.get("COMSPEC") or UNKNOWN,
        "cpu": cpu_model(),
        "cpu_percentage": cpu_percentage(),
        "mem_stats": mem_stats,
        "ram_percentage": ram_percentage,
        "total_disk_space": total_disk,
        "free_disk_space": free_disk,
        "used_disk_space": used_disk,
        "system_arch": platform.machine() or UNKNOWN,
    }


def build_message(snapshot: dict, token: str) -> str:
    return json.dumps({**snapshot, "auth_token": token})


def send_snapshots(url: str, token: str, interval: float, max_messages=None):
    """
    Pushes a fresh snapshot every `interval` seconds over one connection,
    reconnecting after RECONNECT_DELAY_SECONDS whenever it drops.
    The server never answers, so a rejected token only shows up as dropped connections.
    """
    sent = 0
    while max_messages is None or sent < max_messages:
        try:
            with connect(url) as ws:
                logger.info("Connected to %s", url)
                while max_messages is None or sent < max_messages:
                    snapshot = collect_snapshot()
                    ws.send(build_message(snapshot, token))
                    sent += 1
                    logger.info("Sent snapshot for %s", snapshot["hostname"])
                    if max_messages is not None and sent >= max_messages:
                        break
                    time.sleep(interval)
        except (WebSocketException, OSError) as e:
            logger.warning("Connection to %s failed: %s. Retrying in %ss", url, e, RECONNECT_DELAY_SECONDS)
            time.sleep(RECONNECT_DELAY_SECONDS)
    return sent


def main():
    parser = argparse.ArgumentParser(description="saigon-agent - pushes host metrics to a saigon server.")
    parser.add_argument("--once", action="store_true", help="Collect and print one snapshot without sending it.")
    parser.add_argument("--url", default=API_URL, help="WebSocket URL of the server.")
    parser.add_argument("--interval", type=float, default=POLL_INTERVAL_SECONDS, help="Seconds between snapshots.")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    if args.once:
        print(json.dumps(collect_snapshot(), indent=2))
        return

    if not API_TOKEN:
        logger.warning("API_TOKEN is not set; the server will drop every snapshot")

    logger.info("saigon-agent started. Reporting to %s every %ss.", args.url, args.interval)
    try:
        send_snapshots(args.url, API_TOKEN, args.interval)
    except KeyboardInterrupt:
        logger.info("saigon-agent stopped by user. Exiting.")


if __name__ == "__main__":
    main()
