from pydantic import AliasChoices, BaseModel, Field

# Metric columns in table order. Everything an agent reports, nothing the server assigns.
METRIC_FIELDS = (
    "hostname",
    "os",
    "kernel",
    "uptime",
    "shell",
    "cpu",
    "cpu_percentage",
    "mem_stats",
    "ram_percentage",
    "total_disk_space",
    "free_disk_space",
    "used_disk_space",
    "system_arch",
)


def _metric(*aliases: str):
    return Field(default="", validation_alias=AliasChoices(*aliases))


class SnapshotIn(BaseModel):
    """One message from an agent. Values are opaque strings; missing keys read as ""."""

    # Older agents send the capitalised field names
    hostname: str = _metric("hostname", "Hostname")
    os: str = _metric("os", "OS")
    kernel: str = _metric("kernel", "Kernel")
    uptime: str = _metric("uptime", "Uptime")
    shell: str = _metric("shell", "Shell")
    cpu: str = _metric("cpu", "CPU")
    cpu_percentage: str = _metric("cpu_percentage", "CPUPercentage")
    mem_stats: str = _metric("mem_stats", "MemStats")
    ram_percentage: str = _metric("ram_percentage", "RAMPercentage")
    total_disk_space: str = _metric("total_disk_space", "TotalDiskSpace")
    free_disk_space: str = _metric("free_disk_space", "FreeDiskSpace")
    used_disk_space: str = _metric("used_disk_space", "UsedDiskSpace")
    system_arch: str = _metric("system_arch", "SystemArch")
    auth_token: str = _metric("auth_token", "token", "AuthToken")

    def metrics(self) -> tuple:
        return tuple(getattr(self, name) for name in METRIC_FIELDS)


class Snapshot(BaseModel):
    id: int = 0
    timestamp: str
    hostname: str = ""
    os: str = ""
    kernel: str = ""
    uptime: str = ""
    shell: str = ""
    cpu: str = ""
    cpu_percentage: str = ""
    mem_stats: str = ""
    ram_percentage: str = ""
    total_disk_space: str = ""
    free_disk_space: str = ""
    used_disk_space: str = ""
    system_arch: str = ""
    auth_token: str = ""

    def redacted(self) -> "Snapshot":
        """Copy safe to hand out: no surrogate id, no token."""
        return self.model_copy(update={"id": 0, "auth_token": ""})

    def public_dict(self) -> dict:
        return self.model_dump(exclude={"id", "auth_token"})
