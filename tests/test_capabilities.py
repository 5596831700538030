import pytest

from ssh_sre_mcp.exceptions import CommandTimeoutError
from ssh_sre_mcp.platforms import PlatformCapability, probe_capabilities
from ssh_sre_mcp.platforms.types import marker_command


class FakeExecutor:
    def __init__(self, present: set[str], failing: set[str] | None = None) -> None:
        self.present = {marker_command(t) for t in present}
        self.failing = {marker_command(t) for t in (failing or set())}

    async def __call__(self, command: str) -> str:
        if command in self.failing:
            raise CommandTimeoutError("timeout", command=command)
        return "present\n" if command in self.present else "absent\n"


@pytest.mark.asyncio
async def test_probe_capabilities_first_matching_rule_wins():
    executor = FakeExecutor(
        present={
            "command -v docker >/dev/null 2>&1",
            "command -v podman >/dev/null 2>&1",
            "command -v virsh >/dev/null 2>&1",
            "test -f /proc/mdstat && grep -q md /proc/mdstat",
        }
    )

    capabilities = await probe_capabilities(executor)

    assert capabilities == PlatformCapability(
        storage="mdraid",
        virtualization="kvm",
        container_runtime="docker",
        init_system="sysv",
    )


@pytest.mark.asyncio
async def test_probe_capabilities_defaults_and_failures():
    executor = FakeExecutor(
        present={"test -d /run/systemd/system"},
        failing={"command -v docker >/dev/null 2>&1"},
    )

    capabilities = await probe_capabilities(executor)

    assert capabilities.to_dict() == {
        "storage": "ext4",
        "virtualization": "none",
        "container_runtime": "none",
        "init_system": "systemd",
    }


@pytest.mark.asyncio
async def test_builtin_errors_fall_back_to_default_capabilities():
    class BrokenExecutor:
        def __init__(self) -> None:
            self.calls = 0

        async def __call__(self, command: str) -> str:
            self.calls += 1
            if self.calls % 2:
                raise ConnectionError("reset by peer")
            raise TimeoutError("timed out")

    capabilities = await probe_capabilities(BrokenExecutor())

    assert capabilities == PlatformCapability(
        storage="ext4",
        virtualization="none",
        container_runtime="none",
        init_system="sysv",
    )
