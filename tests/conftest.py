"""Shared test fixtures."""

import json
import subprocess
import sys
from pathlib import Path
from typing import Any, Callable

import pytest

# Add project root to path so tests run without installing
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


def completed(cmd: list[str], stdout: str = "", returncode: int = 0, stderr: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(cmd, returncode=returncode, stdout=stdout, stderr=stderr)


class MockContext:
    """Mock Context for testing without real system access."""

    def __init__(
        self,
        tools_available: list[str] | None = None,
        command_outputs: dict[tuple, Any] | None = None,
        env: dict[str, str] | None = None,
        admin: bool = True,
    ):
        self.tools_available = set(tools_available or [])
        self.command_outputs = command_outputs or {}
        self.env = env or {}
        self.admin = admin
        self.commands_run: list[list[str]] = []
        self.sleeps: list[float] = []
        self.clock = 0.0

    def check_tool(self, name: str) -> bool:
        """Check if tool is in mocked available list."""
        return name in self.tools_available

    def run(
        self,
        cmd: list[str],
        check: bool = False,
        **kwargs,
    ) -> subprocess.CompletedProcess:
        """Return mocked command output.

        Values may be a string (stdout, exit 0), a CompletedProcess, an
        exception to raise, or a callable taking the command.
        """
        self.commands_run.append(cmd)
        key = tuple(cmd)
        if key not in self.command_outputs:
            raise KeyError(f"No mock output for command: {cmd}")

        output = self.command_outputs[key]
        if callable(output) and not isinstance(output, type):
            output = output(cmd)
        if isinstance(output, Exception):
            raise output
        if isinstance(output, subprocess.CompletedProcess):
            return output
        return completed(cmd, stdout=output)

    def get_env(self, key: str, default: str | None = None) -> str | None:
        """Return mocked environment variable."""
        return self.env.get(key, default)

    def is_admin(self) -> bool:
        return self.admin

    def sleep(self, seconds: float) -> None:
        """Record the sleep and advance the mock clock."""
        self.sleeps.append(seconds)
        self.clock += seconds

    def monotonic(self) -> float:
        return self.clock


def protector_id(n: int) -> str:
    return f"{{00000000-0000-0000-0000-{n:012d}}}"


class FakeBitLocker(MockContext):
    """
    MockContext that simulates manage-bde and the BitLocker PowerShell
    module against an in-memory volume, so multi-step runs see their own
    changes on the next query.
    """

    def __init__(
        self,
        protection: str = "Off",
        volume_status: str = "FullyDecrypted",
        percentage: float = 0.0,
        protectors: list[tuple[str, str]] | None = None,
        tpm_present: bool = True,
        tpm_ready: bool = True,
        turn_on_output: str = "Encryption is now in progress.",
        turn_on_returncode: int = 0,
        decrypt_polls: int = 1,
        **kwargs,
    ):
        kwargs.setdefault("tools_available", ["manage-bde", "powershell"])
        super().__init__(**kwargs)
        self.protection = protection
        self.volume_status = volume_status
        self.percentage = percentage
        self.protectors: list[dict[str, str]] = [
            {"KeyProtectorId": pid, "KeyProtectorType": ptype} for pid, ptype in (protectors or [])
        ]
        self.tpm_present = tpm_present
        self.tpm_ready = tpm_ready
        self.tpm_init_result = {"TpmReady": True, "RestartRequired": False, "ShutdownRequired": False, "ClearRequired": False}
        self.turn_on_output = turn_on_output
        self.turn_on_returncode = turn_on_returncode
        self.decrypt_polls = decrypt_polls
        self.remaining_polls: int | None = None
        self.failures: dict[str, subprocess.CompletedProcess] = {}
        self.ignored_adds: set[str] = set()
        self.escrowed: list[tuple[str, str]] = []
        self._next_id = 100

    def fail(self, action: str, stdout: str = "ERROR: An error occurred.", returncode: int = 1) -> None:
        """Make a manage-bde action (e.g. '-on', '-delete', '-adbackup', 'aad') fail."""
        self.failures[action] = completed([], stdout=stdout, returncode=returncode)

    def calls(self, action: str) -> list[list[str]]:
        """manage-bde calls whose action switch (e.g. '-on', '-add') matches."""
        return [
            cmd for cmd in self.commands_run
            if cmd[0] == "manage-bde" and action in cmd[1:3]
        ]

    def powershell_calls(self, cmdlet: str) -> list[list[str]]:
        return [cmd for cmd in self.commands_run if cmd[0] == "powershell" and cmdlet in cmd[-1]]

    def run(self, cmd: list[str], check: bool = False, **kwargs) -> subprocess.CompletedProcess:
        self.commands_run.append(cmd)
        if cmd[0] == "powershell":
            return self._powershell(cmd)
        if cmd[0] == "manage-bde":
            return self._manage_bde(cmd)
        raise KeyError(f"No mock output for command: {cmd}")

    def _volume_json(self) -> str:
        return json.dumps({
            "MountPoint": "C:",
            "ProtectionStatus": self.protection,
            "VolumeStatus": self.volume_status,
            "EncryptionPercentage": self.percentage,
            "KeyProtector": list(self.protectors),
        })

    def _powershell(self, cmd: list[str]) -> subprocess.CompletedProcess:
        script = cmd[-1]
        if "Get-BitLockerVolume" in script:
            if self.remaining_polls is not None:
                self.remaining_polls -= 1
                if self.remaining_polls <= 0:
                    self.remaining_polls = None
                    self.volume_status = "FullyDecrypted"
                    self.percentage = 0.0
                else:
                    self.percentage = max(self.percentage - 25.0, 1.0)
            return completed(cmd, stdout=self._volume_json())
        if "Initialize-Tpm" in script:
            if self.tpm_init_result.get("TpmReady"):
                self.tpm_ready = True
            return completed(cmd, stdout=json.dumps(self.tpm_init_result))
        if "Get-Tpm" in script:
            return completed(cmd, stdout=json.dumps({"TpmPresent": self.tpm_present, "TpmReady": self.tpm_ready}))
        if "BackupToAAD-BitLockerKeyProtector" in script:
            if "aad" in self.failures:
                return self.failures["aad"]
            pid = script.split("-KeyProtectorId '")[1].split("'")[0]
            self.escrowed.append(("aad", pid))
            return completed(cmd)
        raise KeyError(f"No mock output for PowerShell: {script}")

    def _manage_bde(self, cmd: list[str]) -> subprocess.CompletedProcess:
        args = cmd[1:]
        action = args[1] if args[0] == "-protectors" else args[0]
        if action in self.failures:
            failure = self.failures[action]
            return completed(cmd, stdout=failure.stdout, returncode=failure.returncode)

        if action == "-on":
            if self.turn_on_returncode == 0 and "hardware test" not in self.turn_on_output.lower():
                self.volume_status = "EncryptionInProgress"
                self.percentage = 0.0
            return completed(cmd, stdout=self.turn_on_output, returncode=self.turn_on_returncode)

        if action == "-off":
            self.volume_status = "DecryptionInProgress"
            self.protection = "Off"
            self.remaining_polls = self.decrypt_polls
            return completed(cmd, stdout="Decryption is now in progress.")

        if action == "-add":
            ptype = "Tpm" if args[3] == "-TPM" else "RecoveryPassword"
            if ptype not in self.ignored_adds:
                self._next_id += 1
                self.protectors.append({"KeyProtectorId": protector_id(self._next_id), "KeyProtectorType": ptype})
            return completed(cmd, stdout="Key Protectors Added:")

        if action == "-delete":
            pid = args[4]
            self.protectors = [p for p in self.protectors if p["KeyProtectorId"] != pid]
            if not self.protectors:
                self.protection = "Off"
            return completed(cmd, stdout="Key Protectors Deleted")

        if action == "-enable":
            self.protection = "On"
            return completed(cmd, stdout="Key protectors are enabled for volume C:.")

        if action == "-adbackup":
            self.escrowed.append(("ad", args[4]))
            return completed(cmd, stdout="Recovery information was successfully backed up to Active Directory.")

        raise KeyError(f"No mock output for command: {cmd}")


@pytest.fixture
def mock_context():
    """Factory fixture for creating MockContext instances."""
    def _create(**kwargs) -> MockContext:
        return MockContext(**kwargs)
    return _create


@pytest.fixture
def fake_bitlocker() -> Callable[..., FakeBitLocker]:
    """Factory fixture for creating FakeBitLocker instances."""
    def _create(**kwargs) -> FakeBitLocker:
        return FakeBitLocker(**kwargs)
    return _create


@pytest.fixture
def no_config(tmp_path, monkeypatch):
    """Run from an empty directory with no user config."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(Path, "home", lambda: tmp_path / "home")
    return tmp_path
