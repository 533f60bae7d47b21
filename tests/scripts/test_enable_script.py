"""Tests for the enable script."""

import json

from bdectl.bitlocker.query import TPM_QUERY, VOLUME_QUERY
from bdectl.core.output import Output
from bdectl.lib.process import powershell_command
from bdectl.scripts import enable
from tests.conftest import protector_id


def run_enable(ctx, tmp_path, *args):
    output = Output()
    exit_code = enable.run(["--log-dir", str(tmp_path / "logs"), *args], output, ctx)
    return exit_code, output


class TestEnableScript:
    """Tests for enable.run."""

    def test_fresh_volume(self, fake_bitlocker, no_config, capsys):
        """Turns on, adds both protectors, resumes and escrows."""
        ctx = fake_bitlocker()

        exit_code, output = run_enable(ctx, no_config)

        assert exit_code == 0
        assert output.data["status"] == "ok"
        assert output.data["volume"]["state"] == "On"
        assert output.summary == "BitLocker enabled"
        assert len(output.data["escrowed"]) == 1
        assert ctx.escrowed == [("ad", output.data["escrowed"][0])]
        assert output.actions == [
            "Turned on BitLocker",
            "Added TPM protector",
            "Added recovery password protector",
            "Resumed protection",
            f"Escrowed recovery password {output.data['escrowed'][0]} to ad",
        ]
        assert "[OK] Status: OK" in capsys.readouterr().out

    def test_writes_run_log(self, fake_bitlocker, no_config):
        ctx = fake_bitlocker()

        run_enable(ctx, no_config)

        log_files = list((no_config / "logs").rglob("enable.jsonl"))
        assert len(log_files) == 1
        messages = [json.loads(line)["message"] for line in log_files[0].read_text().splitlines()]
        assert messages[0] == "Enablement started"
        assert "Turned on BitLocker" in messages
        assert messages[-1] == "Enablement finished"

        entries = [json.loads(line) for line in log_files[0].read_text().splitlines()]
        assert all(e["mount_point"] == "C:" for e in entries)
        actions = [e["message"] for e in entries if e["kind"] == "action"]
        assert actions[:2] == ["Turned on BitLocker", "Added TPM protector"]

    def test_compliant_volume_changes_nothing(self, fake_bitlocker, no_config):
        ctx = fake_bitlocker(
            protection="On",
            volume_status="FullyEncrypted",
            percentage=100.0,
            protectors=[(protector_id(1), "Tpm"), (protector_id(2), "RecoveryPassword")],
        )

        exit_code, output = run_enable(ctx, no_config, "--escrow", "none")

        assert exit_code == 0
        assert output.actions == []
        assert all(cmd[0] == "powershell" for cmd in ctx.commands_run)

    def test_restart_pending_exits_zero(self, fake_bitlocker, no_config):
        ctx = fake_bitlocker(
            turn_on_output="ACTION REQUIRED:\n1. Restart the computer to run a hardware test.",
        )

        exit_code, output = run_enable(ctx, no_config)

        assert exit_code == 0
        assert output.data["status"] == "restart_pending"
        assert "Restart the computer" in output.summary
        assert ctx.calls("-add") == []

    def test_failed_step_exits_one(self, fake_bitlocker, no_config):
        ctx = fake_bitlocker()
        ctx.fail("-on", stdout="ERROR: An error occurred (code 0x80310001)")

        exit_code, output = run_enable(ctx, no_config)

        assert exit_code == 1
        assert output.data["status"] == "failed"
        assert "0x80310001" in output.errors[0]

    def test_missing_tool_exits_one(self, fake_bitlocker, no_config):
        ctx = fake_bitlocker(tools_available=["powershell"])

        exit_code, output = run_enable(ctx, no_config)

        assert exit_code == 1
        assert "manage-bde" in output.errors[0]
        assert ctx.commands_run == []

    def test_not_elevated_exits_one(self, fake_bitlocker, no_config):
        ctx = fake_bitlocker(admin=False)

        exit_code, output = run_enable(ctx, no_config)

        assert exit_code == 1
        assert "Administrator" in output.errors[0]

    def test_bad_config_exits_two(self, fake_bitlocker, no_config):
        (no_config / ".bdectl.yaml").write_text("escrow_target: ldap\n")
        ctx = fake_bitlocker()

        exit_code, output = run_enable(ctx, no_config)

        assert exit_code == 2
        assert ctx.commands_run == []

    def test_escrow_failure_still_succeeds(self, fake_bitlocker, no_config):
        ctx = fake_bitlocker()
        ctx.fail("-adbackup", stdout="ERROR: Group Policy does not permit backup")

        exit_code, output = run_enable(ctx, no_config)

        assert exit_code == 0
        assert output.data["status"] == "ok"
        assert output.data["escrowed"] == []
        assert output.summary == "BitLocker enabled; recovery password escrow incomplete"
        assert any("Group Policy" in w for w in output.warnings)

    def test_escrow_target_from_config(self, fake_bitlocker, no_config):
        (no_config / ".bdectl.yaml").write_text("escrow_target: aad\n")
        ctx = fake_bitlocker()

        exit_code, output = run_enable(ctx, no_config)

        assert exit_code == 0
        assert [target for target, _ in ctx.escrowed] == ["aad"]

    def test_mount_point_from_environment(self, fake_bitlocker, no_config):
        ctx = fake_bitlocker(env={"SystemDrive": "C:"})

        exit_code, output = run_enable(ctx, no_config, "--escrow", "none")

        assert exit_code == 0
        assert output.data["mount_point"] == "C:"

    def test_force_decrypts_first(self, fake_bitlocker, no_config):
        ctx = fake_bitlocker(
            protection="On",
            volume_status="FullyEncrypted",
            percentage=100.0,
            protectors=[(protector_id(1), "Tpm"), (protector_id(2), "RecoveryPassword")],
            decrypt_polls=2,
        )

        exit_code, output = run_enable(ctx, no_config, "--force", "--escrow", "none")

        assert exit_code == 0
        assert len(ctx.calls("-delete")) == 2
        assert len(ctx.calls("-off")) == 1
        assert len(ctx.calls("-on")) == 1
        assert output.data["force"] is True

    def test_force_timeout_exits_one(self, fake_bitlocker, no_config):
        ctx = fake_bitlocker(
            protection="On",
            volume_status="FullyEncrypted",
            percentage=100.0,
            protectors=[(protector_id(1), "Tpm")],
            decrypt_polls=1000,
        )

        exit_code, output = run_enable(ctx, no_config, "--force", "--decrypt-timeout", "120")

        assert exit_code == 1
        assert ctx.calls("-on") == []
        assert "after 120s" in output.errors[0]

    def test_json_output(self, fake_bitlocker, no_config, capsys):
        ctx = fake_bitlocker()

        run_enable(ctx, no_config, "--format", "json")

        data = json.loads(capsys.readouterr().out)
        assert data["status"] == "ok"
        assert data["tpm"] == {"present": True, "ready": True}
        assert "Turned on BitLocker" in data["actions"]

    def test_negative_poll_interval_in_config_exits_two(self, fake_bitlocker, no_config):
        (no_config / ".bdectl.yaml").write_text("poll_max_interval: -1\n")
        ctx = fake_bitlocker(
            protection="On",
            volume_status="FullyEncrypted",
            percentage=100.0,
            protectors=[(protector_id(1), "Tpm")],
        )

        exit_code, output = run_enable(ctx, no_config, "--force")

        assert exit_code == 2
        assert output.data["status"] == "failed"
        assert "poll_max_interval" in output.errors[0]
        assert ctx.commands_run == []

    def test_negative_decrypt_timeout_flag_exits_two(self, fake_bitlocker, no_config):
        ctx = fake_bitlocker()

        exit_code, output = run_enable(ctx, no_config, "--force", "--decrypt-timeout", "-5")

        assert exit_code == 2
        assert "decrypt_timeout" in output.errors[0]
        assert ctx.commands_run == []

    def test_unparseable_volume_query_exits_one(self, mock_context, no_config):
        ctx = mock_context(
            tools_available=["manage-bde", "powershell"],
            command_outputs={
                tuple(powershell_command(TPM_QUERY)): '{"TpmPresent":true,"TpmReady":true}',
                tuple(powershell_command(VOLUME_QUERY.format(mount_point="C:"))): (
                    "Get-BitLockerVolume : Access is denied."
                ),
            },
        )

        exit_code, output = run_enable(ctx, no_config)

        assert exit_code == 1
        assert output.data["status"] == "failed"
        assert "Get-BitLockerVolume" in output.errors[0]
        assert not any(cmd[0] == "manage-bde" for cmd in ctx.commands_run)
