import typer
from typer.testing import CliRunner

from pm2monitor import main
from pm2monitor.errors import InventoryError

from conftest import SAMPLE_NGINX

runner = CliRunner()


def single_command_app(command):
    app = typer.Typer()
    app.command()(command)
    return app


def no_logging(monkeypatch):
    monkeypatch.setattr(main, "configure_logging", lambda to_console=False: None)


def test_restart_without_target_prints_usage():
    result = runner.invoke(single_command_app(main.restart_command), [])
    assert result.exit_code == 1
    assert "Usage" in result.output
    assert "pm2-restart all -w" in result.output


def test_restart_reports_batch(monkeypatch, make_snapshot, fake_provider):
    no_logging(monkeypatch)
    provider = fake_provider([make_snapshot(0, "web"), make_snapshot(1, "api", status="stopped")])
    monkeypatch.setattr(main, "Pm2Client", lambda: provider)

    result = runner.invoke(single_command_app(main.restart_command), ["all", "-w"])

    assert result.exit_code == 0
    assert provider.restarts == [(0, True)]
    assert "Restarted web" in result.output
    assert "Restarted 1 online processes" in result.output


def test_restart_reports_failed_item(monkeypatch, make_snapshot, fake_provider):
    no_logging(monkeypatch)
    provider = fake_provider([make_snapshot(0, "web"), make_snapshot(1, "api")], fail_ids={1})
    monkeypatch.setattr(main, "Pm2Client", lambda: provider)

    result = runner.invoke(single_command_app(main.restart_command), ["all"])

    assert result.exit_code == 0
    assert "Restart failed api: api (#1): process not found" in result.output
    assert "Restarted 1 online processes, 1 failed" in result.output


def test_restart_nothing_to_do(monkeypatch, make_snapshot, fake_provider):
    no_logging(monkeypatch)
    provider = fake_provider([make_snapshot(1, "api", status="stopped")])
    monkeypatch.setattr(main, "Pm2Client", lambda: provider)

    result = runner.invoke(single_command_app(main.restart_command), ["api"])
    assert result.exit_code == 0
    assert "No online processes found" in result.output


def test_restart_connect_failure_exits_2(monkeypatch, fake_provider):
    no_logging(monkeypatch)

    class Unreachable(fake_provider):
        def connect(self):
            raise InventoryError("PM2 executable not found: pm2")

    monkeypatch.setattr(main, "Pm2Client", lambda: Unreachable())
    result = runner.invoke(single_command_app(main.restart_command), ["all"])
    assert result.exit_code == 2


def test_paths_table(monkeypatch, tmp_path):
    no_logging(monkeypatch)
    conf = tmp_path / "default"
    conf.write_text(SAMPLE_NGINX, encoding="utf-8")
    monkeypatch.setattr(main, "TopologyResolver", lambda: main_resolver(conf))

    result = runner.invoke(single_command_app(main.paths_command), ["api"])
    assert result.exit_code == 0
    assert "api" in result.output
    assert "billing" not in result.output


def test_paths_not_found_exits_1(monkeypatch, tmp_path):
    no_logging(monkeypatch)
    conf = tmp_path / "default"
    conf.write_text(SAMPLE_NGINX, encoding="utf-8")
    monkeypatch.setattr(main, "TopologyResolver", lambda: main_resolver(conf))

    result = runner.invoke(single_command_app(main.paths_command), ["ghost"])
    assert result.exit_code == 1
    assert "ghost <= Service Not Found" in result.output


def test_monitor_rejects_unknown_mode(monkeypatch):
    no_logging(monkeypatch)
    result = runner.invoke(single_command_app(main.monitor_command), ["all", "logs"])
    assert result.exit_code == 1


def test_monitor_env_mode_not_found(monkeypatch, make_snapshot, fake_provider):
    no_logging(monkeypatch)
    monkeypatch.setattr(main, "Pm2Client", lambda: fake_provider([make_snapshot(0, "web")]))

    result = runner.invoke(single_command_app(main.monitor_command), ["ghost", "env"])
    assert result.exit_code == 1
    assert "not found" in result.output


def main_resolver(path):
    from pm2monitor.topology import TopologyResolver

    return TopologyResolver(path=path)
