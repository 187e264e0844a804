"""
Health snapshot: process figures come from one long-lived psutil.Process.
"""
from unittest.mock import MagicMock

import psutil

from webpilot import health


def fake_process(cpu=12.5, rss=64 * 1024 * 1024):
    proc = MagicMock(spec=psutil.Process)
    proc.memory_info.return_value = MagicMock(rss=rss)
    proc.cpu_percent.return_value = cpu
    proc.children.return_value = []
    return proc


class TestHealthSnapshot:
    def test_process_object_is_reused_between_snapshots(self):
        proc = health._proc

        health.get_health_snapshot()
        health.get_health_snapshot()

        assert health._proc is proc
        assert isinstance(proc, psutil.Process)

    def test_cpu_percent_is_sampled_on_the_shared_process(self, monkeypatch):
        proc = fake_process(cpu=12.5)
        monkeypatch.setattr(health, "_proc", proc)

        health.get_health_snapshot()
        snapshot = health.get_health_snapshot()

        assert proc.cpu_percent.call_count == 2
        proc.cpu_percent.assert_called_with(interval=None)
        assert snapshot["process"]["cpu_percent"] == 12.5
        assert snapshot["process"]["rss_mb"] == 64

    def test_browser_processes_are_counted_from_children(self, monkeypatch):
        chrome = MagicMock()
        chrome.name.return_value = "chrome-headless-shell"
        chrome.memory_info.return_value = MagicMock(rss=10 * 1024 * 1024)
        gone = MagicMock()
        gone.name.side_effect = psutil.NoSuchProcess(pid=4242)
        proc = fake_process()
        proc.children.return_value = [chrome, gone]
        monkeypatch.setattr(health, "_proc", proc)

        snapshot = health.get_health_snapshot([{"session_id": "default", "ready": True}])

        assert snapshot["process"]["browser_processes"] == {"count": 1, "rss_mb": 10}
        assert snapshot["browsers_ready"] == 1
        proc.children.assert_called_with(recursive=True)
