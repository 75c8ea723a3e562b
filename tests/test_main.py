# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Tests for the application entry point.
"""

import sys
from unittest import mock

import pytest
import yaml

from cuesync import main as cuesync_main
from cuesync.errors import RecognitionUnavailable
from cuesync.frame_clock import FrameClock
from cuesync.main import CuesyncApp
from cuesync.scheduler import ManualScheduler
from cuesync.session import PrompterSession


def test_save_config_writes_cli_options(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    argv = ["cuesync", "--port", "9001", "--host", "0.0.0.0", "--save-config"]
    with mock.patch.object(sys, "argv", argv):
        cuesync_main.main()

    saved = yaml.safe_load((tmp_path / ".cuesync.yaml").read_text())
    assert saved["port"] == 9001
    assert saved["host"] == "0.0.0.0"
    assert saved["scroll"]["speed"] == 50.0


def test_missing_script_file_exits(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    argv = ["cuesync", str(tmp_path / "missing.md"), "--no-voice"]
    with mock.patch.object(sys, "argv", argv):
        with pytest.raises(SystemExit) as exc_info:
            cuesync_main.main()
    assert exc_info.value.code == 1


@pytest.mark.asyncio
async def test_voice_failure_falls_back_to_manual(capsys):
    app = CuesyncApp(script_text="one\ntwo")
    app.session = PrompterSession(app.script_text, scheduler=ManualScheduler(),
                                  frame_clock=FrameClock())
    source = mock.Mock()
    source.start_listening.side_effect = RecognitionUnavailable("no model")
    try:
        with mock.patch.object(cuesync_main, "create_microphone_source", return_value=source):
            await app._start_voice()
        assert not app.session.is_listening
        assert "continuing with manual scrolling" in capsys.readouterr().out
    finally:
        await app.stop()
    assert app.session is None
