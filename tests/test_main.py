import csv
import logging
import signal
import time
import pytest
from pathlib import Path

from photosort import config, main
from photosort.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def restore_logging():
    """main() reconfigures the root logger; put it back for the next tests."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def inbox(tmp_path, make_jpeg):
    src = tmp_path / "inbox"
    make_jpeg(src / "IMG_2020-05-01_1200.jpg", exif_datetime="2019:06:15 10:00:00")
    make_jpeg(src / "beach.jpg", exif_datetime="2021:08:02 09:30:00")
    return src


def _template(tmp_path):
    return str(tmp_path / "out") + "/:date.year:/:date.month:/:file.name:"


def test_cli_sort_with_copy(tmp_path, inbox, no_birth_time):
    rc = main.main(["sort", "-t", _template(tmp_path), "-r", "copy", str(inbox)])

    assert rc == main.EXIT_OK
    dst = tmp_path / "out" / "2019" / "06" / "IMG_2020-05-01_1200.jpg"
    assert dst.is_file()
    assert not dst.is_symlink()
    assert dst.stat().st_ino != (inbox / "IMG_2020-05-01_1200.jpg").stat().st_ino


def test_cli_unknown_replicator(tmp_path, inbox):
    rc = main.main(["sort", "-t", _template(tmp_path), "-r", "teleport", str(inbox)])

    assert rc == main.EXIT_CONFIG_ERROR
    assert not (tmp_path / "out").exists()


def test_cli_bad_template(tmp_path, inbox):
    rc = main.main(["sort", "-t", str(tmp_path / "out") + "/:date.year", str(inbox)])

    assert rc == main.EXIT_CONFIG_ERROR
    assert not (tmp_path / "out").exists()


def test_cli_requires_template_and_sources(tmp_path, inbox):
    assert main.main(["sort", str(inbox)]) == main.EXIT_CONFIG_ERROR
    assert main.main(["sort", "-t", _template(tmp_path)]) == main.EXIT_CONFIG_ERROR


def test_cli_failures_exit_one_and_write_report(tmp_path, inbox, no_birth_time):
    (inbox / "notes.txt").write_text("no date")
    report_csv = tmp_path / "reports" / "run.csv"

    rc = main.main(["sort", "-t", _template(tmp_path), "--report-csv", str(report_csv), str(inbox)])

    assert rc == main.EXIT_FAILURES
    with open(report_csv, newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    statuses = {Path(r["Source Path"]).name: r["Status"] for r in rows}
    assert statuses == {
        "IMG_2020-05-01_1200.jpg": "replicated",
        "beach.jpg": "replicated",
        "notes.txt": "failed",
    }


def test_cli_log_file(tmp_path, inbox, no_birth_time):
    log_file = tmp_path / "logs" / "photosort.log"
    rc = main.main(["sort", "-t", _template(tmp_path), "--log-file", str(log_file), str(inbox)])

    assert rc == main.EXIT_OK
    assert "photosort started" in log_file.read_text(encoding="utf-8")


def test_config_file_with_cli_override(tmp_path, inbox, no_birth_time):
    cfg = tmp_path / "photosort.toml"
    cfg.write_text(
        f'template = "{tmp_path.as_posix()}/cfg/:file.name:"\n'
        'sources = ["inbox"]\n'
        'replicators = ["softlink"]\n'
    )

    assert main.main(["sort", "-c", str(cfg)]) == main.EXIT_OK
    assert (tmp_path / "cfg" / "beach.jpg").is_symlink()

    # Command line wins over the config file
    assert main.main(["sort", "-c", str(cfg), "-r", "copy", "-t", _template(tmp_path)]) == main.EXIT_OK
    copied = tmp_path / "out" / "2021" / "08" / "beach.jpg"
    assert copied.is_file() and not copied.is_symlink()


def test_build_settings_defaults(tmp_path):
    args = main.parse_args(["watch", "-t", "/out/:file.name:", str(tmp_path)])
    settings = main.build_settings(args)

    assert settings.replicators == config.DEFAULT_REPLICATORS
    assert settings.overwrite is False
    assert settings.settle_delay == config.DEFAULT_SETTLE_DELAY
    assert settings.sources == [tmp_path]


def test_build_settings_rejects_bad_values(tmp_path):
    args = main.parse_args(["sort", "-t", "/out/:file.name:", "-j", "0", str(tmp_path)])
    with pytest.raises(ConfigurationError, match="max-workers"):
        main.build_settings(args)

    args = main.parse_args(["sort", "-t", "/out/:file.name:", "--ignore", "([", str(tmp_path)])
    with pytest.raises(ConfigurationError, match="ignore regex"):
        main.build_settings(args)


# --- config file loading ---

def test_load_config_file(tmp_path):
    cfg = tmp_path / "conf" / "photosort.toml"
    cfg.parent.mkdir()
    cfg.write_text(
        'template = "/photos/:date.year:/:file.name:"\n'
        'sources = ["inbox", "/abs/camera"]\n'
        'replicators = ["copy"]\n'
        'overwrite = true\n'
        'ignore_regex = "\\\\.tmp$"\n'
        'max_workers = 4\n'
        'settle_delay = 5\n'
    )

    settings = config.load_config_file(cfg)

    assert settings.template == "/photos/:date.year:/:file.name:"
    assert settings.sources == [cfg.parent / "inbox", Path("/abs/camera")]
    assert settings.replicators == ["copy"]
    assert settings.overwrite is True
    assert settings.ignore_regex.search("x.tmp")
    assert settings.max_workers == 4
    assert settings.settle_delay == 5.0


@pytest.mark.parametrize(
    "content,message",
    [
        ('templat = "/x"\n', "unknown config key"),
        ('overwrite = "yes"\n', "wrong type"),
        ('max_workers = true\n', "wrong type"),
        ('sources = "inbox"\n', "wrong type"),
        ('template = "/x\n', "invalid TOML"),
        ('ignore_regex = "(["\n', "invalid ignore regex"),
    ],
)
def test_load_config_file_errors(tmp_path, content, message):
    cfg = tmp_path / "photosort.toml"
    cfg.write_text(content)
    with pytest.raises(ConfigurationError, match=message):
        config.load_config_file(cfg)


def test_load_missing_config_file(tmp_path):
    with pytest.raises(ConfigurationError, match="cannot read config file"):
        config.load_config_file(tmp_path / "missing.toml")


# --- watch command ---

def _fake_watch_sources(calls, files, signum):
    """Yields `files`, then delivers `signum` and waits for the stop event."""

    def watch_sources(sources, stop_event, settle_delay=config.DEFAULT_SETTLE_DELAY):
        calls.append((list(sources), settle_delay))
        for path in files:
            yield path
        signal.raise_signal(signum)
        deadline = time.monotonic() + 5
        while not stop_event.is_set() and time.monotonic() < deadline:
            time.sleep(0.01)
        # Never sorted: the stop request is honoured first
        yield files[0].parent / "after_stop.jpg"

    return watch_sources


def test_cli_watch_sorts_new_files_until_sigint(tmp_path, inbox, no_birth_time, monkeypatch):
    calls = []
    files = [inbox / "IMG_2020-05-01_1200.jpg", inbox / "beach.jpg"]
    monkeypatch.setattr(main, "watch_sources", _fake_watch_sources(calls, files, signal.SIGINT))
    (inbox / "after_stop.jpg").write_bytes(b"x")
    previous = signal.getsignal(signal.SIGINT)
    log_file = tmp_path / "watch.log"

    rc = main.main(["watch", "-t", _template(tmp_path), "--settle-delay", "0.5",
                    "--log-file", str(log_file), str(inbox)])

    assert rc == main.EXIT_OK
    assert calls == [([inbox], 0.5)]
    assert (tmp_path / "out" / "2019" / "06" / "IMG_2020-05-01_1200.jpg").is_file()
    assert (tmp_path / "out" / "2021" / "08" / "beach.jpg").is_file()
    assert not list((tmp_path / "out").rglob("after_stop.jpg"))
    assert signal.getsignal(signal.SIGINT) is previous

    log = log_file.read_text(encoding="utf-8")
    assert f"Received signal {int(signal.SIGINT)}" in log
    assert "Sorted 2 files: 2 replicated" in log


def test_cli_watch_failures_exit_one_on_sigterm(tmp_path, inbox, no_birth_time, monkeypatch):
    notes = inbox / "notes.txt"
    notes.write_text("no date")
    monkeypatch.setattr(main, "watch_sources", _fake_watch_sources([], [notes], signal.SIGTERM))
    previous = signal.getsignal(signal.SIGTERM)
    log_file = tmp_path / "watch.log"

    rc = main.main(["watch", "-t", _template(tmp_path), "--log-file", str(log_file), str(inbox)])

    assert rc == main.EXIT_FAILURES
    assert signal.getsignal(signal.SIGTERM) is previous
    log = log_file.read_text(encoding="utf-8")
    assert "1 failed" in log
    assert f"{notes}: failed to render variable 'date.year'" in log


def test_cli_watch_missing_source_is_config_error(tmp_path):
    rc = main.main(["watch", "-t", _template(tmp_path), str(tmp_path / "missing")])
    assert rc == main.EXIT_CONFIG_ERROR
