import json
import signal
import threading

from piko_poller import main as main_mod
from piko_poller.config import Config
from piko_poller.errors import TransportError
from piko_poller.logging import ConsoleLog, StructuredLog, get_logger
from piko_poller.services.field_schema import FIELDS
from piko_poller.services.state_store import StateStore
from piko_poller.tests.fakes import SAMPLE_XML, FakeTransport, ManualTimer


ConsoleLog(level="INFO", quiet=True).setup()
LOG = get_logger("test")


def _write_conf(tmp_path, extra=""):
    conf = tmp_path / "piko.conf"
    conf.write_text(
        "[server]\nhost = 192.168.0.50\n"
        f"[state]\npath = {tmp_path / 'state.db'}\n"
        "[logging]\nconsole_quiet = true\n" + extra
    )
    return str(conf)


def test_schema_command(capsys):
    assert main_mod.main(["schema"]) == 0
    out = capsys.readouterr().out
    assert out.startswith("|Id|Name|Value Type|xPath Value|xPath Unit|")
    assert "|measurements.ac_power|AC power|number|" in out


def test_simulate_command_json(tmp_path, capsys):
    doc = tmp_path / "all.xml"
    doc.write_bytes(SAMPLE_XML)
    conf = _write_conf(tmp_path)

    assert main_mod.main(["--config", conf, "--json", "simulate", "--document", str(doc)]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["connected"] is True
    values = {v["id"]: v for v in payload["values"]}
    assert values["measurements.ac_power"]["value"] == 2441.6
    assert values["measurements.ac_power"]["unit"] == "W"
    # simulation never touches the on-disk store
    assert not (tmp_path / "state.db").exists()


def test_simulate_missing_document(tmp_path, capsys):
    conf = _write_conf(tmp_path)
    assert main_mod.main(["--config", conf, "simulate", "--document", str(tmp_path / "x.xml")]) == 1
    assert "OFFLINE: TransportError" in capsys.readouterr().out


def test_invalid_host_is_config_error(tmp_path):
    conf = tmp_path / "bad.conf"
    conf.write_text("[server]\nhost = http://192.168.0.50\n")
    assert main_mod.main(["--config", str(conf), "--quiet", "poll"]) == main_mod.EXIT_CONFIG_ERROR


def test_maintain_db_command(tmp_path):
    conf = _write_conf(tmp_path)
    store = StateStore(path=tmp_path / "state.db")
    store.ensure_object_exists("never.written", {"name": "x"})
    store.close()

    assert main_mod.main(["--config", conf, "maintain-db", "--stale-days", "1", "--no-vacuum"]) == 0
    assert StateStore(path=tmp_path / "state.db").object_ids() == []


def test_run_service_gives_up(tmp_path, monkeypatch):
    monkeypatch.setattr(signal, "signal", lambda *args: None)
    conf = _write_conf(tmp_path, "[polling]\nfail_count = 0\n")
    app_cfg = Config.load(conf)
    store = StateStore(persist=False)
    transport = FakeTransport([TransportError("Connection refused")])

    code = main_mod.run_service(
        app_cfg,
        FIELDS,
        store,
        transport,
        StructuredLog(None),
        LOG,
        timer=ManualTimer(),
    )

    assert code == main_mod.EXIT_GAVE_UP
    assert transport.closed
    assert store.get_state("info.connection")["val"] is False


def test_run_service_stops_on_request(tmp_path, monkeypatch):
    monkeypatch.setattr(signal, "signal", lambda *args: None)
    app_cfg = Config.load(_write_conf(tmp_path))
    store = StateStore(persist=False)
    transport = FakeTransport([(200, SAMPLE_XML)])
    stop = threading.Event()
    stop.set()

    code = main_mod.run_service(
        app_cfg,
        FIELDS,
        store,
        transport,
        StructuredLog(None),
        LOG,
        timer=ManualTimer(),
        stop_event=stop,
    )

    assert code == 0
    assert store.get_state("measurements.ac_power")["val"] == 2441.6
    assert store.get_state("info.connection")["val"] is False


def test_run_service_crash_on_first_poll_cleans_up(tmp_path, monkeypatch):
    monkeypatch.setattr(signal, "signal", lambda *args: None)
    app_cfg = Config.load(_write_conf(tmp_path))
    store = StateStore(persist=False)
    transport = FakeTransport([RuntimeError("driver bug")])
    timer = ManualTimer()

    code = main_mod.run_service(
        app_cfg,
        FIELDS,
        store,
        transport,
        StructuredLog(None),
        LOG,
        timer=timer,
    )

    assert code == main_mod.EXIT_CRASHED
    assert transport.closed
    assert timer.pending == []
    assert store.get_state("info.connection")["val"] is False


def test_run_service_crash_on_timer_thread_exits_non_zero(tmp_path, monkeypatch):
    monkeypatch.setattr(signal, "signal", lambda *args: None)
    app_cfg = Config.load(_write_conf(tmp_path, "[polling]\ninterval_ms = 10\n"))
    store = StateStore(persist=False)
    transport = FakeTransport([(200, SAMPLE_XML), RuntimeError("driver bug")])

    # default timer: the second poll runs on the background scheduler
    code = main_mod.run_service(app_cfg, FIELDS, store, transport, StructuredLog(None), LOG)

    assert code == main_mod.EXIT_CRASHED
    assert len(transport.calls) == 2
    assert transport.closed
    assert store.get_state("measurements.ac_power")["val"] == 2441.6
    assert store.get_state("info.connection")["val"] is False


def test_bad_retention_is_config_error(tmp_path):
    conf = _write_conf(tmp_path, "[retention]\nstale_days = two\n")
    assert main_mod.main(["--config", conf, "--quiet", "maintain-db"]) == main_mod.EXIT_CONFIG_ERROR
