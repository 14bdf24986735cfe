from cdp_bootstrap import driver as driver_mod
from cdp_bootstrap.driver import CdpTargetDriver, DriverConfig


def test_start_counts_page_targets_across_window(monkeypatch):
    listings = {
        9000: [{"type": "page"}, {"type": "service_worker"}, {"type": "page"}],
        9001: [{"type": "page"}],
    }
    monkeypatch.setattr(driver_mod, "list_targets", lambda port, timeout_s: listings.get(port))
    drv = CdpTargetDriver(9000, window=3)

    assert drv.ports() == [9000, 9001, 9002, 9003]
    drv.start(DriverConfig(host_name="Cursor"))
    assert drv.get_connection_count() == 3
    assert drv.config.host_name == "Cursor"

    drv.stop()
    assert drv.get_connection_count() == 0


def test_is_available_probes_the_window(monkeypatch):
    monkeypatch.setattr(driver_mod, "probe", lambda port, timeout_s: port == 9002)
    assert CdpTargetDriver(9000, window=2).is_available() is True
    assert CdpTargetDriver(9000, window=1).is_available() is False


def test_counters_and_focus():
    drv = CdpTargetDriver()
    drv.summary.clicks = 4
    drv.summary.blocked = 1
    drv.away_actions = 2

    assert drv.get_session_summary().to_dict()["clicks"] == 4
    assert drv.reset_stats() == {"clicks": 4, "blocked": 1}
    assert drv.get_session_summary().clicks == 0
    assert drv.get_away_actions() == 2
    assert drv.get_away_actions() == 0
    drv.set_focus_state(False)
    assert drv.focused is False
