import asyncio
from concurrent.futures import ThreadPoolExecutor

import pytest
from dash.exceptions import PreventUpdate

from cdi_dews import app as dashboard
from cdi_dews import config
from cdi_dews.charts import series_figure
from cdi_dews.controller import DashboardController
from cdi_dews.map_renderer import DESTROYED, RENDERED
from cdi_dews.predictions import mock_series


@pytest.fixture
def wired(store):
    dashboard.use_session_store(store)
    yield store
    for token in list(dashboard.CONTROLLERS):
        dashboard.drop_controller(token)


def test_server_exposes_api(wired):
    resp = dashboard.server.test_client().get("/api/predictions?region=afar")
    assert resp.status_code == 200
    assert resp.get_json()["predictions"] == mock_series("afar")


def test_controller_per_session_token(wired):
    token = wired.login_by_email("afar.officer@example.com").token
    ctl = dashboard.get_controller(token)
    assert ctl is dashboard.get_controller(token)
    assert (ctl.region, ctl.woreda) == ("afar", "Elidar")
    assert ctl.renderer.state == RENDERED

    dashboard.drop_controller(token)
    assert token not in dashboard.CONTROLLERS
    assert ctl.renderer.state == DESTROYED


def test_logged_out_token_has_no_controller(wired):
    token = wired.login_by_email("admin@example.com").token
    assert dashboard.get_controller(token) is not None
    wired.logout(token)
    assert dashboard.get_controller(token) is None
    assert dashboard.get_controller(None) is None


def test_layout_helpers_render(wired):
    token = wired.login_by_email("admin@example.com").token
    ctl = dashboard.get_controller(token)
    assert dashboard.summary_panel(ctl.current()) is not None
    assert len(dashboard.legend_list(ctl.renderer.legend()).children) == 4
    table = dashboard.comparison_table(ctl.region_rows(), "region", "Region")
    assert [row["region"] for row in table.data] == ["Afar", "Somali"]
    assert dashboard.popup_panel(None).children.startswith("Click a woreda")


def test_series_chart_marks_selected_month():
    fig = series_figure(mock_series("somali"), 3)
    assert [t.name for t in fig.data] == ["Forecast CDI", "Selected month"]
    assert fig.data[1].y == (mock_series("somali")[3],)
    assert len(fig.layout.shapes) == 5

    empty = series_figure([], 0)
    assert len(empty.data) == 0


# ---------------- Controller registry ----------------
def test_concurrent_first_callbacks_share_one_controller(wired, monkeypatch):
    token = wired.login_by_email("admin@example.com").token
    created = []
    load_session = DashboardController.load_session

    async def slow_load(self, session):
        created.append(self)
        await asyncio.sleep(0.2)
        await load_session(self, session)

    monkeypatch.setattr(DashboardController, "load_session", slow_load)
    with ThreadPoolExecutor(max_workers=3) as pool:
        controllers = list(pool.map(lambda _: dashboard.get_controller(token), range(3)))

    assert len(created) == 1
    assert all(ctl is created[0] for ctl in controllers)
    assert list(dashboard.CONTROLLERS) == [token]


def test_callbacks_hold_the_controller_lock(wired):
    token = wired.login_by_email("admin@example.com").token
    with dashboard.locked_controller(token) as ctl:
        entry = dashboard.CONTROLLERS[token]
        assert ctl is entry.controller
        # a second thread cannot enter while the lock is held
        with ThreadPoolExecutor(max_workers=1) as pool:
            assert pool.submit(entry.lock.acquire, False).result() is False
    with dashboard.locked_controller(None) as ctl:
        assert ctl is None


def test_idle_controllers_are_evicted(wired):
    token = wired.login_by_email("afar.officer@example.com").token
    ctl = dashboard.get_controller(token)
    dashboard.CONTROLLERS[token].last_used -= config.CONTROLLER_IDLE_SECONDS + 1

    assert dashboard.evict_idle() == [token]
    assert token not in dashboard.CONTROLLERS
    assert ctl.renderer.state == DESTROYED

    # the next callback for a live session rebuilds it
    rebuilt = dashboard.get_controller(token)
    assert rebuilt is not ctl
    assert rebuilt.region == "afar"


def test_controller_count_is_capped(wired, monkeypatch):
    monkeypatch.setattr(config, "MAX_CONTROLLERS", 1)
    first = wired.login_by_email("admin@example.com").token
    second = wired.login_by_email("somali.officer@example.com").token
    old = dashboard.get_controller(first)
    dashboard.get_controller(second)

    assert list(dashboard.CONTROLLERS) == [second]
    assert old.renderer.state == DESTROYED


# ---------------- Tabs ----------------
def test_tab_value_reaches_controller(wired):
    token = wired.login_by_email("admin@example.com").token
    ctl = dashboard.get_controller(token)

    with pytest.raises(PreventUpdate):
        dashboard.dashboard_view(ctl, "main-tabs", tab="Help")
    assert ctl.active_tab == "Help"
    assert dashboard.shell_view(ctl)[-1] == "Help"

    outputs = dashboard.dashboard_view(ctl, "main-tabs", month_index=2, tab="Dashboard")
    assert ctl.active_tab == "Dashboard"
    assert outputs[5] == "Oct 2025"


def test_main_tabs_is_a_dashboard_input():
    inputs = [dep for cb in dashboard.app.callback_map.values() for dep in cb["inputs"]]
    assert {"id": "main-tabs", "property": "value"} in inputs
