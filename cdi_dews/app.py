import asyncio
import threading
import time
from contextlib import contextmanager

import dash
from dash import ALL, Input, Output, State, ctx, dash_table, dcc, html
from flask import Flask

from . import config
from .api import api
from .charts import series_figure
from .classification import CLASS_COLORS, PHASE_COLORS, legend_items
from .controller import TABS, DashboardController
from .geo import FeatureCollectionCache
from .map_renderer import MapRenderer
from .models import ROLE_LABELS, ROLES
from .predictions import FORECAST_MONTHS, build_source, month_label
from .regions import REGION_WOREDAS, REGIONS, region_label, region_options
from .sessions import SessionStore
from .translate import translate_headline
from .visibility import compare_targets

# ======================
# Setup
# ======================
server = Flask(__name__)
server.config["GOOGLE_TRANSLATE_API_KEY"] = config.GOOGLE_TRANSLATE_API_KEY
server.register_blueprint(api)

app = dash.Dash(
    __name__, server=server,
    suppress_callback_exceptions=True,
    assets_folder=str(config.ASSETS_DIR),
    assets_url_path="/assets",
)
app.title = config.APP_TITLE

FEATURES = FeatureCollectionCache()
_STORE = None


class ControllerEntry:
    """One token's controller plus the lock its callbacks run under."""

    def __init__(self):
        self.controller = None
        self.lock = threading.RLock()
        self.last_used = time.monotonic()
        self.closed = False

    def close(self):
        with self.lock:
            if self.controller is not None:
                self.controller.teardown()
            self.controller = None
            self.closed = True


# session token -> ControllerEntry
CONTROLLERS = {}
_CONTROLLERS_LOCK = threading.Lock()


def session_store() -> SessionStore:
    global _STORE
    if _STORE is None:
        _STORE = SessionStore()
        server.config["SESSION_STORE"] = _STORE
    return _STORE


def use_session_store(store: SessionStore):
    global _STORE
    _STORE = store
    server.config["SESSION_STORE"] = store


def _entry_for(token):
    session = session_store().get_session(token)
    if session is None:
        drop_controller(token)
        return None

    with _CONTROLLERS_LOCK:
        entry = CONTROLLERS.get(token)
        if entry is None:
            entry = CONTROLLERS[token] = ControllerEntry()
        entry.last_used = time.monotonic()

    # first callback for a token builds the controller, the others wait for it
    with entry.lock:
        if entry.closed:
            return None
        if entry.controller is None:
            ctl = DashboardController(source=build_source(), renderer=MapRenderer(FEATURES))
            asyncio.run(ctl.load_session(session))
            entry.controller = ctl

    evict_idle()
    return entry


def get_controller(token):
    """Controller for a live session token, created (and loaded) on first use."""
    entry = _entry_for(token)
    return entry.controller if entry is not None else None


@contextmanager
def locked_controller(token):
    """Yield the token's controller with its lock held (``None`` if logged out)."""
    entry = _entry_for(token)
    if entry is None:
        yield None
        return
    with entry.lock:
        yield None if entry.closed else entry.controller


def drop_controller(token):
    with _CONTROLLERS_LOCK:
        entry = CONTROLLERS.pop(token, None)
    if entry is not None:
        entry.close()


def evict_idle(now=None) -> list:
    """Tear down controllers idle too long, then the oldest above the cap."""
    now = time.monotonic() if now is None else now
    with _CONTROLLERS_LOCK:
        idle = [t for t, e in CONTROLLERS.items()
                if now - e.last_used > config.CONTROLLER_IDLE_SECONDS]
        rest = sorted((t for t in CONTROLLERS if t not in idle),
                      key=lambda t: CONTROLLERS[t].last_used)
        overflow = len(rest) - config.MAX_CONTROLLERS
        evicted = idle + (rest[:overflow] if overflow > 0 else [])
        entries = [CONTROLLERS.pop(t) for t in evicted]

    for entry in entries:
        entry.close()
    if evicted:
        print(f"[app] evicted {len(evicted)} idle dashboard(s)")
    return evicted


# ======================
# Layout helpers
# ======================
CARD_STYLE = {
    "background": "white", "border": "1px solid #eee", "borderRadius": "10px",
    "padding": "10px 12px", "boxShadow": "0 1px 6px rgba(0,0,0,0.05)",
}
HIDDEN = {"display": "none"}
SHOWN = {"display": "block"}
AUTH_STYLE = {"display": "flex", "gap": "16px", "flexWrap": "wrap", "padding": "24px", "maxWidth": "900px"}


def metric_card(title, value, color=None):
    return html.Div([
        html.Div(title, style={"fontSize": "12px", "color": "#6b7280"}),
        html.Div(value, style={"fontSize": "24px", "fontWeight": "bold", "color": color or "#111827"}),
    ], style={**CARD_STYLE, "flex": "1"})


def summary_panel(snap):
    phase_color = PHASE_COLORS[snap["phase"]]
    rows = [
        ("Month", snap["month_label"]),
        ("CDI", f"{snap['value']:.2f}"),
        ("Class", snap["class"]),
        ("Phase", snap["phase"]),
    ]
    return html.Div([
        html.Div([
            html.Span(label),
            html.Span(value, style={"fontWeight": "bold"}),
        ], style={
            "display": "flex", "justifyContent": "space-between",
            "color": phase_color if label == "Phase" else None,
        })
        for label, value in rows
    ], style={**CARD_STYLE, "fontSize": "13px"})


def legend_list(rows):
    if not rows:
        return html.P("No woreda boundaries loaded for this region.",
                      style={"fontStyle": "italic", "color": "#6b7280"})
    items = []
    for row in rows:
        items.append(html.Button(
            [
                html.Span(style={
                    "display": "inline-block", "width": "12px", "height": "12px",
                    "background": row["color"], "borderRadius": "3px", "marginRight": "8px",
                }),
                html.Span(row["name"], style={"fontWeight": "bold" if row["selected"] else "normal"}),
                html.Span(f"  {row['value']:.2f} · {row['class']}", style={"color": "#6b7280"}),
            ],
            id={"type": "legend-item", "index": row["name"]},
            n_clicks=0,
            style={
                "display": "block", "width": "100%", "textAlign": "left",
                "border": "1px solid #111827" if row["selected"] else "1px solid #eee",
                "background": "#f9fafb", "borderRadius": "6px",
                "padding": "4px 8px", "marginBottom": "4px", "cursor": "pointer",
            },
        ))
    swatches = html.Div([
        html.Span([
            html.Span(style={"display": "inline-block", "width": "10px", "height": "10px",
                             "background": color, "marginRight": "4px"}),
            label,
        ], style={"marginRight": "10px", "fontSize": "11px"})
        for label, color in legend_items()
    ], style={"marginTop": "6px"})
    return html.Div(items + [swatches])


def popup_panel(popup):
    if not popup:
        return html.Div("Click a woreda on the map for details.",
                        style={"fontSize": "12px", "color": "#6b7280"})
    return html.Div([
        html.H6(popup["name"], style={"margin": "0 0 6px 0"}),
        html.Div(f"CDI: {popup['value']:.2f}"),
        html.Div(f"Class: {popup['class']}", style={"color": CLASS_COLORS[popup["class"]]}),
        html.Div(f"Phase: {popup['phase']}", style={"color": PHASE_COLORS[popup["phase"]]}),
    ], style={**CARD_STYLE, "fontSize": "13px"})


def comparison_table(rows, key, label):
    return dash_table.DataTable(
        columns=[
            {"name": label, "id": key},
            {"name": "CDI", "id": "value", "type": "numeric", "format": {"specifier": ".2f"}},
            {"name": "Class", "id": "class"},
            {"name": "Phase", "id": "phase"},
        ],
        data=rows,
        style_as_list_view=True,
        style_cell={"padding": "6px", "fontSize": 12, "textAlign": "left"},
        style_header={"fontWeight": "bold"},
        style_data_conditional=[
            {"if": {"filter_query": f'{{phase}} = "{phase}"', "column_id": "phase"}, "color": color}
            for phase, color in PHASE_COLORS.items()
        ],
    )


HELP_SECTIONS = [
    ("Quick actions", [
        "Pick a region and woreda (if your role permits).",
        "Move the month slider through the 12 forecast months.",
        "Click a woreda on the map or in the list beside it.",
        "Review the CDI value, class and phase.",
    ]),
    ("Phases", [
        "Watch: Normal / No drought baseline.",
        "Warn: Moderate or Severe drought emerging.",
        "Alert: Extreme drought conditions.",
        "Warn and Alert trigger a (mock) e-mail alert.",
    ]),
    ("Roles", [
        "Admin: all regions and woredas, region and woreda comparisons.",
        "Regional officer: all woredas in the assigned region.",
        "Woreda officer: only the assigned woreda.",
    ]),
    ("Map", [
        "The map is limited to the selected region; everything outside is masked.",
        "Selecting a woreda highlights it, dims the rest and zooms to it.",
        "If the map shows only base tiles, the region's GeoJSON could not be loaded.",
    ]),
]


def help_tab():
    return html.Div([
        html.Div([
            html.H5(title),
            html.Ul([html.Li(item) for item in items]),
        ], style={**CARD_STYLE, "marginBottom": "12px"})
        for title, items in HELP_SECTIONS
    ], style={"padding": "12px", "maxWidth": "900px"})


auth_panel = html.Div(id="auth-panel", children=[
    html.Div([
        html.H4("Login"),
        dcc.Input(id="login-email", type="email", placeholder="Email",
                  style={"width": "100%", "marginBottom": "8px"}),
        html.Button("Sign in", id="login-btn", n_clicks=0),
    ], style={**CARD_STYLE, "flex": "1"}),
    html.Div([
        html.H4("Register"),
        dcc.Input(id="reg-name", placeholder="Name", style={"width": "100%", "marginBottom": "6px"}),
        dcc.Input(id="reg-email", type="email", placeholder="Email",
                  style={"width": "100%", "marginBottom": "6px"}),
        dcc.Dropdown(id="reg-role", value="regional_officer", clearable=False,
                     options=[{"label": ROLE_LABELS[r], "value": r} for r in ROLES]),
        dcc.Dropdown(id="reg-region", value=REGIONS[0], clearable=False, options=region_options(),
                     style={"marginTop": "6px"}),
        dcc.Dropdown(id="reg-woreda", placeholder="Woreda (woreda officers)",
                     style={"marginTop": "6px"}),
        html.Button("Register", id="register-btn", n_clicks=0, style={"marginTop": "8px"}),
    ], style={**CARD_STYLE, "flex": "1"}),
    html.Div(id="auth-error", style={"color": "#dc2626", "width": "100%"}),
], style=AUTH_STYLE)


dashboard_tab = html.Div([
    html.Div([
        # === Map + slider
        html.Div([
            dcc.Graph(id="drought-map", config={"displayModeBar": False}),
            html.Div([
                html.Div([html.Span("Forecast Month"), html.Span(id="month-label")],
                         style={"display": "flex", "justifyContent": "space-between", "fontSize": "13px"}),
                dcc.Slider(
                    id="month-slider", min=0, max=FORECAST_MONTHS - 1, step=1, value=0,
                    marks={0: month_label(0), FORECAST_MONTHS - 1: month_label(FORECAST_MONTHS - 1)},
                ),
                html.Div(id="accuracy-note", style={"fontSize": "11px", "color": "#6b7280"}),
            ], style={**CARD_STYLE, "marginTop": "12px"}),
        ], style={"width": "55%", "display": "inline-block", "verticalAlign": "top", "paddingRight": "8px"}),

        # === Selectors, summary, legend
        html.Div([
            html.Div([
                html.Label("Region"),
                dcc.Dropdown(id="region-select", clearable=False),
                html.Label("Woreda", style={"marginTop": "8px"}),
                dcc.Dropdown(id="woreda-select", placeholder="Select"),
            ], style={**CARD_STYLE, "marginBottom": "12px"}),
            html.Div(id="summary-panel", style={"marginBottom": "12px"}),
            html.Div("E-mail alerts auto-send (mock) when the phase is Warn or Alert.",
                     style={"fontSize": "11px", "color": "#6b7280", "marginBottom": "12px"}),
            html.Div(id="popup-panel", style={"marginBottom": "12px"}),
            html.Div(id="legend-list"),
        ], style={"width": "43%", "display": "inline-block", "verticalAlign": "top"}),
    ], style={"padding": "0 12px"}),

    html.H5("Key Metrics", style={"margin": "16px 12px 8px 12px"}),
    html.Div(id="metric-cards", style={"display": "flex", "gap": "12px", "padding": "0 12px"}),

    html.Div([dcc.Graph(id="series-chart", config={"displayModeBar": False})],
             style={"padding": "12px"}),

    # === Role-gated comparison
    html.Div(id="comparison-card", children=[
        html.H5(id="comparison-title"),
        html.Div([
            dcc.RadioItems(id="compare-mode", value="regions", inline=True,
                           options=[{"label": "Regions", "value": "regions"},
                                    {"label": "Woredas", "value": "woredas"}]),
            dcc.Dropdown(id="compare-region", value=REGIONS[0], clearable=False,
                         options=region_options(), style={"width": "200px"}),
        ], style={"display": "flex", "gap": "16px", "alignItems": "center"}),
        html.Div(id="comparison-body", style={"marginTop": "8px"}),
        html.P("Values are mock predictions until the forecast API is connected.",
               style={"fontSize": "10px", "color": "#6b7280"}),
    ], style={**CARD_STYLE, "margin": "12px"}),
])


app.layout = html.Div([
    dcc.Store(id="session-token", storage_type="local"),

    # === Header
    html.Div([
        html.H3(id="headline", children=config.APP_TITLE, style={"margin": 0}),
        html.Div([
            dcc.Dropdown(id="lang-select", value="en", clearable=False, style={"width": "140px"},
                         options=[{"label": v, "value": k} for k, v in config.LANGUAGES.items()]),
            html.Span(id="user-label", style={"fontSize": "12px"}),
            html.Button("Logout", id="logout-btn", n_clicks=0),
        ], style={"display": "flex", "gap": "12px", "alignItems": "center"}),
    ], style={"display": "flex", "justifyContent": "space-between", "alignItems": "center",
              "padding": "12px", "borderBottom": "1px solid #eee"}),

    auth_panel,

    html.Div(id="dashboard-panel", children=[
        html.P("Interactive drought monitoring with role-based geographic visibility and CDI predictions.",
               style={"margin": "8px 12px", "color": "#6b7280"}),
        dcc.Tabs(id="main-tabs", value="Dashboard", children=[
            dcc.Tab(label="Dashboard", value="Dashboard", children=[dashboard_tab]),
            dcc.Tab(label="Help", value="Help", children=[help_tab()]),
        ]),
    ]),
])


# ======================
# Callbacks
# ======================
# ---- Login / register / logout
@app.callback(
    Output("session-token", "data"),
    Output("auth-error", "children"),
    Input("login-btn", "n_clicks"),
    Input("register-btn", "n_clicks"),
    Input("logout-btn", "n_clicks"),
    State("login-email", "value"),
    State("reg-name", "value"),
    State("reg-email", "value"),
    State("reg-role", "value"),
    State("reg-region", "value"),
    State("reg-woreda", "value"),
    State("session-token", "data"),
    prevent_initial_call=True,
)
def handle_auth(_login, _register, _logout, login_email, name, reg_email, role, region, woreda, token):
    store = session_store()
    trigger = ctx.triggered_id

    if trigger == "logout-btn":
        store.logout(token)
        drop_controller(token)
        return None, ""

    if trigger == "login-btn":
        session = store.login_by_email(login_email)
        if session is None:
            return dash.no_update, "No user registered with that email."
        return session.token, ""

    if trigger == "register-btn":
        session, error = store.register_user(name, reg_email, role, region, woreda)
        if error:
            return dash.no_update, error
        return session.token, ""

    return dash.no_update, dash.no_update


@app.callback(
    Output("reg-woreda", "options"),
    Output("reg-woreda", "disabled"),
    Input("reg-region", "value"),
    Input("reg-role", "value"),
)
def update_register_woredas(region, role):
    options = [{"label": w, "value": w} for w in REGION_WOREDAS.get(region, [])]
    return options, role != "woreda_officer"


# ---- Shell: which panel, which regions
LOGGED_OUT_SHELL = (AUTH_STYLE, HIDDEN, "", HIDDEN,
                    [], None, True, HIDDEN, "", HIDDEN, True, REGIONS[0], TABS[0])


def shell_view(ctl):
    user = ctl.user
    targets = compare_targets(user)
    regions = ctl.region_choices()
    show_compare = targets["regions"] or targets["woredas"]
    title = "Regional & Woreda Comparison" if targets["regions"] else "Woreda Comparison"
    return (
        HIDDEN, SHOWN,
        f"{user.name} · {ROLE_LABELS.get(user.role, user.role)} · Region: {region_label(ctl.region)}",
        SHOWN,
        region_options(regions), ctl.region, len(regions) < 2,
        {**CARD_STYLE, "margin": "12px"} if show_compare else HIDDEN,
        title,
        SHOWN if targets["regions"] else HIDDEN,
        not targets["pick_region"],
        ctl.comparison_region(),
        ctl.active_tab,
    )


@app.callback(
    Output("auth-panel", "style"),
    Output("dashboard-panel", "style"),
    Output("user-label", "children"),
    Output("logout-btn", "style"),
    Output("region-select", "options"),
    Output("region-select", "value"),
    Output("region-select", "disabled"),
    Output("comparison-card", "style"),
    Output("comparison-title", "children"),
    Output("compare-mode", "style"),
    Output("compare-region", "disabled"),
    Output("compare-region", "value"),
    Output("main-tabs", "value"),
    Input("session-token", "data"),
)
def render_shell(token):
    with locked_controller(token) as ctl:
        if ctl is None:
            return LOGGED_OUT_SHELL
        return shell_view(ctl)


# ---- Region / woreda / map click / legend click
@app.callback(
    Output("woreda-select", "options"),
    Output("woreda-select", "value"),
    Output("popup-panel", "children"),
    Input("region-select", "value"),
    Input("woreda-select", "value"),
    Input("drought-map", "clickData"),
    Input({"type": "legend-item", "index": ALL}, "n_clicks"),
    State("session-token", "data"),
)
def sync_selection(region, woreda, click_data, _legend_clicks, token):
    with locked_controller(token) as ctl:
        if ctl is None:
            return [], None, popup_panel(None)

        trigger = ctx.triggered_id
        popup = ctl.renderer.last_popup if ctl.renderer is not None else None

        if trigger == "region-select" and region and region != ctl.region:
            asyncio.run(ctl.select_region(region))
        elif trigger == "woreda-select" and woreda != ctl.woreda:
            asyncio.run(ctl.select_woreda(woreda))
        elif trigger == "drought-map" and click_data:
            point = (click_data.get("points") or [{}])[0]
            custom = point.get("customdata") or []
            if custom:
                popup = asyncio.run(ctl.click_feature(custom[0]))
        elif isinstance(trigger, dict) and trigger.get("type") == "legend-item":
            # freshly rendered legend buttons report n_clicks=0
            if ctx.triggered and ctx.triggered[0]["value"]:
                popup = asyncio.run(ctl.click_feature(trigger["index"]))

        options = [{"label": w, "value": w} for w in ctl.woreda_choices()]
        return options, ctl.woreda, popup_panel(popup)


# ---- Everything that depends on the selection + month
def dashboard_view(ctl, trigger=None, month_index=0, compare_mode=None, compare_region=None, tab=None):
    """Apply the triggering input to ``ctl`` and build the dashboard outputs.

    Nothing is rebuilt while another tab is showing.
    """
    if tab:
        ctl.set_tab(tab)
    if ctl.active_tab != "Dashboard":
        raise dash.exceptions.PreventUpdate

    if trigger == "compare-mode" and compare_mode != ctl.compare_mode:
        asyncio.run(ctl.set_compare_mode(compare_mode))
    elif trigger == "compare-region" and compare_region != ctl.compare_region:
        asyncio.run(ctl.set_compare_region(compare_region))
    ctl.set_month(month_index or 0)

    snap = ctl.current()
    phase_color = PHASE_COLORS[snap["phase"]]
    metrics = [
        metric_card("Current CDI", f"{snap['value']:.2f}"),
        metric_card("Classification", snap["class"], CLASS_COLORS[snap["class"]]),
        metric_card("Phase", snap["phase"], phase_color),
    ]

    title = f"{region_label(ctl.region)}{' / ' + ctl.woreda if ctl.woreda else ''}: 12-month CDI forecast"
    targets = compare_targets(ctl.user)
    if targets["regions"] and ctl.compare_mode == "regions":
        body = comparison_table(ctl.region_rows(), "region", "Region")
    elif targets["woredas"]:
        body = comparison_table(ctl.woreda_rows(), "woreda", "Woreda")
    else:
        body = None
    if ctl.comparison_loading:
        body = html.P("Loading comparison...")

    return (
        ctl.renderer.figure(),
        summary_panel(snap),
        metrics,
        series_figure(ctl.series, ctl.month_index, title=title),
        legend_list(ctl.renderer.legend()),
        snap["month_label"],
        f"Nominal forecast accuracy: {snap['accuracy']}%",
        body,
    )


@app.callback(
    Output("drought-map", "figure"),
    Output("summary-panel", "children"),
    Output("metric-cards", "children"),
    Output("series-chart", "figure"),
    Output("legend-list", "children"),
    Output("month-label", "children"),
    Output("accuracy-note", "children"),
    Output("comparison-body", "children"),
    Input("woreda-select", "value"),
    Input("month-slider", "value"),
    Input("compare-mode", "value"),
    Input("compare-region", "value"),
    Input("main-tabs", "value"),
    State("session-token", "data"),
)
def render_dashboard(_woreda, month_index, compare_mode, compare_region, tab, token):
    with locked_controller(token) as ctl:
        if ctl is None:
            raise dash.exceptions.PreventUpdate
        return dashboard_view(ctl, ctx.triggered_id, month_index, compare_mode, compare_region, tab)


# ---- Headline translation
@app.callback(
    Output("headline", "children"),
    Input("lang-select", "value"),
)
def translate_title(lang):
    return translate_headline(config.APP_TITLE, lang) or config.APP_TITLE


def main():
    session_store()
    app.run(debug=config.DEBUG, host=config.HOST, port=config.PORT)


# Run
if __name__ == "__main__":
    main()
