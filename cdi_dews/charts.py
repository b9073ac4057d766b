import plotly.graph_objects as go

from .classification import CLASS_COLORS, NO_DROUGHT, THRESHOLDS, classify
from .predictions import month_label

SERIES_LINE = "rgb(33,113,181)"
CURRENT_MARKER = "black"
GRID_COLOR = "rgba(0,0,0,0.08)"
Y_MIN, Y_MAX = -2.0, 1.5


def _hex_to_rgba(hex_color, alpha):
    h = hex_color.lstrip("#")
    r, g, b = (int(h[i:i + 2], 16) for i in (0, 2, 4))
    return f"rgba({r},{g},{b},{alpha})"


def series_figure(series, month_index, title="12-month CDI forecast", height=320):
    """
    Forecast series over the class bands:
      - background shaded per CDI class (Extreme at the bottom)
      - forecast line (blue)
      - selected month highlighted (black marker)
    """
    fig = go.Figure()
    if not series:
        fig.add_annotation(text="No forecast loaded", xref="paper", yref="paper",
                           x=0.5, y=0.5, showarrow=False, font=dict(color="gray"))
        fig.update_layout(title=title, height=height, paper_bgcolor="white", plot_bgcolor="white")
        return fig

    labels = [month_label(i) for i in range(len(series))]

    # Class bands
    lower = Y_MIN
    for upper, label in THRESHOLDS + [(Y_MAX, NO_DROUGHT)]:
        fig.add_shape(
            type="rect", xref="paper", x0=0, x1=1,
            yref="y", y0=lower, y1=upper,
            fillcolor=_hex_to_rgba(CLASS_COLORS[label], 0.12),
            line={"width": 0}, layer="below",
        )
        lower = upper

    fig.add_trace(go.Scatter(
        x=labels, y=series, mode="lines+markers", name="Forecast CDI",
        line=dict(color=SERIES_LINE, width=3),
        hovertemplate="<b>%{x}</b><br>CDI: %{y:.2f}<extra></extra>",
    ))

    if 0 <= month_index < len(series):
        value = series[month_index]
        fig.add_trace(go.Scatter(
            x=[labels[month_index]], y=[value], mode="markers", name="Selected month",
            marker=dict(size=14, color=CURRENT_MARKER, symbol="diamond"),
            hovertemplate=f"<b>%{{x}}</b><br>CDI: %{{y:.2f}}<br>{classify(value)}<extra></extra>",
        ))

    fig.update_xaxes(showgrid=True, gridcolor=GRID_COLOR)
    fig.update_yaxes(range=[Y_MIN, Y_MAX], dtick=0.5, showgrid=True, gridcolor=GRID_COLOR)
    fig.update_layout(
        title=title,
        xaxis_title="Forecast month",
        yaxis_title="CDI",
        height=height,
        margin=dict(t=60, r=30, l=60, b=50),
        legend=dict(orientation="h", yanchor="bottom", y=1.02, xanchor="left", x=0),
        paper_bgcolor="white",
        plot_bgcolor="white",
    )
    return fig
