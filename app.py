import time
from dataclasses import replace
from datetime import date

import streamlit as st
import streamlit.components.v1 as components
from aws_lambda_powertools import Logger
from botocore.exceptions import ClientError

from farmwatch.advice import NUTRIENT_TITLES, Nutrient, advice_for, fetch_latest_analysis, level_color, level_label
from farmwatch.auth import login, logout
from farmwatch.charts import PLOTLY_CONFIG, gauge_figure, group_figure, pins_figure
from farmwatch.config import Settings, load_settings
from farmwatch.export import CSV_MEDIA_TYPE, export_csv, export_filename, window_frame
from farmwatch.feed import EmptyFeedError, FeedClient, FeedError, FeedLoader
from farmwatch.metrics import (
    AIR_HUMIDITY,
    AIR_TEMPERATURE,
    ALL_METRICS,
    FLOAT_SWITCH,
    LIGHT,
    NITROGEN,
    PH,
    PHOSPHORUS,
    POTASSIUM,
    PRESSURE,
    SALINITY,
    SOIL_HUMIDITY,
    SOIL_TEMPERATURE,
    TIMESTAMP_KEY,
    WIND_SPEED,
    ChartGroup,
)
from farmwatch.models import ROLE_ADMIN, ROLE_USER, UserProfile
from farmwatch.pins import pins_for_user, pins_from_users
from farmwatch.stats import aggregate_buckets, default_bucket, metric_frame, summarize_window
from farmwatch.store import UserStore
from farmwatch.timeseries import (
    Reading,
    TimestampFormat,
    WindowNavigator,
    available_months,
    latest,
    newest_first,
)

logger = Logger(service="farmwatch")

GAUGE_ROWS = (
    ("Temperature & humidity", (AIR_TEMPERATURE, SOIL_TEMPERATURE, AIR_HUMIDITY, SOIL_HUMIDITY)),
    ("Soil", (PH, SALINITY, NITROGEN, PHOSPHORUS, POTASSIUM)),
    ("Other", (FLOAT_SWITCH, PRESSURE, LIGHT, WIND_SPEED)),
)


@st.cache_resource
def _store(_settings: Settings) -> UserStore:
    return UserStore.from_settings(_settings)


@st.cache_data(show_spinner=False)
def _fetch_rows(url: str | None, timeout_secs: int, user_agent: str, cache_epoch: int) -> list[dict]:
    # cache_epoch only partitions the cache so entries expire every FEED_CACHE_TTL_SECS
    return FeedClient(timeout_secs, user_agent).fetch_rows(url)


def _loader(settings: Settings) -> FeedLoader:
    loader = st.session_state.get("feed_loader")
    if loader is None:
        ttl = max(1, settings.feed_cache_ttl_secs)
        loader = FeedLoader(
            lambda url: _fetch_rows(url, settings.feed_timeout_secs, settings.user_agent, int(time.time()) // ttl)
        )
        st.session_state["feed_loader"] = loader
    return loader


def _load_readings(settings: Settings, profile: UserProfile) -> tuple[Reading, ...] | None:
    """Readings of the selected farm, fetched once per selection and kept in the session."""
    state = st.session_state
    if state.get("readings_selection") == profile.uid and state.get("readings") is not None:
        return state["readings"]

    loader = _loader(settings)
    with st.spinner("Loading sensor data..."):
        try:
            readings = loader.load(profile.uid, profile.googleSheet, profile.timestampFormat)
        except EmptyFeedError as exc:
            st.info(str(exc))
            return None
        except FeedError as exc:
            st.error(str(exc))
            return None
    if readings is None:
        # A newer selection superseded this fetch
        return None
    state["readings"] = readings
    state["readings_selection"] = profile.uid
    for key in [k for k in state.keys() if str(k).startswith("nav_")]:
        del state[key]
    return readings


def _navigator(page: str, readings: tuple[Reading, ...]) -> WindowNavigator:
    key = f"nav_{page}"
    nav = st.session_state.get(key)
    if nav is None or nav.all_readings is not readings:
        nav = WindowNavigator(readings)
        st.session_state[key] = nav
    return nav


def _reload_button() -> None:
    if st.sidebar.button("Reload sensor data"):
        _fetch_rows.clear()
        st.session_state["readings"] = None
        st.session_state["readings_selection"] = None


def _download_button(readings: tuple[Reading, ...] | list[Reading], nav: WindowNavigator) -> None:
    data = export_csv(readings)
    if data is None:
        return
    st.download_button(
        "Download CSV",
        data=data,
        file_name=export_filename(nav.window),
        mime=CSV_MEDIA_TYPE,
    )


def _fmt(value: float | None) -> str:
    return f"{value:.2f}" if value is not None else "—"


def render_home(store: UserStore, profile: UserProfile) -> None:
    st.header(profile.placeName or "My farm")
    c1, c2, c3 = st.columns(3)
    c1.metric("Farmer", profile.display_name)
    c2.metric("Plot", profile.placeNo or "—")
    c3.metric("Poles", str(profile.poles))

    if profile.map:
        components.iframe(profile.map, height=420)
    else:
        st.info("No map has been set for this farm yet.")

    try:
        farms = store.list_users_by_role(ROLE_USER)
    except (ClientError, RuntimeError) as exc:
        st.error(str(exc))
        farms = [profile]
    own_pins = pins_for_user(profile)
    if own_pins:
        st.subheader("Sensor poles")
        st.plotly_chart(pins_figure(pins_from_users(farms), highlight_uid=profile.uid), use_container_width=True, config=PLOTLY_CONFIG)


def render_dashboard(settings: Settings, profile: UserProfile) -> None:
    readings = _load_readings(settings, profile)
    if not readings:
        return
    current = latest(readings)
    if current is None:
        return
    st.caption(f"Latest reading: {current.timestamp or current.instant.strftime('%Y-%m-%d %H:%M')}")

    for title, metrics in GAUGE_ROWS:
        st.subheader(title)
        cols = st.columns(len(metrics))
        for col, metric in zip(cols, metrics):
            with col:
                st.plotly_chart(gauge_figure(metric, current.metric(metric.key)), use_container_width=True, config=PLOTLY_CONFIG)

    analysis = fetch_latest_analysis(FeedClient(settings.feed_timeout_secs, settings.user_agent), profile.googleSheetURL_AI)
    if analysis is None:
        return
    st.subheader("Soil analysis recommendations")
    cols = st.columns(len(Nutrient))
    for col, nutrient in zip(cols, Nutrient):
        level = analysis.level(nutrient)
        col.markdown(f"**{NUTRIENT_TITLES[nutrient]}**  \n:{level_color(level)}[{level_label(level)}]")
        col.caption(advice_for(nutrient, level) or "—")
    if analysis.TimeStamp:
        st.caption(f"Analysed at {analysis.TimeStamp}")


def render_charts(settings: Settings, profile: UserProfile) -> None:
    readings = _load_readings(settings, profile)
    if not readings:
        return
    nav = _navigator("charts", readings)

    row1 = st.columns(4)
    if row1[0].button("◀ Previous day"):
        nav.previous_day()
    if row1[1].button("Today"):
        nav.current_day()
    with row1[2]:
        disable_next = nav.anchor >= date.today()
        if st.button("Next day ▶", disabled=disable_next):
            nav.next_day()
    row2 = st.columns(4)
    if row2[0].button("◀ Previous week"):
        nav.previous_week()
    if row2[1].button("This week"):
        nav.current_week()
    if row2[2].button("◀ Previous month"):
        nav.previous_month()
    if row2[3].button("This month"):
        nav.current_month()

    window, shown = nav.window, nav.readings
    st.subheader(window.label)
    if not shown:
        st.info("No data for the selected period.")
        return
    st.caption(f"{len(shown)} readings")

    df = metric_frame(shown)
    span_days = (window.end - window.start).days + 1
    agg = aggregate_buckets(df, default_bucket(len(shown), span_days))
    for group in ChartGroup:
        st.plotly_chart(group_figure(agg, group, window), use_container_width=True, config=PLOTLY_CONFIG)

    st.subheader("Summary (selected period)")
    summary = summarize_window(df)
    st.dataframe(
        [
            {
                "Metric": f"{m.label} ({m.unit})" if m.unit else m.label,
                "Min": _fmt(summary[m.name]["min"]),
                "Max": _fmt(summary[m.name]["max"]),
                "Average": _fmt(summary[m.name]["avg"]),
                "Std": _fmt(summary[m.name]["std"]),
            }
            for m in ALL_METRICS
            if m.name in summary
        ],
        use_container_width=True,
        hide_index=True,
    )
    _download_button(shown, nav)


def render_table(settings: Settings, profile: UserProfile) -> None:
    readings = _load_readings(settings, profile)
    if not readings:
        return
    nav = _navigator("table", readings)
    months = available_months(readings)
    if not months:
        st.info("No data available.")
        return

    selected = st.selectbox(
        "Month",
        options=months,
        format_func=lambda ym: date(ym[0], ym[1], 1).strftime("%B %Y"),
    )
    nav.select_month(*selected)
    rows = newest_first(nav.readings)

    left, right = st.columns([3, 1])
    left.write(f"Showing **{len(rows)}** readings")
    with right:
        _download_button(rows, nav)

    if not rows:
        st.info("No data for the selected month.")
        return
    frame = window_frame(rows)
    frame[TIMESTAMP_KEY] = [r.instant.strftime("%d/%m/%Y %H:%M") for r in rows]
    labels = {m.key: f"{m.label} ({m.unit})" if m.unit else m.label for m in ALL_METRICS}
    labels[TIMESTAMP_KEY] = "Date/time"
    st.dataframe(frame.rename(columns=labels), use_container_width=True, hide_index=True)


def render_admin_map(store: UserStore) -> None:
    st.header("Farm map")
    try:
        farms = store.list_users_by_role(ROLE_USER)
    except (ClientError, RuntimeError) as exc:
        st.error(str(exc))
        return
    st.dataframe(
        [
            {"Farmer": u.display_name, "Plot": u.placeNo, "Place": u.placeName, "Poles": u.poles, "Email": u.email}
            for u in farms
        ],
        use_container_width=True,
        hide_index=True,
    )
    st.plotly_chart(pins_figure(pins_from_users(farms)), use_container_width=True, config=PLOTLY_CONFIG)


def _pick_farm(store: UserStore, label: str) -> UserProfile | None:
    try:
        farms = store.list_users_by_role(ROLE_USER)
    except (ClientError, RuntimeError) as exc:
        st.error(str(exc))
        return None
    if not farms:
        st.info("No farmers registered yet.")
        return None
    by_uid = {u.uid: u for u in farms}
    uid = st.selectbox(label, options=list(by_uid), format_func=lambda u: by_uid[u].display_name)
    if st.session_state.get("admin_selected_farm") != uid:
        # A different farm supersedes any fetch made for the previous one
        _loader_cancel()
        st.session_state["admin_selected_farm"] = uid
    return by_uid.get(uid)


def _loader_cancel() -> None:
    loader = st.session_state.get("feed_loader")
    if loader is not None:
        loader.cancel()


def render_admin_settings(store: UserStore) -> None:
    st.header("Farm settings")
    farm = _pick_farm(store, "Farmer")
    if farm is None:
        return

    with st.form("farm_settings"):
        c1, c2 = st.columns(2)
        first_name = c1.text_input("First name", value=farm.firstName)
        last_name = c2.text_input("Last name", value=farm.lastName)
        email = c1.text_input("Email", value=farm.email)
        place_no = c2.text_input("Plot number", value=farm.placeNo)
        place_name = c1.text_input("Place", value=farm.placeName)
        poles = c2.number_input("Poles", min_value=0, value=farm.poles, step=1)
        google_sheet = st.text_input("Sensor feed URL", value=farm.googleSheet)
        google_sheet_ai = st.text_input("Soil analysis feed URL", value=farm.googleSheetURL_AI)
        map_url = st.text_input("Map embed URL", value=farm.map)
        formats = list(TimestampFormat)
        ts_format = st.selectbox("Timestamp format", options=formats, index=formats.index(farm.timestampFormat))

        st.subheader("Pole positions (% of map)")
        moved = []
        for pin in pins_for_user(farm):
            pc1, pc2 = st.columns(2)
            x = pc1.slider(f"Pole {pin.pole_number} x", 0.0, 100.0, float(pin.x), key=f"pin_x_{pin.id}")
            y = pc2.slider(f"Pole {pin.pole_number} y", 0.0, 100.0, float(pin.y), key=f"pin_y_{pin.id}")
            moved.append(pin.moved_to(x, y))

        if not st.form_submit_button("Save"):
            return

    try:
        store.update_user(
            farm.uid,
            {
                "firstName": first_name,
                "lastName": last_name,
                "email": email,
                "placeNo": place_no,
                "placeName": place_name,
                "poles": int(poles),
                "googleSheet": google_sheet,
                "googleSheetURL_AI": google_sheet_ai,
                "map": map_url,
                "timestampFormat": str(ts_format),
            },
        )
        # Positions are keyed by place name, so store them under the saved one
        store.save_pin_positions(
            farm.uid,
            [replace(p, place_name=place_name) for p in moved],
        )
    except (ClientError, RuntimeError) as exc:
        st.error(f"Could not save: {exc}")
        return
    st.session_state["readings"] = None
    st.success("Saved.")


def render_admin_add(store: UserStore) -> None:
    st.header("Add account profile")
    st.caption("Sign-in credentials are provisioned separately in the auth secret.")
    with st.form("add_profile"):
        uid = st.text_input("Account uid")
        first_name = st.text_input("First name")
        last_name = st.text_input("Last name")
        email = st.text_input("Email")
        role = st.selectbox("Role", options=[ROLE_USER, ROLE_ADMIN])
        if not st.form_submit_button("Create"):
            return
    if not uid.strip():
        st.error("A uid is required.")
        return
    profile = UserProfile(uid=uid.strip(), status=role, firstName=first_name, lastName=last_name, email=email)
    try:
        store.create_user(profile)
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code == "ConditionalCheckFailedException":
            st.error("A profile with this uid already exists.")
            return
        st.error(str(exc))
        return
    st.success(f"Created {profile.display_name}.")


def main() -> None:
    settings = load_settings()
    logger.setLevel(settings.log_level.value)
    st.set_page_config(page_title="Farm Monitor", layout="wide")

    if not login(settings):
        return

    store = _store(settings)
    try:
        profile = store.get_user(str(st.session_state.get("uid")))
    except (ClientError, RuntimeError) as exc:
        st.error(str(exc))
        return
    if profile is None:
        st.error("No profile found for this account.")
        return

    st.sidebar.write(f"Signed in as **{profile.display_name}**")
    if st.sidebar.button("Logout"):
        _loader_cancel()
        logout()

    if profile.is_admin:
        page = st.sidebar.radio("Page", ["Farm map", "Farm settings", "Sensor charts", "Sensor table", "Add profile"])
        if page == "Farm map":
            render_admin_map(store)
        elif page == "Farm settings":
            render_admin_settings(store)
        elif page == "Add profile":
            render_admin_add(store)
        else:
            farm = _pick_farm(store, "Farm")
            if farm is None:
                return
            _reload_button()
            if page == "Sensor charts":
                render_charts(settings, farm)
            else:
                render_table(settings, farm)
        return

    page = st.sidebar.radio("Page", ["Home", "Dashboard", "Charts", "Table"])
    if page == "Home":
        render_home(store, profile)
        return
    _reload_button()
    if page == "Dashboard":
        render_dashboard(settings, profile)
    elif page == "Charts":
        render_charts(settings, profile)
    else:
        render_table(settings, profile)


if __name__ == "__main__":
    main()
