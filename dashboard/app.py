"""Streamlit operator dashboard for the room booking service."""

from __future__ import annotations

import datetime
import os
from typing import Any, Dict, List, Optional

import pandas as pd
import requests
import streamlit as st

# ==========================================
# Configuration & Constants
# ==========================================
API_BASE_URL = os.getenv("ROOMBOOK_API_URL", "http://127.0.0.1:8000")

st.set_page_config(
    page_title="Room Booking",
    page_icon="📅",
    layout="wide",
)


# ==========================================
# API Helper Functions
# ==========================================
def _headers() -> Dict[str, str]:
    headers = {"X-User-Id": st.session_state.get("user_id", "")}
    token = st.session_state.get("admin_session")
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def _error_message(response: requests.Response) -> str:
    try:
        detail = response.json().get("detail")
    except ValueError:
        return response.text
    if isinstance(detail, dict):
        return f"{detail.get('code')}: {detail.get('message')}"
    return str(detail)


def _call(method: str, path: str, **kwargs: Any) -> Optional[Any]:
    try:
        response = requests.request(
            method,
            f"{API_BASE_URL}{path}",
            headers=_headers(),
            timeout=10,
            **kwargs,
        )
    except requests.exceptions.RequestException as e:
        st.error(f"Backend connection failed: {e}")
        return None
    if response.status_code >= 400:
        st.error(_error_message(response))
        return None
    if response.status_code == 204 or not response.content:
        return {}
    return response.json()


def fetch_search(
    start: datetime.datetime,
    end: datetime.datetime,
    min_capacity: Optional[int],
    capabilities: List[str],
    sort_by: str,
    descending: bool,
) -> Optional[Dict[str, Any]]:
    params: Dict[str, Any] = {
        "start": start.isoformat(),
        "end": end.isoformat(),
        "sort_by": sort_by,
        "descending": descending,
    }
    if min_capacity:
        params["min_capacity"] = min_capacity
    if capabilities:
        params["capabilities"] = capabilities
    return _call("GET", "/rooms/search", params=params)


def create_booking(room_id: str, start: datetime.datetime, end: datetime.datetime) -> Optional[Dict[str, Any]]:
    return _call(
        "POST",
        "/bookings",
        json={"room_id": room_id, "start": start.isoformat(), "end": end.isoformat()},
    )


def _utc(day: datetime.date, time_of_day: datetime.time) -> datetime.datetime:
    return datetime.datetime.combine(day, time_of_day, tzinfo=datetime.timezone.utc)


# ==========================================
# UI Page Functions
# ==========================================
def render_search_page() -> None:
    st.header("🔎 Find a Room")
    st.markdown("All times are UTC.")

    col1, col2, col3 = st.columns(3)
    with col1:
        day = st.date_input("Date", datetime.date.today() + datetime.timedelta(days=1))
    with col2:
        start_time = st.time_input("From", datetime.time(9, 0))
    with col3:
        end_time = st.time_input("To", datetime.time(11, 0))

    col4, col5, col6 = st.columns(3)
    with col4:
        min_capacity = st.number_input("Minimum capacity", min_value=0, max_value=500, value=0)
    with col5:
        capabilities = st.multiselect(
            "Required equipment",
            ["projector", "whiteboard", "video_conference", "microphone"],
        )
    with col6:
        sort_by = st.selectbox("Sort by", ["id", "name", "capacity"])
        descending = st.checkbox("Descending")

    start = _utc(day, start_time)
    end = _utc(day, end_time)

    if st.button("Search", type="primary"):
        result = fetch_search(start, end, int(min_capacity) or None, capabilities, sort_by, descending)
        st.session_state["search_result"] = result

    result = st.session_state.get("search_result")
    if not result:
        return
    rooms = result.get("rooms", [])
    if not rooms:
        st.info("No rooms match the filters.")
        return

    df = pd.DataFrame(
        [
            {
                "room_id": room["room_id"],
                "name": room["name"],
                "capacity": room["capacity"],
                "equipment": ", ".join(room["capabilities"]),
                "availability": room["availability_status"],
                "free_slots": len(room["available_slots"]),
            }
            for room in rooms
        ]
    )
    st.dataframe(df, use_container_width=True)

    bookable = [room for room in rooms if room["availability_status"] == "available"]
    if not bookable:
        st.warning("No room is free for the whole window.")
        return
    choice = st.selectbox(
        "Book a fully available room",
        bookable,
        format_func=lambda room: f"{room['name']} (capacity {room['capacity']})",
    )
    if st.button("Book selected room"):
        booking = create_booking(choice["room_id"], start, end)
        if booking:
            st.success(f"Booked {choice['name']} ({booking['booking_id']})")


def render_bookings_page() -> None:
    st.header("📋 My Bookings")
    include_history = st.checkbox("Include cancelled and past bookings")
    result = _call("GET", "/bookings/me", params={"include_history": include_history})
    if not result:
        return
    bookings = result.get("bookings", [])
    if not bookings:
        st.info("No bookings yet.")
        return

    st.dataframe(pd.DataFrame(bookings), use_container_width=True)

    cancellable = [item for item in bookings if item["status"] == "confirmed"]
    if not cancellable:
        return
    target = st.selectbox(
        "Cancel a booking",
        cancellable,
        format_func=lambda item: f"{item['start']} → {item['end']} ({item['room_id']})",
    )
    if st.button("Cancel booking"):
        cancelled = _call("POST", f"/bookings/{target['booking_id']}/cancel")
        if cancelled:
            st.success("Booking cancelled")


def render_all_bookings_page() -> None:
    st.header("🗂️ All Bookings")
    if not st.session_state.get("admin_session"):
        st.caption("Log in as admin in the sidebar to see every booking.")
        return

    col1, col2, col3 = st.columns(3)
    with col1:
        requester_id = st.text_input("Requester")
    with col2:
        room_id = st.text_input("Room ID")
    with col3:
        status = st.selectbox("Status", ["any", "confirmed", "cancelled", "expired"])
    page = st.number_input("Page", min_value=1, value=1)

    params: Dict[str, Any] = {"page": int(page), "limit": 50}
    if requester_id:
        params["requester_id"] = requester_id
    if room_id:
        params["room_id"] = room_id
    if status != "any":
        params["status"] = status

    result = _call("GET", "/bookings/all", params=params)
    if not result:
        return
    bookings = result.get("bookings", [])
    st.caption(f"{result['total']} bookings, page {result['page']} of {max(result['total_pages'], 1)}")
    if not bookings:
        st.info("No bookings match the filters.")
        return
    st.dataframe(pd.DataFrame(bookings), use_container_width=True)


def render_rules_page() -> None:
    st.header("⚙️ Booking Rules")
    rules = _call("GET", "/rules")
    if not rules:
        return
    st.table(pd.DataFrame([rules]).T.rename(columns={0: "value"}))

    if not st.session_state.get("admin_session"):
        st.caption("Log in as admin in the sidebar to change rules.")
        return

    st.write("### Update rules")
    with st.form("rules_form"):
        open_hour = st.number_input("Open hour", 0, 23, int(rules["open_hour"]))
        close_hour = st.number_input("Close hour", 1, 24, int(rules["close_hour"]))
        max_active = st.number_input(
            "Max active bookings", 1, 100, int(rules["max_active_bookings"])
        )
        submitted = st.form_submit_button("Save")
    if submitted:
        updated = _call(
            "PUT",
            "/rules",
            json={
                "open_hour": int(open_hour),
                "close_hour": int(close_hour),
                "max_active_bookings": int(max_active),
            },
        )
        if updated:
            st.success("Rules updated")


# ==========================================
# Main App Router
# ==========================================
def main() -> None:
    st.sidebar.title("Room Booking")
    st.session_state["user_id"] = st.sidebar.text_input(
        "User ID", st.session_state.get("user_id", "demo-user")
    )

    with st.sidebar.expander("Admin login"):
        admin_token = st.text_input("Admin token", type="password")
        if st.button("Log in"):
            result = _call("POST", "/login", json={"admin_token": admin_token})
            if result:
                st.session_state["admin_session"] = result["access_token"]
                st.success("Logged in")

    st.sidebar.markdown("---")
    page = st.sidebar.radio("Navigation", ["Find a Room", "My Bookings", "All Bookings", "Rules"])

    if page == "Find a Room":
        render_search_page()
    elif page == "My Bookings":
        render_bookings_page()
    elif page == "All Bookings":
        render_all_bookings_page()
    elif page == "Rules":
        render_rules_page()


if __name__ == "__main__":
    main()
