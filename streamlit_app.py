import os
import uuid

import requests
import streamlit as st

API_BASE_URL = os.environ.get("API_BASE_URL", "http://localhost:8000")

st.title("Wander Chat")

# Initialise session state
if "user_id" not in st.session_state:
    st.session_state.user_id = str(uuid.uuid4())
if "messages" not in st.session_state:
    st.session_state.messages = []

# Sidebar controls
st.sidebar.text_input("User id", key="user_id")
if st.sidebar.button("New chat"):
    st.session_state.messages = []
    st.session_state.user_id = str(uuid.uuid4())
    st.rerun()

measurement_system = st.sidebar.radio("Units", ["imperial", "metric"], horizontal=True)
activities = st.sidebar.multiselect(
    "Activities",
    ["hiking", "museums", "food", "beaches", "nightlife", "shopping", "cycling"],
)
share_location = st.sidebar.toggle("Share location", value=False)
latitude = st.sidebar.number_input("Latitude", value=0.0, format="%.4f", disabled=not share_location)
longitude = st.sidebar.number_input("Longitude", value=0.0, format="%.4f", disabled=not share_location)


def _build_context():
    context = {"measurementSystem": measurement_system, "activities": activities}
    if share_location:
        context["latitude"] = latitude
        context["longitude"] = longitude
    return context


def _iter_events(response):
    """Yield (event, data) pairs from a text/event-stream response."""
    event, data = None, []
    for line in response.iter_lines(decode_unicode=True):
        if line is None:
            continue
        if line == "":
            if data or event:
                yield event or "message", "\n".join(data)
            event, data = None, []
        elif line.startswith("event:"):
            event = line[len("event:"):].strip()
        elif line.startswith("data:"):
            data.append(line[len("data: "):] if line.startswith("data: ") else line[len("data:"):])


def _stream_reply(prompt):
    """Generator for st.write_stream; raises RuntimeError on a terminal error event."""
    with requests.post(
        f"{API_BASE_URL}/chat/stream",
        json={"userId": st.session_state.user_id, "message": prompt, "context": _build_context()},
        stream=True,
        timeout=60,
    ) as resp:
        resp.raise_for_status()
        for event, data in _iter_events(resp):
            if event == "complete":
                return
            if event == "error":
                raise RuntimeError(data)
            yield data


# ── Chat history ─────────────────────────────────────────────────────────────

for msg in st.session_state.messages:
    with st.chat_message(msg["role"]):
        st.markdown(msg["content"])

# ── Chat input ───────────────────────────────────────────────────────────────

if prompt := st.chat_input("Ask me anything about your trip…"):
    st.session_state.messages.append({"role": "user", "content": prompt})
    with st.chat_message("user"):
        st.markdown(prompt)

    with st.chat_message("assistant"):
        try:
            reply = st.write_stream(_stream_reply(prompt))
        except requests.exceptions.ConnectionError:
            reply = "Could not reach the server. Is the API running?"
            st.markdown(reply)
        except requests.exceptions.Timeout:
            reply = "The request timed out. Please try again."
            st.markdown(reply)
        except requests.exceptions.HTTPError as e:
            reply = f"Server error ({e.response.status_code}). Please try again later."
            st.markdown(reply)
        except RuntimeError as e:
            reply = str(e)
            st.error(reply)

    st.session_state.messages.append({"role": "assistant", "content": reply})
