from datetime import date

import httpx
import streamlit as st

from paytrack.api.client import APIError
from paytrack.api.schemas.payroll import InitiateRunRequest
from paytrack.domain.exceptions import PaytrackError
from paytrack.progress.models import JobHandle
from paytrack.ui.state import get_session, set_handle

MONTHS = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]

st.title("Run Payroll")

session = get_session()
today = date.today()
years = [str(y) for y in range(today.year + 5, today.year - 6, -1)]

with st.form("run_payroll_form"):
    month = st.selectbox("Month", MONTHS, index=today.month - 1)
    year = st.selectbox("Year", years, index=years.index(str(today.year)))
    submitted = st.form_submit_button("Run Payroll")

if submitted:
    request = InitiateRunRequest(payroll_month=month, payroll_year=year)
    try:
        started = session.client.initiate_run(request)
    except APIError as e:
        st.error(f"Failed to initiate payroll: {e.detail}")
        st.stop()
    except (httpx.HTTPError, PaytrackError) as e:
        st.error(f"Failed to initiate payroll: {e}")
        st.stop()

    st.info(started.message or "Payroll initiation accepted. Starting process...")
    handle = JobHandle(run_id=started.payroll_run_id, period_label=request.period_label)
    set_handle(handle)
    session.coordinator.open(handle)
    st.switch_page("pages/2_progress.py")

st.divider()
st.subheader("Track an existing run")
with st.form("track_run_form"):
    run_id = st.text_input("Payroll run ID")
    label = st.text_input("Period label", placeholder="e.g. January 2026")
    if st.form_submit_button("Track") and run_id.strip():
        handle = JobHandle(run_id=run_id.strip(), period_label=label.strip())
        set_handle(handle)
        session.coordinator.open(handle)
        st.switch_page("pages/2_progress.py")
