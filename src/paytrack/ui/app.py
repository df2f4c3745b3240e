import streamlit as st

from paytrack.ui.state import init_session, reset_session
from paytrack.ui.validation import run_all_checks

st.set_page_config(page_title="Payroll", page_icon="💼")
init_session()

st.title("Payroll")
st.write("Run payroll for a period and track it to completion from the pages in the sidebar.")

with st.sidebar.form("connection_form"):
    api_url = st.text_input("Backend URL", value=st.session_state["paytrack_api_url"])
    token = st.text_input("Access token", value=st.session_state["paytrack_token"], type="password")
    if st.form_submit_button("Connect"):
        st.session_state["paytrack_api_url"] = api_url
        st.session_state["paytrack_token"] = token
        reset_session()
        st.rerun()

errors = run_all_checks()
if errors:
    for err in errors:
        st.error(err)
else:
    st.success("Backend reachable.")
