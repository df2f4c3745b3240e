import streamlit as st

from paytrack.config import settings
from paytrack.domain.exceptions import StageTransitionError
from paytrack.domain.stages import Stage, StageStatus
from paytrack.ui.state import get_handle, get_session, set_handle

STATUS_ICONS = {
    StageStatus.PENDING: "⏳",
    StageStatus.IN_PROGRESS: "🔄",
    StageStatus.SUCCESS: "✅",
    StageStatus.ERROR: "❌",
    StageStatus.SKIPPED: "⏭️",
}
STAGE_TITLES = {
    Stage.CALCULATION: "1. Calculate payroll",
    Stage.EMAIL_DISPATCH: "2. Email payslips",
    Stage.FILE_GENERATION: "3. Generate statutory files",
}

session = get_session()
handle = get_handle()
if handle is None:
    st.error("Please start or select a payroll run first.")
    st.stop()

st.title(f"Processing Payroll for {handle.title}")
coordinator = session.coordinator
if not coordinator.is_open:
    coordinator.open(handle)


def _act(action) -> None:
    try:
        action()
    except StageTransitionError as e:
        st.warning(e.message)


@st.fragment(run_every=settings.POLL_INTERVAL_SECONDS)
def render_progress() -> None:
    for notice in session.drain_notices():
        st.toast(notice.text, icon=STATUS_ICONS[StageStatus.ERROR] if notice.level == "error" else None)

    view = coordinator.view()
    if view is None:
        st.info("Tracking finished.")
        return

    for stage in Stage:
        status = view.status(stage)
        focus = " ◀" if view.active_stage is stage else ""
        st.markdown(f"**{STATUS_ICONS[status]} {STAGE_TITLES[stage]}** — _{status.value}_{focus}")
        message = view.board.message_of(stage)
        if message:
            st.caption(message)

        if stage is Stage.CALCULATION and view.snapshot is not None:
            snap = view.snapshot
            if snap.percent_complete is not None:
                st.progress(snap.percent_complete, text=snap.message or snap.stage_name or "")
            elif snap.message and status is not StageStatus.ERROR:
                st.write(snap.message)
            if snap.error_detail:
                st.error(snap.error_detail)

        if stage is Stage.EMAIL_DISPATCH:
            cols = st.columns(2)
            cols[0].button(
                "Send payslips", key="send_emails", disabled=not view.board.can_send_emails(),
                on_click=_act, args=(coordinator.send_emails,),
            )
            cols[1].button(
                "Skip", key="skip_emails", disabled=not view.board.can_skip_emails(),
                on_click=_act, args=(coordinator.skip_emails,),
            )
            if view.failed_emails:
                with st.expander(f"⚠️ {len(view.failed_emails)} employee(s) did not receive their payslip"):
                    st.table([f.model_dump() for f in view.failed_emails])

        if stage is Stage.FILE_GENERATION:
            cols = st.columns(2)
            cols[0].button(
                "Generate files", key="generate_files", disabled=not view.board.can_generate_files(),
                on_click=_act, args=(coordinator.generate_files,),
            )
            cols[1].button(
                "Skip", key="skip_files", disabled=not view.board.can_skip_files(),
                on_click=_act, args=(coordinator.skip_files,),
            )
            for i, payload in enumerate(list(session.downloads)):
                st.download_button(
                    f"Download {payload.filename}", data=payload.content,
                    file_name=payload.filename, mime=payload.media_type, key=f"dl_{i}",
                )

    with st.expander("Activity log", expanded=True):
        st.code("\n".join(view.activity) or "Waiting for status...", language=None)


render_progress()

st.divider()
if st.button("Finish", type="primary"):
    success = coordinator.finish()
    session.downloads.clear()
    set_handle(None)
    if success:
        st.success(f"Payroll for {handle.title} processed.")
    else:
        st.warning(f"Payroll for {handle.title} did not complete.")
