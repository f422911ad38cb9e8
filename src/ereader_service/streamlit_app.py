import os
import time
import io
import requests
import streamlit as st

API_BASE = os.getenv("EREADER_API_BASE", os.getenv("API_BASE", "http://localhost:8080")).rstrip("/")
FORMATS = ["epub", "pdf", "html", "md"]


def _reset_state():
    for key in [
        "job_id",
        "status",
        "link",
        "error",
    ]:
        if key in st.session_state:
            del st.session_state[key]
    # Bump the uploader key to clear any previously uploaded file widget state
    if "upload_key" in st.session_state:
        st.session_state["upload_key"] += 1
    else:
        st.session_state["upload_key"] = 1


def _start_ereader_job(url: str, fmt: str, timeout_sec: int | None) -> tuple[str | None, str | None]:
    """Submit a conversion and return (job_id, error)."""
    data = {"url": url, "format": fmt}
    if timeout_sec:
        data["timeout"] = str(timeout_sec)
    try:
        resp = requests.post(f"{API_BASE}/api/ereader", data=data, timeout=30)
    except Exception as e:
        return None, f"Failed to connect to API: {e}"
    if resp.status_code not in (200, 202):
        return None, f"Submit failed: {resp.status_code} {resp.text}"
    return str(resp.json().get("id")), None


def _upload_file(uploaded_file: io.BytesIO) -> tuple[str | None, str | None]:
    """Upload a file and return (link, error)."""
    try:
        files = {"userfile": (uploaded_file.name, uploaded_file.getvalue(), uploaded_file.type or "application/octet-stream")}
        resp = requests.post(f"{API_BASE}/api/upload", files=files, timeout=60, allow_redirects=False)
    except Exception as e:
        return None, f"Failed to connect to API: {e}"
    if resp.status_code in (301, 302, 303, 307):
        return resp.headers.get("Location"), None
    return None, f"Upload failed: {resp.status_code} {resp.text}"


def _poll_job(job_id: str) -> dict[str, object]:
    """Ask the API for a job's state without waiting for it to settle.

    A redirect means the job finished and produced a file; its location is
    returned under "link".
    """
    try:
        resp = requests.get(
            f"{API_BASE}/api/job/{job_id}",
            params={"wait": "false"},
            timeout=30,
            allow_redirects=False,
        )
    except Exception as e:
        return {"status": "error", "error": f"Status check failed: {e}"}
    if resp.status_code in (301, 302, 303, 307):
        return {"status": "finished", "link": resp.headers.get("Location")}
    try:
        data = resp.json()
    except ValueError:
        return {"status": "error", "error": f"Status error: {resp.status_code} {resp.text}"}
    if resp.status_code == 404:
        return {"status": "error", "error": "Unknown job"}
    return data


def _absolute(link: str) -> str:
    return link if link.startswith("http") else f"{API_BASE}{link}"


def main() -> None:
    st.set_page_config(page_title="E-Reader Conversion", page_icon="📚", layout="centered")
    st.title("📚 E-Reader Conversion")
    st.caption(f"API base: {API_BASE}")

    if st.button("Restart", type="secondary"):
        _reset_state()
        st.rerun()

    if "upload_key" not in st.session_state:
        st.session_state["upload_key"] = 0

    convert_tab, upload_tab = st.tabs(["Convert a web page", "Upload a file"])

    with convert_tab:
        url = st.text_input("Page URL", placeholder="https://example.com/article")
        fmt = st.selectbox("Format", FORMATS)
        timeout_sec = st.number_input("Timeout (seconds)", min_value=0, value=60, step=10)
        if url and "job_id" not in st.session_state and st.button("Convert", type="primary"):
            job_id, err = _start_ereader_job(url, fmt, int(timeout_sec))
            if job_id:
                st.session_state["job_id"] = job_id
                st.session_state["status"] = "pending"
                st.toast("Job launched", icon="✅")
            else:
                st.session_state["error"] = err

    with upload_tab:
        uploaded = st.file_uploader("Upload a file", key=f"uploader-{st.session_state['upload_key']}")
        if uploaded and st.button("Upload"):
            link, err = _upload_file(uploaded)
            if link:
                st.session_state["link"] = link
            else:
                st.session_state["error"] = err

    if "job_id" in st.session_state and "link" not in st.session_state:
        job_id = st.session_state["job_id"]
        with st.status(f"Tracking job {job_id}...", expanded=True) as status_box:
            text_slot = st.empty()
            while True:
                data = _poll_job(job_id)
                st.session_state["status"] = str(data.get("status", "unknown"))
                text_slot.write(f"Status: {st.session_state['status']}")
                if st.session_state["status"] == "finished":
                    if data.get("link"):
                        st.session_state["link"] = str(data["link"])
                    status_box.update(label="Job finished", state="complete")
                    break
                if st.session_state["status"] == "error":
                    st.session_state["error"] = str(data.get("error", "Job failed"))
                    status_box.update(label="Job failed", state="error")
                    break
                time.sleep(1.5)

    if link := st.session_state.get("link"):
        st.success("Your file is ready!")
        st.markdown(f"[Open file page]({_absolute(link)}) · [All files]({API_BASE}/files/)")

    if err := st.session_state.get("error"):
        st.error(err)


if __name__ == "__main__":
    main()
