import sys
import os

# Ensure the source root is on sys.path so `import ftpget` resolves when Streamlit
# runs this file directly from a checkout
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from datetime import datetime
import io
import threading
import time
import traceback
import logging

from ftpget.config import Settings
from ftpget.download import FileDownloader
from ftpget.errors import FTPClientError

import streamlit as st

# Configure logging for Streamlit app
logging.basicConfig(
    level=logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


st.set_page_config(page_title="ftpget", layout="wide")

# --- Helpers -----------------------------------------------------------------

# A lightweight wrapper to run blocking network calls in a thread and capture exceptions
def run_in_thread(fn, *args, **kwargs):
    result = {"value": None, "error": None}
    def target():
        try:
            result["value"] = fn(*args, **kwargs)
        except FTPClientError as e:
            result["error"] = e
        except Exception as e:
            logger.error(f"[UI] Unhandled exception: {traceback.format_exc()}")
            result["error"] = e
    t = threading.Thread(target=target)
    t.start()
    return t, result


def load_settings() -> Settings:
    try:
        return Settings.from_env()
    except ValueError as e:
        st.warning(f"Ignoring environment configuration: {e}")
        return Settings()


# --- UI ----------------------------------------------------------------------
st.title("ftpget — passive-mode FTP download")

defaults = load_settings()

with st.sidebar:
    st.header("Settings")
    output_dir = st.text_input("Download folder", value=defaults.output_dir)
    timeout = st.number_input("Timeout (s)", min_value=1.0, max_value=120.0, value=float(defaults.timeout))
    verify = st.checkbox("Require 226 after transfer", value=defaults.verify_transfer)
    trust_pasv = st.checkbox("Trust PASV address", value=defaults.trust_pasv_address)

col1, col2 = st.columns([3, 1])

with col1:
    st.subheader("Download")
    url = st.text_input("URL", placeholder="ftp://[user:password@]host/path/file")
    run = st.button("Download")

    if run and url:
        logger.info(f"[UI] Download requested: {url}")
        settings = defaults.override(output_dir=output_dir, timeout=float(timeout),
                                     verify_transfer=verify, trust_pasv_address=trust_pasv)
        status = io.StringIO()
        downloader = FileDownloader(settings, status=status)
        st.session_state["downloader"] = downloader
        t, result = run_in_thread(downloader.run, url)
        with st.spinner("Downloading..."):
            p = st.progress(0)
            while t.is_alive():
                time.sleep(0.15)
                if downloader.expected_size:
                    value = min(100, int(downloader.bytes_received * 100 / downloader.expected_size))
                    p.progress(value, text=f"{downloader.bytes_received} / {downloader.expected_size} bytes")
                elif downloader.bytes_received:
                    p.progress(50, text=f"{downloader.bytes_received} bytes")
            p.progress(100)
        if result["error"]:
            e = result["error"]
            step = getattr(e, "step", "unknown")
            logger.error(f"[UI] Download failed at {step}: {e}")
            st.error(f"Download failed at step '{step}': {e}")
        else:
            out = result["value"]
            logger.info(f"[UI] Download completed: {out.path}")
            st.success(f"Saved {out.path} ({out.size} bytes in {out.elapsed:.2f}s)")
        st.text_area("Status", value=status.getvalue().replace("\r", "\n"), height=200)
    elif run:
        st.error("Enter an ftp:// URL first.")

with col2:
    st.subheader("History")
    downloader = st.session_state.get("downloader")
    if downloader is None:
        st.info("No history: nothing downloaded yet")
    else:
        hist = downloader.history()
        for entry in reversed(hist[-100:]):
            t = entry.get("time")
            if isinstance(t, datetime):
                time_str = t.isoformat()
            else:
                time_str = str(t)
            with st.expander(f"{time_str} — {entry.get('command')}"):
                parsed = entry.get("parsed")
                if parsed:
                    st.write(f"Code: {parsed.code}")
                    st.write(f"Message: {parsed.message}")
                    st.write(f"Type: {parsed.type}")
                if entry.get("raw"):
                    st.code(entry.get("raw"))
                if entry.get("error"):
                    st.error("This entry had an error")


# Footer
st.markdown("---")
st.caption("ftpget Streamlit UI — showing progress, errors and the control-connection history.")
