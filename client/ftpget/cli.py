#!/usr/bin/env python3
"""
Command line entry points.

``ftpget URL`` downloads one file over passive-mode FTP.
``ftpget-ui`` starts the Streamlit front end.
"""

import argparse
import logging
import os
import subprocess
import sys

from ftpget.config import Settings
from ftpget.download import download
from ftpget.errors import FTPClientError

logger = logging.getLogger("ftpget")

USAGE_URL = "ftp://[<user>:<password>@]<host>[:<port>]/<url-path>"
APP_PATH = os.path.join(os.path.dirname(__file__), "ui", "app.py")


def configure_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ftpget", description="Download a file over passive-mode FTP")
    parser.add_argument("url", help=USAGE_URL)
    parser.add_argument("--output-dir", default=None, help="Folder the file is written to (default: downloads)")
    parser.add_argument("--timeout", type=float, default=None, help="Timeout in seconds for every socket operation")
    parser.add_argument("--verify-transfer", action="store_true", default=None,
                        help="Require the server's 226 reply after the data connection closes")
    parser.add_argument("--pasv-use-control-host", action="store_true",
                        help="Connect the data channel to the control host instead of the PASV address")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log the protocol exchange")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        settings = Settings.from_env().override(
            output_dir=args.output_dir,
            timeout=args.timeout,
            verify_transfer=args.verify_transfer,
            trust_pasv_address=False if args.pasv_use_control_host else None,
        )
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    try:
        result = download(args.url, settings)
    except FTPClientError as e:
        logger.debug("Download failed", exc_info=True)
        print(f"\nDownload failed at step '{e.step}': {e}", file=sys.stderr)
        if e.step == "url":
            print(f"Usage: ftpget {USAGE_URL}", file=sys.stderr)
        return 1

    print(f"Saved {result.path} ({result.size} bytes)")
    return 0


def run_ui(argv=None):
    """
    Start the Streamlit UI, replacing the current process.

    Falls back to a child process when exec is not possible.
    """
    parser = argparse.ArgumentParser(prog="ftpget-ui", description="Start the ftpget Streamlit UI")
    parser.add_argument("--host", default=os.getenv("FTPGET_UI_HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.getenv("FTPGET_UI_PORT", "8501")))
    args = parser.parse_args(argv)
    configure_logging(verbose=False)

    cmd = [
        'streamlit',
        'run',
        APP_PATH,
        f'--server.port={args.port}',
        f'--server.address={args.host}',
        '--logger.level=info',
        '--client.showErrorDetails=true'
    ]
    os.environ['STREAMLIT_TELEMETRY_ENABLED'] = 'false'
    logger.info(f"Starting Streamlit UI on {args.host}:{args.port}...")

    try:
        os.execvp(cmd[0], cmd)
    except OSError as e:
        logger.error(f"Failed to exec Streamlit: {e}")
        try:
            subprocess.run([sys.executable, '-m'] + cmd, check=True)
        except subprocess.CalledProcessError as e2:
            logger.error(f"Streamlit exited with error code {e2.returncode}")
            sys.exit(e2.returncode)


if __name__ == '__main__':
    sys.exit(main())
