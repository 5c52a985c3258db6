"""
Ata - meeting recorder with speaker-attributed transcripts.

Entry point: loads .env, reads the config and starts the control server.
"""

import os
import sys
from pathlib import Path
from dotenv import load_dotenv

sys.path.insert(0, str(Path(__file__).parent / "src"))


def check_environment() -> bool:
    """Warn about missing settings before the server starts."""
    ok = True
    if not os.environ.get("OPENAI_API_KEY") and not os.environ.get("TRANSCRIPTION_API_URL"):
        print("[!] OPENAI_API_KEY is not set. Add it to .env or set TRANSCRIPTION_API_URL to a local server.")
        ok = False
    return ok


def run_ata():
    """Run the control server."""
    from server import run_server

    print('Starting Ata...')
    run_server()


if __name__ == '__main__':
    load_dotenv(Path(__file__).parent / ".env")
    check_environment()
    run_ata()
