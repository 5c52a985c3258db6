#!/usr/bin/env python3
"""
Ata Audio File Transcriber
Transcribes a saved recording with speaker labels.

Usage:
    python transcribe_file.py <audio_file>
    python transcribe_file.py reuniao.ogg --profiles speakers.npz
    python transcribe_file.py recording.mp3 --save --name "Weekly sync"

Requires:
    - OPENAI_API_KEY (or TRANSCRIPTION_API_URL pointing at a compatible server)
    - ffmpeg in PATH
"""

import argparse
import os
import subprocess
import sys
from pathlib import Path

import numpy as np
from dotenv import load_dotenv

sys.path.insert(0, str(Path(__file__).parent / "src"))

SAMPLE_RATE = 16000


def load_audio(audio_path: str, ffmpeg: str = "ffmpeg") -> np.ndarray:
    """Decode any audio file to 16kHz mono int16 using ffmpeg."""
    cmd = [
        ffmpeg, '-nostdin', '-y', '-i', audio_path,
        '-ar', str(SAMPLE_RATE),  # 16kHz sample rate
        '-ac', '1',               # Mono
        '-f', 's16le',            # 16-bit little-endian PCM
        '-acodec', 'pcm_s16le',
        '-'
    ]
    try:
        result = subprocess.run(cmd, capture_output=True)
    except FileNotFoundError:
        raise RuntimeError("ffmpeg not found. Install it and make sure it is in PATH")
    if result.returncode != 0:
        raise RuntimeError(f"ffmpeg failed: {result.stderr.decode('utf-8', errors='replace')}")
    return np.frombuffer(result.stdout, dtype=np.int16)


def transcribe_file(audio_path: str, profiles_file: str = None, identification: bool = True):
    """Transcribe an audio file. Returns the orchestrator outcome."""
    from meeting.orchestrator import RecordingOrchestrator
    from meeting.profile_storage import ProfileStorage
    from utils import ConfigManager

    if profiles_file:
        ConfigManager.set_config_value(profiles_file, 'speaker_options', 'profiles_file')
    ConfigManager.set_config_value(identification, 'speaker_options', 'identification_enabled')

    orchestrator = RecordingOrchestrator.from_config(capture=_NoCapture())
    audio = load_audio(audio_path)
    return orchestrator.transcribe_audio(audio, sample_rate=SAMPLE_RATE)


class _NoCapture:
    """Capture stand-in: files are transcribed without a microphone."""

    def acquire(self):
        from meeting.errors import DeviceUnavailable
        raise DeviceUnavailable("File transcription does not record")

    def on_chunk(self, callback):
        pass

    def release(self):
        pass


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Transcribe an audio file with speaker labels.")
    parser.add_argument("audio_file", help="Audio file (.ogg, .mp3, .wav, .m4a, ...)")
    parser.add_argument("--profiles", help="Voice profile .npz file to match against and update")
    parser.add_argument("--no-identification", action="store_true",
                        help="Skip speaker matching and name recognition")
    parser.add_argument("--save", action="store_true", help="Save a markdown transcript")
    parser.add_argument("--name", help="Meeting name for the saved transcript")
    args = parser.parse_args(argv)

    if not os.path.exists(args.audio_file):
        print(f"Error: File not found: {args.audio_file}", file=sys.stderr)
        return 1

    try:
        outcome = transcribe_file(args.audio_file, args.profiles, not args.no_identification)
    except RuntimeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not outcome.success:
        print(f"Error: {outcome.error.reason}", file=sys.stderr)
        return 1

    for segment in outcome.segments:
        print(f"[{segment.timestamp}] {segment.speaker}: {segment.text}")

    if args.save:
        from meeting.transcript import TranscriptWriter
        from utils import ConfigManager

        folder = ConfigManager.get_config_value('meeting_options', 'transcripts_folder')
        writer = TranscriptWriter(output_dir=Path(folder)) if folder else TranscriptWriter()
        writer.start_meeting(args.name or Path(args.audio_file).stem)
        writer.add_segments(outcome.segments)
        print(f"Saved to: {writer.save()}")

    return 0


if __name__ == "__main__":
    load_dotenv(Path(__file__).parent / ".env")
    sys.exit(main())
