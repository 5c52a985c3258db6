"""
Tests for transcript writer.
"""

import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))
from meeting.segmenter import TranscriptionSegment, format_timestamp
from meeting.transcript import TranscriptWriter


def _segment(offset_ms, speaker, text):
    return TranscriptionSegment(speaker=speaker, text=text, start_offset_ms=offset_ms,
                                timestamp=format_timestamp(offset_ms))


class TestTranscriptWriter:
    """Tests for TranscriptWriter."""

    def test_add_segments(self, temp_dir):
        """Should add segments correctly."""
        writer = TranscriptWriter(output_dir=temp_dir)
        writer.start_meeting()

        writer.add_segments([_segment(0, "Ana", "Olá"), _segment(5000, "Carlos", "Oi")])

        assert len(writer.segments) == 2
        assert writer.participants == ["Ana", "Carlos"]

    def test_add_segments_ignores_empty(self, temp_dir):
        """Should ignore empty text segments."""
        writer = TranscriptWriter(output_dir=temp_dir)
        writer.start_meeting()

        writer.add_segments([_segment(0, "Ana", ""), _segment(5000, "Ana", "   ")])

        assert len(writer.segments) == 0

    def test_participants_in_first_appearance_order(self, temp_dir):
        writer = TranscriptWriter(output_dir=temp_dir)
        writer.add_segments([
            _segment(0, "Participant 1", "a"),
            _segment(1000, "Ana", "b"),
            _segment(2000, "Participant 1", "c"),
        ])

        assert writer.participants == ["Participant 1", "Ana"]

    def test_get_duration(self, temp_dir):
        """Should calculate duration from segment offsets."""
        writer = TranscriptWriter(output_dir=temp_dir)
        writer.start_meeting()

        writer.add_segments([_segment(0, "Ana", "Olá"), _segment(30000, "Carlos", "Tchau")])

        assert writer.get_duration() == 30.0

    def test_get_duration_empty(self, temp_dir):
        """Should return 0 for empty transcript."""
        writer = TranscriptWriter(output_dir=temp_dir)
        writer.start_meeting()

        assert writer.get_duration() == 0

    def test_generate_markdown(self, temp_dir):
        """Should generate valid markdown."""
        writer = TranscriptWriter(output_dir=temp_dir)
        writer.start_meeting("Reunião semanal")

        writer.add_segments([_segment(0, "Ana", "Bom dia a todos"), _segment(65000, "Carlos", "Bom dia Ana")])

        md = writer.generate_markdown()

        assert md.startswith("# Reunião semanal")
        assert "**Date**:" in md
        assert "**Participants**: Ana, Carlos" in md
        assert "## Full Transcript" in md
        assert "**[00:00:00] Ana**: Bom dia a todos" in md
        assert "**[00:01:05] Carlos**: Bom dia Ana" in md

    def test_generate_markdown_without_timestamps(self, temp_dir):
        writer = TranscriptWriter(output_dir=temp_dir, include_timestamps=False)
        writer.add_segments([_segment(0, "Ana", "Olá")])

        md = writer.generate_markdown()

        assert "**Ana**: Olá" in md
        assert "[00:00:00]" not in md

    def test_default_title(self, temp_dir):
        writer = TranscriptWriter(output_dir=temp_dir)
        writer.start_meeting()
        assert writer.generate_markdown().startswith("# Meeting Transcript")

    def test_start_meeting_clears_segments(self, temp_dir):
        writer = TranscriptWriter(output_dir=temp_dir)
        writer.add_segments([_segment(0, "Ana", "Olá")])

        writer.start_meeting()

        assert writer.segments == []

    def test_save_creates_file(self, temp_dir):
        """Should save transcript to file."""
        writer = TranscriptWriter(output_dir=temp_dir)
        writer.start_meeting("Test Meeting")

        writer.add_segments([_segment(0, "Ana", "Olá")])

        filepath = writer.save(filename="test.md")

        assert filepath.exists()
        content = filepath.read_text(encoding="utf-8")
        assert "Olá" in content
        assert not (temp_dir / "test.tmp").exists()

    def test_save_default_filename(self, temp_dir):
        writer = TranscriptWriter(output_dir=temp_dir / "out")
        writer.start_meeting()
        writer.add_segments([_segment(0, "Ana", "Olá")])

        filepath = writer.save()

        assert filepath.parent == temp_dir / "out"
        assert filepath.name.startswith("meeting_")
        assert filepath.suffix == ".md"

    def test_get_full_text(self, temp_dir):
        writer = TranscriptWriter(output_dir=temp_dir)
        writer.add_segments([_segment(0, "Ana", "Olá"), _segment(1000, "Carlos", "Oi")])

        assert writer.get_full_text() == "Ana: Olá\nCarlos: Oi"
