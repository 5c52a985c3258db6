"""
Transcript output in markdown format.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from logger import get_logger
from .segmenter import TranscriptionSegment

log = get_logger("transcript")


@dataclass
class TranscriptWriter:
    """Writes speaker-labeled segments to markdown files."""

    output_dir: Path = field(default_factory=lambda: Path(__file__).parent.parent.parent / "Meetings" / "Transcripts")
    include_timestamps: bool = True

    # Internal state
    segments: List[TranscriptionSegment] = field(default_factory=list)
    meeting_start: Optional[datetime] = None
    meeting_name: Optional[str] = None

    def __post_init__(self):
        self.output_dir = Path(self.output_dir)

    def start_meeting(self, meeting_name: Optional[str] = None):
        """Mark the start of a new meeting."""
        self.segments = []
        self.meeting_start = datetime.now()
        self.meeting_name = meeting_name

    def add_segments(self, segments: List[TranscriptionSegment]):
        """Append segments, skipping ones with no text."""
        if self.meeting_start is None:
            self.meeting_start = datetime.now()
        for segment in segments:
            if segment.text and segment.text.strip():
                self.segments.append(segment)

    @property
    def participants(self) -> List[str]:
        """Speakers in order of first appearance."""
        seen = []
        for segment in self.segments:
            if segment.speaker not in seen:
                seen.append(segment.speaker)
        return seen

    def get_duration(self) -> float:
        """Meeting duration in seconds (offset of the last segment)."""
        if not self.segments:
            return 0
        return max(s.start_offset_ms for s in self.segments) / 1000.0

    def generate_markdown(self) -> str:
        """Generate the full markdown transcript."""
        if not self.meeting_start:
            self.meeting_start = datetime.now()

        duration_mins = int(self.get_duration() // 60)
        title = f"# {self.meeting_name}" if self.meeting_name else "# Meeting Transcript"

        lines = [
            title,
            "",
            f"**Date**: {self.meeting_start.strftime('%Y-%m-%d %H:%M')}",
            f"**Duration**: {duration_mins} minutes",
            f"**Participants**: {', '.join(self.participants)}",
            "",
            "---",
            ""
        ]

        if self.segments:
            lines.append("## Full Transcript")
            lines.append("")
            for segment in self.segments:
                if self.include_timestamps:
                    lines.append(f"**[{segment.timestamp}] {segment.speaker}**: {segment.text}")
                else:
                    lines.append(f"**{segment.speaker}**: {segment.text}")
                lines.append("")

        return "\n".join(lines)

    def save(self, filename: Optional[str] = None) -> Path:
        """Save the transcript, writing to a temp file and renaming into place."""
        if filename is None:
            start = self.meeting_start or datetime.now()
            filename = start.strftime("meeting_%Y%m%d_%H%M%S.md")

        self.output_dir.mkdir(parents=True, exist_ok=True)
        filepath = self.output_dir / filename
        content = self.generate_markdown()

        temp_path = filepath.with_suffix('.tmp')
        temp_path.write_text(content, encoding='utf-8')
        temp_path.replace(filepath)  # Atomic rename
        log.debug(f"Saved transcript ({len(self.segments)} segments) to {filepath}")
        return filepath

    def get_full_text(self) -> str:
        """Get all text without formatting."""
        return "\n".join(f"{s.speaker}: {s.text}" for s in self.segments)
