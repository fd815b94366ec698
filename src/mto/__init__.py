"""Media Transcode Orchestrator.

Runs external ffmpeg operations as units of work, sequences them into
ordered workflows and schedules independent units with bounded
concurrency and retry.
"""

__version__ = "0.1.0"
