"""Video Encode Queue: batch ffmpeg transcoding with a resumable job queue."""

__version__ = "0.4.0"
