"""Encode execution: command building and ffmpeg process management."""
