"""
LadderStream - adaptive bitrate transcoding pipeline.

Turns a source video into an HLS quality ladder, a master manifest,
thumbnails and an optional preview clip, coordinated by an in-memory
job queue.
"""

__version__ = "1.0.0"
