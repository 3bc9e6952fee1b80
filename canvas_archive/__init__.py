"""
Canvas Archive - replay and timelapse tooling for a pixel-placement log

Rebuilds the state of a shared canvas at any point in time using:
- Time-sharded SQLite segment tables for the placement log
- Periodic keyframes so replays start close to the requested time
- A fixed-cadence snapshot scheduler feeding an OpenCV video writer
"""

__version__ = "0.1.0"
