from .timelapse_writer import TimelapseConfig, TimelapseResult, TimelapseWriter, save_png

__all__ = ["TimelapseConfig", "TimelapseResult", "TimelapseWriter", "save_png"]
