from .feed_parser import iter_feed_file, iter_feed_segments, parse_row

__all__ = ["iter_feed_file", "iter_feed_segments", "parse_row"]
