# trk/tracking/config.py

from dataclasses import dataclass

@dataclass(frozen=True)
class TrackerConfig:
    """
    Thresholds for fix intake, stop detection and checkpoint sync.

    Attributes
    ----------
    max_accuracy_m
        Fixes whose accuracy radius (m) exceeds this are dropped.
    stationary_radius_m
        A fix closer than this (m) to the last point counts as not moving.
    min_distance_m
        Movement points closer than this (m) need `min_time_ms` to pass.
    min_time_ms
        Minimum gap (ms) before a nearby movement point is recorded.
    min_stationary_ms
        Dwell (ms) inside the stationary radius before a stop is recorded.
    stop_debounce_ms
        A new dwell starting within this (ms) of the last stop's end is the same stop.
    sync_points_interval
        Push a draft checkpoint every this many new points.
    """
    max_accuracy_m:       float = 25.0
    stationary_radius_m:  float = 5.0
    min_distance_m:       float = 2.0
    min_time_ms:          int   = 5_000
    min_stationary_ms:    int   = 45_000
    stop_debounce_ms:     int   = 10_000
    sync_points_interval: int   = 10

    @classmethod
    def driving(cls):
        """Preset for vehicle mode (default thresholds)."""
        return cls()
