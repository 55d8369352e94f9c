"""
Run metrics collection utilities
"""
import time
from collections import defaultdict
from typing import Any, Dict, Optional

import structlog

logger = structlog.get_logger()


class MetricsCollector:
    """Simple in-memory counters and timers for sync and pipeline runs"""

    def __init__(self):
        self.counters = defaultdict(int)
        self.durations = defaultdict(list)
        self.timers = {}

    def increment_counter(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None):
        """Increment a counter metric"""
        key = self._make_key(name, tags)
        self.counters[key] += value

    def get_counter(self, name: str, tags: Optional[Dict[str, str]] = None) -> int:
        return self.counters.get(self._make_key(name, tags), 0)

    def start_timer(self, name: str, tags: Optional[Dict[str, str]] = None) -> str:
        """Start a timer and return timer ID"""
        key = self._make_key(name, tags)
        timer_id = f"{key}_{time.monotonic()}"
        self.timers[timer_id] = {"key": key, "start_time": time.monotonic()}
        return timer_id

    def stop_timer(self, timer_id: str) -> Optional[float]:
        """Stop a timer and record the duration"""
        timer_info = self.timers.pop(timer_id, None)
        if timer_info is None:
            return None
        duration = time.monotonic() - timer_info["start_time"]
        self.durations[timer_info["key"]].append(duration)
        return duration

    def get_metrics(self) -> Dict[str, Any]:
        """Get all current metrics"""
        return {
            "counters": dict(self.counters),
            "durations": {
                key: {
                    "count": len(values),
                    "total_s": round(sum(values), 3),
                    "max_s": round(max(values), 3),
                }
                for key, values in self.durations.items()
                if values
            },
        }

    def log_summary(self, event: str = "run_metrics") -> None:
        """Emit current counters as one structured log event"""
        logger.info(event, **self.get_metrics())

    def reset(self) -> None:
        self.counters.clear()
        self.durations.clear()
        self.timers.clear()

    def _make_key(self, name: str, tags: Optional[Dict[str, str]] = None) -> str:
        """Create metric key with tags"""
        if not tags:
            return name

        tag_str = ",".join(f"{k}={v}" for k, v in sorted(tags.items()))
        return f"{name}[{tag_str}]"


# Global metrics instance
metrics = MetricsCollector()


class TimerContext:
    """Context manager for timing operations"""

    def __init__(self, name: str, tags: Optional[Dict[str, str]] = None,
                 collector: Optional[MetricsCollector] = None):
        self.name = name
        self.tags = tags
        self.collector = collector or metrics
        self.timer_id = None

    def __enter__(self):
        self.timer_id = self.collector.start_timer(self.name, self.tags)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.timer_id:
            self.collector.stop_timer(self.timer_id)
