from growhub.workers.interval_timer import IntervalTimer

__all__ = ["IntervalTimer"]
