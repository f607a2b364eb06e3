"""
Usage metering for provider calls.

- UsageTracker: fire-and-forget recording of embedding and vector usage
- pricing: list prices used for cost estimates
"""

from circle_recall.usage.tracker import UsageTracker

__all__ = [
    "UsageTracker",
]
