"""Step event collection for scenario reports."""

import json
from pathlib import Path
from typing import List, Dict, Any, Optional
from datetime import datetime


class LogCollector:
    """Collects step events while a scenario runs."""

    def __init__(self):
        """Initialize log collector."""
        self.events: List[Dict[str, Any]] = []

    def add_event(self, step: str, level: str, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        """Add an event.

        Args:
            step: Scenario step name
            level: Event level (info, warning, error)
            message: Event message
            metadata: Additional metadata
        """
        self.events.append({
            "timestamp": datetime.now().isoformat(),
            "step": step,
            "level": level,
            "message": message,
            "metadata": metadata or {}
        })

    def filter_events(self, step: Optional[str] = None, level: Optional[str] = None) -> List[Dict[str, Any]]:
        """Filter events by step and/or level."""
        filtered = self.events

        if step:
            filtered = [event for event in filtered if event["step"] == step]

        if level:
            filtered = [event for event in filtered if event["level"] == level]

        return filtered

    def export_events(self, output_path: Path) -> None:
        """Write all events to ``output_path`` as JSON."""
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w') as f:
            json.dump(self.events, f, indent=2)

    def get_summary(self) -> Dict[str, Any]:
        """Get event summary statistics.

        Returns:
            Summary statistics
        """
        if not self.events:
            return {"total_events": 0}

        levels: Dict[str, int] = {}
        steps = []

        for event in self.events:
            level = event["level"]
            levels[level] = levels.get(level, 0) + 1
            if event["step"] not in steps:
                steps.append(event["step"])

        return {
            "total_events": len(self.events),
            "steps": steps,
            "event_levels": levels,
            "first_event": self.events[0]["timestamp"],
            "last_event": self.events[-1]["timestamp"]
        }

    def clear(self) -> None:
        """Clear all events."""
        self.events.clear()
