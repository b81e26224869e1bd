"""
Uplink Statistics and Metrics

Counters shared by the extractor, transport session and controller so
the status API and the final shutdown log can report what happened.
"""

import time
from datetime import datetime
from typing import Dict, Any, List


class UplinkStats:
    """
    Collects uplink performance statistics

    Each counter has a single writer task; readers tolerate slightly stale
    values.
    """

    def __init__(self):
        # Extraction counters
        self.frames_extracted = 0
        self.frames_dropped_backpressure = 0
        self.frames_dropped_queue_full = 0
        self.buffer_truncations = 0
        self.bytes_read = 0

        # Transport counters
        self.frames_sent = 0
        self.bytes_sent = 0
        self.send_failures = 0
        self.pongs_sent = 0
        self.reconnects = 0
        self.reconnect_failures = 0
        self.feedback_messages = 0
        self.malformed_messages = 0

        # Adaptation counters
        self.evaluations = 0
        self.profile_changes = 0
        self.encoder_starts = 0

        # Session tracking
        self.session_start_time = time.time()

        # Profile change history
        self.profile_history: List[Dict[str, Any]] = []
        self.max_history_entries = 50

    def record_profile_change(self, old: Dict[str, Any], new: Dict[str, Any], reason: str):
        """
        Record a profile change applied by the controller

        Args:
            old: Previous profile as a dict
            new: New profile as a dict
            reason: Transition that caused it
        """
        self.profile_changes += 1
        self.profile_history.append({
            "timestamp": time.time(),
            "from": old,
            "to": new,
            "reason": reason,
        })

        if len(self.profile_history) > self.max_history_entries:
            self.profile_history.pop(0)

    def get_recent_profile_changes(self, count: int = 10) -> List[Dict[str, Any]]:
        return self.profile_history[-count:]

    def get_comprehensive_stats(self) -> Dict[str, Any]:
        """
        Get comprehensive uplink statistics

        Returns:
            dict: Complete statistics report
        """
        session_duration = time.time() - self.session_start_time

        total_dropped = self.frames_dropped_backpressure + self.frames_dropped_queue_full
        drop_rate = total_dropped / self.frames_extracted if self.frames_extracted > 0 else 0.0

        return {
            "session": {
                "start_time": datetime.fromtimestamp(self.session_start_time).isoformat(),
                "duration_seconds": session_duration,
            },
            "extraction": {
                "frames_extracted": self.frames_extracted,
                "dropped_backpressure": self.frames_dropped_backpressure,
                "dropped_queue_full": self.frames_dropped_queue_full,
                "drop_rate": drop_rate,
                "buffer_truncations": self.buffer_truncations,
                "bytes_read": self.bytes_read,
            },
            "transport": {
                "frames_sent": self.frames_sent,
                "bytes_sent": self.bytes_sent,
                "send_failures": self.send_failures,
                "pongs_sent": self.pongs_sent,
                "reconnects": self.reconnects,
                "reconnect_failures": self.reconnect_failures,
                "feedback_messages": self.feedback_messages,
                "malformed_messages": self.malformed_messages,
                "frames_per_second": self.frames_sent / session_duration if session_duration > 0 else 0.0,
            },
            "adaptation": {
                "evaluations": self.evaluations,
                "profile_changes": self.profile_changes,
                "encoder_starts": self.encoder_starts,
            },
        }

    def export_stats_summary(self) -> str:
        """
        Export statistics summary as a single log-friendly line

        Returns:
            str: Formatted statistics summary
        """
        stats = self.get_comprehensive_stats()
        extraction = stats["extraction"]
        transport = stats["transport"]

        return (
            f"extracted={extraction['frames_extracted']} "
            f"sent={transport['frames_sent']} "
            f"dropped={extraction['dropped_backpressure'] + extraction['dropped_queue_full']} "
            f"({extraction['drop_rate']:.1%}) "
            f"failures={transport['send_failures']} "
            f"reconnects={transport['reconnects']} "
            f"profile_changes={stats['adaptation']['profile_changes']}"
        )
