"""
Provisioning Tracker
Process-wide created/skipped counters and authorization-gap records
"""
import threading
from collections import Counter


class ProvisioningTracker:
    """
    Tracks provisioning outcomes during migration.

    Features:
    - Created/skipped counters per resource type (atomic across worker threads)
    - Deduplicated authorization gaps (denied endpoints per side)
    - Report generation to file (tab-separated format)
    """

    def __init__(self):
        """Initialize tracker with empty counters."""
        self._lock = threading.Lock()
        self._created = Counter()
        self._skipped = Counter()
        self._gaps = {}  # (side, endpoint) -> status_code
        self.logger = None  # Optional logger instance

    def record_created(self, resource_type):
        with self._lock:
            self._created[resource_type] += 1

    def record_skipped(self, resource_type):
        with self._lock:
            self._skipped[resource_type] += 1

    def record_gap(self, side, endpoint, status_code=None):
        """
        Record an endpoint that was skipped because access was denied.

        Args:
            side: API side
            endpoint: Redacted endpoint
            status_code: 401 or 403
        """
        key = (side, endpoint)
        with self._lock:
            if key in self._gaps:
                return
            self._gaps[key] = status_code

        if self.logger:
            self.logger.warning(f"Authorization gap: [{side}] {endpoint} ({status_code})")

    @property
    def created(self):
        with self._lock:
            return sum(self._created.values())

    @property
    def skipped(self):
        with self._lock:
            return sum(self._skipped.values())

    def get_gaps(self):
        """
        Returns:
            list: (side, endpoint, status_code) tuples, sorted
        """
        with self._lock:
            return sorted((side, endpoint, status) for (side, endpoint), status in self._gaps.items())

    def summary(self):
        """
        Returns:
            dict: {resource_type: {'created': n, 'skipped': n}}
        """
        with self._lock:
            types = set(self._created) | set(self._skipped)
            return {
                t: {'created': self._created[t], 'skipped': self._skipped[t]}
                for t in sorted(types)
            }

    def save_report(self, filepath='provisioning_report.txt'):
        """
        Save provisioning summary and gaps to a tab-separated file.

        Args:
            filepath: Output file path (default: provisioning_report.txt)
        """
        summary = self.summary()
        gaps = self.get_gaps()

        with open(filepath, 'w', encoding='utf-8') as f:
            f.write("Resource Type\tCreated\tSkipped\n")
            for resource_type, counts in summary.items():
                f.write(f"{resource_type}\t{counts['created']}\t{counts['skipped']}\n")
            if gaps:
                f.write("\nSide\tEndpoint\tStatus\n")
                for side, endpoint, status in gaps:
                    f.write(f"{side}\t{endpoint}\t{status if status is not None else ''}\n")

        if self.logger:
            self.logger.info(
                f"Provisioning report: {self.created} created, {self.skipped} skipped, "
                f"{len(gaps)} gaps written to {filepath}"
            )

    def clear(self):
        """Reset all counters (for testing)."""
        with self._lock:
            self._created.clear()
            self._skipped.clear()
            self._gaps.clear()
