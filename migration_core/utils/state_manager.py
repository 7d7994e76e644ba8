"""
Migration state management for resumable migrations
Persists completed work units to a JSON file
"""
import json
import os
import threading
import time


class StateManager:
    """
    Manages migration state for resumability.

    Tracks:
    - completed: Keys of finished work units (e.g., source project paths)
    - total_processed: Number of completed units
    - timestamp: Last update time

    mark_completed() is safe to call from parallel workers.
    """

    def __init__(self, state_file='migration_state.json'):
        """
        Initialize state manager.

        Args:
            state_file: Path to state file (default: migration_state.json)
        """
        self.state_file = state_file
        self._lock = threading.Lock()
        self._completed = None

    def load(self):
        """
        Load migration state from JSON file.

        Returns:
            dict: State with 'completed' (list), 'total_processed' and 'timestamp'
        """
        if os.path.exists(self.state_file):
            with open(self.state_file, 'r', encoding='utf-8') as f:
                state = json.load(f)
            state.setdefault('completed', [])
            state.setdefault('total_processed', len(state['completed']))
            state.setdefault('timestamp', None)
            return state

        return {
            "completed": [],
            "total_processed": 0,
            "timestamp": None
        }

    def _ensure_loaded(self):
        if self._completed is None:
            self._completed = list(self.load()['completed'])

    def is_completed(self, key):
        with self._lock:
            self._ensure_loaded()
            return key in self._completed

    def mark_completed(self, key):
        """
        Record a finished unit and persist immediately.

        Args:
            key: Unit key
        """
        with self._lock:
            self._ensure_loaded()
            if key in self._completed:
                return
            self._completed.append(key)
            self._write(self._completed)

    def save(self, completed):
        """
        Overwrite state with a list of completed keys.

        Args:
            completed: Iterable of unit keys
        """
        with self._lock:
            self._completed = list(completed)
            self._write(self._completed)

    def _write(self, completed):
        state = {
            "completed": completed,
            "total_processed": len(completed),
            "timestamp": time.time()
        }
        tmp_file = f"{self.state_file}.tmp"
        with open(tmp_file, 'w', encoding='utf-8') as f:
            json.dump(state, f, indent=2)
        os.replace(tmp_file, self.state_file)

    def reset(self):
        """Reset state to initial values."""
        self.save([])

    def delete(self):
        """Delete state file."""
        with self._lock:
            self._completed = None
            if os.path.exists(self.state_file):
                os.remove(self.state_file)


def load_state(state_file='migration_state.json'):
    """
    Load migration state from JSON file (convenience function).

    Args:
        state_file: Path to state file

    Returns:
        dict: State dictionary
    """
    return StateManager(state_file).load()
