"""
Bounded parallel execution of independent migration units
"""
from collections import namedtuple
from concurrent.futures import ThreadPoolExecutor, as_completed

from migration_core.logging.logger import get_logger

logger = get_logger("workers")

UnitOutcome = namedtuple("UnitOutcome", ["key", "result", "error", "skipped"])


def run_units(units, worker, max_workers=4, state_manager=None, key=str):
    """
    Run worker(unit) for every unit on a bounded thread pool.

    A failing unit is logged and reported in its outcome; the other units
    keep running. Units already completed in state_manager are skipped and
    successful units are marked completed.

    Args:
        units: Iterable of work units (e.g., source project dicts)
        worker: Callable(unit) -> result
        max_workers: Pool size
        state_manager: Optional StateManager for resumable runs
        key: Callable(unit) -> unit key

    Returns:
        list: UnitOutcome per unit, in input order
    """
    if max_workers < 1:
        raise ValueError("max_workers must be >= 1")

    units = list(units)
    # Indexed by input position; keys may repeat
    outcomes = [None] * len(units)
    pending = []

    for index, unit in enumerate(units):
        unit_key = key(unit)
        if state_manager is not None and state_manager.is_completed(unit_key):
            logger.info(f"Skipping {unit_key} (already completed)")
            outcomes[index] = UnitOutcome(unit_key, None, None, True)
        else:
            pending.append((index, unit_key, unit))

    if pending:
        logger.info(f"Processing {len(pending)} unit(s) with {min(max_workers, len(pending))} worker(s)")

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {executor.submit(worker, unit): (index, unit_key) for index, unit_key, unit in pending}
        for future in as_completed(futures):
            index, unit_key = futures[future]
            try:
                result = future.result()
            except Exception as e:
                logger.error(f"Failed to process {unit_key}: {e}", exc_info=True)
                outcomes[index] = UnitOutcome(unit_key, None, e, False)
                continue

            if state_manager is not None:
                state_manager.mark_completed(unit_key)
            outcomes[index] = UnitOutcome(unit_key, result, None, False)

    return outcomes
