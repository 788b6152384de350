from typing import Callable, Iterable, List

import joblib


def run_parallel_or_sequential(
    func: Callable, items: Iterable, n_jobs: int = -1
) -> List:
    """Apply ``func`` to every item and return the results in item order.

    The pool never holds more threads than there are items. Runs inline when
    that width is 1, otherwise fans out over joblib's threading backend and
    joins on all tasks. Threads share memory, so ``func`` may mutate objects
    it owns exclusively. The first exception raised by any task propagates
    to the caller.
    """
    items = list(items)
    width = min(joblib.effective_n_jobs(n_jobs), len(items))
    if width <= 1:
        results = []
        for item in items:
            results.append(func(item))
        return results
    else:
        with joblib.parallel_backend("threading", n_jobs=width):
            return joblib.Parallel()(joblib.delayed(func)(item) for item in items)
