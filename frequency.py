"""
Подсчёт частот байтов во входных данных.
Поддерживает параллельный подсчёт по непересекающимся диапазонам.
"""

import threading
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Tuple


ALPHABET_SIZE = 256
DEFAULT_WORKERS = 4


def partition(length: int, workers: int) -> List[Tuple[int, int]]:
    if workers < 1:
        raise ValueError(f"workers must be at least 1, got {workers}")

    chunk_size = length // workers
    ranges = []

    for i in range(workers):
        start = i * chunk_size
        end = length if i == workers - 1 else (i + 1) * chunk_size
        ranges.append((start, end))

    return ranges


class FrequencyCounter:
    def __init__(self, workers: int = DEFAULT_WORKERS):
        if workers < 1:
            raise ValueError(f"workers must be at least 1, got {workers}")
        self.workers = workers
        self._table: Counter = Counter()
        self._lock = threading.Lock()

    def _count_range(self, data, start: int, end: int):
        local = Counter(data[start:end])
        with self._lock:
            self._table.update(local)

    def count(self, data) -> Dict[int, int]:
        self._table = Counter()

        if self.workers == 1 or len(data) < self.workers:
            self._count_range(data, 0, len(data))
        else:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                futures = [
                    pool.submit(self._count_range, data, start, end)
                    for start, end in partition(len(data), self.workers)
                ]
                # result() re-raises the first worker error
                for future in futures:
                    future.result()

        return {symbol: self._table[symbol] for symbol in sorted(self._table)}


def count_frequencies(data, workers: int = DEFAULT_WORKERS) -> Dict[int, int]:
    return FrequencyCounter(workers).count(data)
