"""
Tests for the process-pool fan-out helper.
"""

from unittest.mock import patch

from sccs.parallel import MIN_PARALLEL_ITEMS, parallel_map, resolve_num_workers

_offset = 0


def _set_offset(value):
    global _offset
    _offset = value


def _add_offset(x):
    return x + _offset


class TestResolveNumWorkers:
    """Test worker count resolution."""

    def test_serial_values(self):
        assert resolve_num_workers(0, 100) == 1
        assert resolve_num_workers(1, 100) == 1

    def test_capped_by_items(self):
        assert resolve_num_workers(8, 3) == 3

    def test_auto_detect(self):
        with patch('sccs.parallel.os.cpu_count', return_value=6):
            assert resolve_num_workers(None, 100) == 6

    def test_auto_detect_unknown_cpu_count(self):
        with patch('sccs.parallel.os.cpu_count', return_value=None):
            assert resolve_num_workers(None, 100) == 4


class TestParallelMap:
    """Test ordered mapping in-process and across workers."""

    def test_serial_preserves_order(self):
        assert parallel_map(abs, [-3, 1, -2], num_workers=0) == [3, 1, 2]

    def test_serial_runs_initializer(self):
        _set_offset(0)
        assert parallel_map(_add_offset, [1, 2], num_workers=0,
                            initializer=_set_offset, initargs=(10,)) == [11, 12]

    def test_small_inputs_stay_in_process(self):
        items = list(range(MIN_PARALLEL_ITEMS - 1))
        with patch('sccs.parallel.ProcessPoolExecutor') as mock_pool:
            assert parallel_map(abs, items, num_workers=4) == items
            mock_pool.assert_not_called()

    def test_pool_preserves_order(self):
        items = [-i for i in range(10)]
        assert parallel_map(abs, items, num_workers=2) == list(range(10))

    def test_pool_runs_initializer(self):
        assert parallel_map(_add_offset, list(range(10)), num_workers=2,
                            initializer=_set_offset, initargs=(100,)) == list(range(100, 110))

    def test_empty(self):
        assert parallel_map(abs, [], num_workers=2) == []

    def test_progress_bar(self):
        assert parallel_map(abs, [-1, -2], num_workers=0, show_progress=True) == [1, 2]
