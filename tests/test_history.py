import pytest

from procview_history import HistoryBuffer, SeriesConfig, SeriesSet


class TestHistoryBuffer:
    def test_never_exceeds_capacity(self) -> None:
        buf = HistoryBuffer(5)
        for i in range(40):
            buf.push(i)
            assert len(buf) <= buf.capacity

    def test_keeps_last_n_in_push_order(self) -> None:
        buf = HistoryBuffer(10)
        for i in range(1, 13):
            buf.push(i)
        assert buf.snapshot() == [3, 4, 5, 6, 7, 8, 9, 10, 11, 12]

    def test_underfilled_keeps_everything(self) -> None:
        buf = HistoryBuffer(10)
        for v in (0.5, 1.5, 2.5):
            buf.push(v)
        assert buf.snapshot() == [0.5, 1.5, 2.5]
        assert len(buf) == 3

    def test_snapshot_does_not_mutate(self) -> None:
        buf = HistoryBuffer(3)
        buf.push(1)
        snap = buf.snapshot()
        snap.append(99)
        assert buf.snapshot() == [1]

    def test_latest(self) -> None:
        buf = HistoryBuffer(2)
        assert buf.latest() is None
        buf.push(7.0)
        buf.push(8.0)
        assert buf.latest() == 8.0

    @pytest.mark.parametrize("capacity", [0, -3])
    def test_rejects_non_positive_capacity(self, capacity: int) -> None:
        with pytest.raises(ValueError):
            HistoryBuffer(capacity)


class TestSeriesSet:
    def test_default_tracks_aggregate_cpu_memory_gpu(self) -> None:
        series = SeriesSet(SeriesConfig(), core_count=4)
        assert series.keys() == ["cpu", "memory", "gpu"]

    def test_per_core_replaces_aggregate(self) -> None:
        series = SeriesSet(SeriesConfig(per_core=True, gpu=False), core_count=3)
        assert series.keys() == ["cpu0", "cpu1", "cpu2", "memory"]
        assert series.cpu_keys() == ["cpu0", "cpu1", "cpu2"]

    def test_disabled_series_are_absent(self) -> None:
        series = SeriesSet(SeriesConfig(cpu=False, gpu=False), core_count=2)
        assert series.keys() == ["memory"]
        assert not series.has("gpu")

    def test_buffers_share_capacity(self) -> None:
        series = SeriesSet(SeriesConfig(capacity=4))
        for i in range(6):
            series.push("memory", float(i))
        assert series.snapshot()["memory"] == [2.0, 3.0, 4.0, 5.0]
        assert series.get("cpu").capacity == 4

    def test_empty_config(self) -> None:
        assert SeriesConfig(cpu=False, memory=False, gpu=False).is_empty()
        assert not SeriesConfig().is_empty()
