#!/usr/bin/env python
"""Aggregate - 单元测试"""

import threading
import time
from unittest.mock import patch

import httpx
import pytest

from conftest import FakeFetch, listing, make_post
from subreddit_digest import aggregator
from subreddit_digest import fetcher
from subreddit_digest.aggregator import (
    EMPTY_SOURCES_MESSAGE,
    GENERIC_ERROR_MESSAGE,
    TIMEOUT_MESSAGE,
    aggregate,
    merge_outcomes,
)
from subreddit_digest.config import Settings
from subreddit_digest.models import FailureReason, FetchFailure, FetchSuccess

NOT_FOUND = FailureReason.NOT_FOUND
NETWORK = FailureReason.NETWORK


class TestValidation:
    """测试输入校验"""

    @pytest.mark.parametrize("names", [[], [""], ["  ", "\t"]])
    def test_empty_list_fails_without_fetch(self, names):
        """空列表直接失败, 不发起任何请求"""
        fake = FakeFetch()
        result = aggregate(names, fake)
        assert not result.ok
        assert result.error == EMPTY_SOURCES_MESSAGE
        assert result.failures == []
        assert fake.calls == []

    def test_names_are_trimmed(self):
        """名称去空白, 空项被过滤"""
        fake = FakeFetch(posts={"a": 1, "b": 1})
        result = aggregate([" a ", "", "b"], fake)
        assert result.ok
        assert sorted(fake.calls) == ["a", "b"]


class TestMergeSuccess:
    """测试全部成功时的合并"""

    def test_items_in_source_order(self):
        """按输入顺序拼接, 不跨源重排"""
        fake = FakeFetch(posts={"a": 2, "b": 3, "c": 1})
        result = aggregate(["c", "a", "b"], fake)

        assert result.ok
        assert result.error is None
        assert [p.id for p in result.items] == ["c0", "a0", "a1", "b0", "b1", "b2"]

    def test_source_name_matches_request(self):
        """每条的 source_name 与请求名一致"""
        fake = FakeFetch(posts={"a": 2, "b": 2})
        result = aggregate(["a", "b"], fake)
        assert [p.source_name for p in result.items] == ["a", "a", "b", "b"]

    def test_duplicates_fetched_independently(self):
        """重复名称各自抓取, 不去重"""
        fake = FakeFetch(posts={"a": 2})
        result = aggregate(["a", "a"], fake)
        assert fake.calls == ["a", "a"]
        assert len(result.items) == 4

    def test_item_count_bounded(self):
        """总数不超过 10 x 源数量"""
        def handler(request):
            return httpx.Response(200, json=listing(15))

        transport = httpx.MockTransport(handler)
        with httpx.Client(transport=transport) as client:
            result = aggregate(["a", "b", "c"], lambda n: fetcher.fetch(n, client=client))

        assert result.ok
        assert len(result.items) == 30

    def test_idempotent(self):
        """相同输入、上游不变时结果相同"""
        fake = FakeFetch(posts={"a": 2, "b": 1}, failures={"c": NETWORK})
        assert aggregate(["a", "b"], fake) == aggregate(["a", "b"], fake)
        assert aggregate(["a", "c"], fake) == aggregate(["a", "c"], fake)


class TestMergeFailure:
    """测试失败时的合并 (全有或全无)"""

    def test_partial_failure_discards_successes(self):
        """a 成功 b 网络失败 -> 整体失败, 不返回 a 的结果"""
        fake = FakeFetch(posts={"a": 2}, failures={"b": NETWORK})
        result = aggregate(["a", "b"], fake)

        assert not result.ok
        assert result.items == []
        assert result.error == GENERIC_ERROR_MESSAGE
        assert [f.source_name for f in result.failures] == ["b"]

    def test_not_found_names_source(self):
        """not_found 时错误信息包含该源名称"""
        fake = FakeFetch(posts={"a": 2}, failures={"missing": NOT_FOUND})
        result = aggregate(["a", "missing"], fake)

        assert not result.ok
        assert result.error.startswith("Subreddit not found:")
        assert "r/missing" in result.error

    def test_not_found_wins_over_other_failures(self):
        """同时存在其他失败时仍报告 not_found"""
        fake = FakeFetch(failures={"x": NETWORK, "y": NOT_FOUND})
        result = aggregate(["x", "y"], fake)
        assert "r/y" in result.error
        assert len(result.failures) == 2

    def test_first_not_found_in_source_order(self):
        """多个 not_found 时报告输入顺序中的第一个"""
        fake = FakeFetch(failures={"y": NOT_FOUND, "z": NOT_FOUND})
        result = aggregate(["z", "y"], fake)
        assert "r/z" in result.error

    def test_all_fetches_run_after_failure(self):
        """某源失败不会取消其他请求"""
        fake = FakeFetch(posts={"b": 1, "c": 1}, failures={"a": NETWORK})
        aggregate(["a", "b", "c"], fake)
        assert sorted(fake.calls) == ["a", "b", "c"]

    def test_exception_becomes_failure(self):
        """fetch 抛异常时记为该源失败"""
        def boom(name):
            if name == "bad":
                raise RuntimeError("boom")
            return FetchSuccess(source_name=name, items=[make_post("1", name)])

        result = aggregate(["ok", "bad"], boom)
        assert not result.ok
        assert result.error == GENERIC_ERROR_MESSAGE
        assert result.failures[0].source_name == "bad"
        assert result.failures[0].reason == NETWORK


class TestConcurrency:
    """测试并发与超时"""

    def test_fetches_run_concurrently(self):
        """默认每个源一个线程, 同时在途"""
        barrier = threading.Barrier(3, timeout=5)

        def fetch(name):
            barrier.wait()
            return FetchSuccess(source_name=name, items=[])

        result = aggregate(["a", "b", "c"], fetch)
        assert result.ok

    def test_max_workers_caps_in_flight(self):
        """max_workers 限制同时在途数量"""
        lock = threading.Lock()
        state = {"current": 0, "peak": 0}

        def fetch(name):
            with lock:
                state["current"] += 1
                state["peak"] = max(state["peak"], state["current"])
            time.sleep(0.05)
            with lock:
                state["current"] -= 1
            return FetchSuccess(source_name=name, items=[make_post(name, name)])

        names = ["a", "b", "c", "d", "e"]
        result = aggregate(names, fetch, max_workers=2)

        assert result.ok
        assert state["peak"] <= 2
        assert [p.source_name for p in result.items] == names

    def test_max_workers_from_settings(self):
        """未显式传入时使用 settings.max_workers"""
        assert aggregator._resolve_max_workers(10, Settings(max_workers=3).max_workers) == 3

    def test_resolve_max_workers(self):
        """并发数不超过源数量, 最少为 1"""
        assert aggregator._resolve_max_workers(4, None) == 4
        assert aggregator._resolve_max_workers(2, 8) == 2
        assert aggregator._resolve_max_workers(3, 0) == 1

    def test_cycle_timeout_discards_partial(self):
        """超时 -> 整体失败, 已完成的结果被丢弃"""
        release = threading.Event()

        def fetch(name):
            if name == "slow":
                release.wait(5)
            return FetchSuccess(source_name=name, items=[make_post(name, name)])

        try:
            result = aggregate(["fast", "slow"], fetch, timeout=0.2)
        finally:
            release.set()

        assert not result.ok
        assert result.items == []
        assert result.error == TIMEOUT_MESSAGE

    def test_cycle_timeout_from_settings(self):
        """settings.cycle_timeout 生效"""
        release = threading.Event()

        def fetch(name):
            release.wait(5)
            return FetchSuccess(source_name=name, items=[])

        try:
            result = aggregate(["a"], fetch, settings=Settings(cycle_timeout=0.1))
        finally:
            release.set()

        assert result.error == TIMEOUT_MESSAGE

    def test_fetch_after_timeout_logged_without_traceback(self):
        """超时后残留请求报错 (client 已关闭) -> 记为 network, 不打印堆栈"""
        release = threading.Event()
        logged = threading.Event()

        def fetch(name):
            release.wait(5)
            raise RuntimeError("Cannot send a request, as the client has been closed.")

        with patch.object(aggregator, "logger") as mock_logger:
            mock_logger.info.side_effect = lambda *args, **kwargs: logged.set()
            result = aggregate(["a"], fetch, timeout=0.1)
            release.set()
            assert logged.wait(5)

        assert result.error == TIMEOUT_MESSAGE
        mock_logger.exception.assert_not_called()
        assert "abandoned" in mock_logger.info.call_args.args[0]


class TestFetchSingleSource:
    """测试单源异常捕获"""

    def test_unexpected_error_logged_with_traceback(self):
        """未取消时的异常 -> network 失败, logger.exception"""
        def fetch(name):
            raise RuntimeError("boom")

        with patch.object(aggregator, "logger") as mock_logger:
            outcome = aggregator._fetch_single_source(fetch, "a", threading.Event())

        assert outcome.reason == NETWORK
        mock_logger.exception.assert_called_once()

    def test_error_after_cancel_is_network_failure(self):
        """取消后的异常 -> network 失败, 只记 info"""
        cancelled = threading.Event()
        cancelled.set()

        def fetch(name):
            raise RuntimeError("Cannot send a request, as the client has been closed.")

        with patch.object(aggregator, "logger") as mock_logger:
            outcome = aggregator._fetch_single_source(fetch, "a", cancelled)

        assert not outcome.ok
        assert outcome.reason == NETWORK
        assert outcome.source_name == "a"
        mock_logger.exception.assert_not_called()
        mock_logger.info.assert_called_once()


class TestMergeOutcomes:
    """测试 merge_outcomes"""

    def test_all_success(self):
        outcomes = [
            FetchSuccess(source_name="a", items=[make_post("1", "a")]),
            FetchSuccess(source_name="b", items=[]),
        ]
        result = merge_outcomes(outcomes)
        assert result.ok
        assert len(result.items) == 1

    def test_http_status_is_generic(self):
        outcomes = [FetchFailure(source_name="a", reason=FailureReason.HTTP_STATUS, status_code=500)]
        result = merge_outcomes(outcomes)
        assert result.error == GENERIC_ERROR_MESSAGE
